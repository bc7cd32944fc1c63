from sqlalchemy import Column, DateTime, Text

from app.database import Base


class AppSetting(Base):
    __tablename__ = "app_settings"

    key = Column(Text, primary_key=True)
    value = Column(Text)
    updated_at = Column(DateTime(timezone=True))

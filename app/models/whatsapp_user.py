import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid, func

from app.database import Base


class WhatsAppUser(Base):
    __tablename__ = "whatsapp_users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_number = Column(Text, nullable=False, unique=True)
    name = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    receives_daily_verse = Column(Boolean, nullable=False, default=True)
    has_sent_first_message = Column(Boolean, nullable=False, default=False)  # flips once, gates welcome
    last_interaction_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True))

import uuid

from sqlalchemy import Column, DateTime, Index, Text, Uuid

from app.database import Base


class WhatsAppConversation(Base):
    __tablename__ = "whatsapp_conversations"
    __table_args__ = (Index("ix_whatsapp_conversations_phone_created", "user_phone", "created_at"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_phone = Column(Text, nullable=False)
    conversation_type = Column(Text, nullable=False)  # intelligent_chat, prayer, daily_verse, command
    message_content = Column(Text, nullable=False)
    response_content = Column(Text, nullable=False)
    message_type = Column(Text, nullable=False, default="text")
    message_id = Column(Text, unique=True)  # provider id, NULL when absent
    thread_id = Column(Text)
    assistant_id = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)

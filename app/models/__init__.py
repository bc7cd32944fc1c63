from app.models.app_setting import AppSetting
from app.models.whatsapp_conversation import WhatsAppConversation
from app.models.whatsapp_user import WhatsAppUser

__all__ = [
    "AppSetting",
    "WhatsAppConversation",
    "WhatsAppUser",
]

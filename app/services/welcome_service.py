import time
from typing import Callable, Optional

from app.config import settings
from app.logging_config import get_logger, mask_phone
from app.services.settings_service import WhatsAppSettings
from app.services.zapi_service import SendResult, send_text

logger = get_logger("welcome_service")


def compose_welcome(whatsapp_settings: WhatsAppSettings) -> str:
    parts = [whatsapp_settings.welcome_message]
    if whatsapp_settings.menu_enabled and whatsapp_settings.menu_message:
        parts.append(whatsapp_settings.menu_message)
    return "\n\n".join(part for part in parts if part and part.strip())


def send_welcome(
    phone: str,
    whatsapp_settings: WhatsAppSettings,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[SendResult]:
    """Send welcome (+ menu) with one retry. ``None`` when there is nothing to send."""
    if not whatsapp_settings.send_welcome_enabled:
        return None
    message = compose_welcome(whatsapp_settings)
    if not message.strip():
        logger.warning("Welcome enabled but no welcome or menu text configured")
        return None

    sleep(settings.welcome_delay_seconds)
    result = send_text(phone, message)
    if result.success:
        logger.info("Welcome message sent", extra={"context": {"phone": mask_phone(phone)}})
        return result

    logger.warning(
        "Welcome send failed, retrying once",
        extra={"context": {"phone": mask_phone(phone), "error": result.error}},
    )
    sleep(settings.welcome_retry_delay_seconds)
    result = send_text(phone, message)
    if not result.success:
        logger.error(
            "Welcome retry failed",
            extra={"context": {"phone": mask_phone(phone), "error": result.error}},
        )
    return result


def is_reminder_due(conversation_count: int, cadence: Optional[int] = None) -> bool:
    cadence = cadence or settings.menu_reminder_cadence
    return cadence > 0 and conversation_count > 0 and conversation_count % cadence == 0


def send_menu_reminder(phone: str, conversation_count: int, whatsapp_settings: WhatsAppSettings) -> Optional[SendResult]:
    """Every Nth conversation resend the menu. No retry."""
    if not whatsapp_settings.menu_reminder_enabled or not whatsapp_settings.menu_message:
        return None
    if not is_reminder_due(conversation_count):
        return None
    result = send_text(phone, whatsapp_settings.menu_message)
    logger.info(
        "Menu reminder dispatched",
        extra={"context": {"phone": mask_phone(phone), "count": conversation_count, "success": result.success}},
    )
    return result

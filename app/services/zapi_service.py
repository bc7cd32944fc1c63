from dataclasses import dataclass
from typing import Optional

import httpx

from app.config import settings
from app.logging_config import get_logger, mask_phone

logger = get_logger("zapi_service")


@dataclass
class SendResult:
    success: bool
    error: Optional[str] = None
    provider_message_id: Optional[str] = None


def has_credentials() -> bool:
    return bool(settings.zapi_instance_id and settings.zapi_token)


def send_text_url() -> str:
    return (
        f"{settings.zapi_base_url.rstrip('/')}/instances/{settings.zapi_instance_id}"
        f"/token/{settings.zapi_token}/send-text"
    )


def send_text(phone: str, message: str) -> SendResult:
    """Send a text message via Z-API. Never raises."""
    if not has_credentials():
        logger.error("Z-API credentials are missing (ZAPI_INSTANCE_ID / ZAPI_TOKEN)")
        return SendResult(success=False, error="missing_zapi_credentials")
    if not phone or not message or not message.strip():
        logger.warning(f"send_text: missing phone or message for {mask_phone(phone)}")
        return SendResult(success=False, error="empty_message")

    headers = {"Content-Type": "application/json"}
    if settings.zapi_client_token:
        headers["Client-Token"] = settings.zapi_client_token

    try:
        with httpx.Client(timeout=settings.zapi_timeout_seconds) as client:
            response = client.post(send_text_url(), headers=headers, json={"phone": phone, "message": message})
    except httpx.HTTPError as e:
        logger.error(f"Error sending WhatsApp message to {mask_phone(phone)}: {e}")
        return SendResult(success=False, error=str(e))

    logger.info(
        "Z-API response",
        extra={"context": {"phone": mask_phone(phone), "status_code": response.status_code}},
    )
    if response.status_code >= 400:
        return SendResult(success=False, error=f"HTTP {response.status_code}: {response.text[:200]}")

    provider_id = None
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        provider_id = data.get("messageId") or data.get("id")
    return SendResult(success=True, provider_message_id=provider_id)

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class WebhookResponse(BaseModel):
    status: str  # success, ignored, error
    reason: Optional[str] = None
    response: Optional[str] = None
    user: Optional[str] = None
    phone: Optional[str] = None
    message_id: Optional[str] = None
    message_sent: Optional[bool] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def ignored(cls, reason: str, **kwargs) -> "WebhookResponse":
        return cls(status="ignored", reason=reason, **kwargs)

    @classmethod
    def error(cls, reason: str, **kwargs) -> "WebhookResponse":
        return cls(status="error", reason=reason, **kwargs)


class WebhookProbeResponse(BaseModel):
    ok: bool = True
    message: str = "Use POST with JSON payload"
    has_zapi_instance: bool
    has_zapi_token: bool
    has_zapi_client_token: bool
    has_openai_key: bool
    has_webhook_secret: bool

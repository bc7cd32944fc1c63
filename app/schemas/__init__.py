from app.schemas.assistant import Assistant, AssistantRoster, AssistantType
from app.schemas.webhook import WebhookProbeResponse, WebhookResponse

__all__ = ["Assistant", "AssistantRoster", "AssistantType", "WebhookResponse", "WebhookProbeResponse"]

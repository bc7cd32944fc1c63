"""Admin debug endpoint: preview intent and assistant routing for a message."""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.schemas.assistant import AssistantSelectionRequest, AssistantSelectionResponse
from app.services.assistant_router import parse_roster, route
from app.services.intent_service import classify
from app.services.settings_service import ASSISTANT_RULES, INTENT_TRIGGERS, WhatsAppSettings, get_settings

router = APIRouter(prefix="/whatsapp", tags=["assistants"])


def _require_admin_key(provided: Optional[str]) -> None:
    expected = settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_API_KEY not configured")
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid admin key")


@router.post("/test-assistant-selection", response_model=AssistantSelectionResponse)
def preview_assistant_selection(
    payload: AssistantSelectionRequest,
    x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key"),
    db: Session = Depends(get_db),
):
    _require_admin_key(x_admin_key)

    stored = WhatsAppSettings(values=get_settings(db, (ASSISTANT_RULES, INTENT_TRIGGERS)))
    roster = parse_roster(payload.assistant_rules or stored.assistant_rules)
    intent = classify(payload.message, stored.intent_triggers)
    decision = route(payload.message, roster, intent)

    assistant = decision.assistant
    return AssistantSelectionResponse(
        intent=intent.value,
        tier=decision.tier,
        assistant_id=assistant.id if assistant else None,
        assistant_name=assistant.name if assistant else None,
        assistant_type=assistant.type.value if assistant else None,
        external_assistant_id=assistant.external_id if assistant else None,
        enabled_assistants=len(roster.enabled) if roster else 0,
    )

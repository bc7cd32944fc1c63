import json
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import AppSetting

logger = get_logger("settings_service")

SEND_WELCOME_ENABLED = "whatsapp_send_welcome_enabled"
WELCOME_MESSAGE = "whatsapp_welcome_message"
MENU_MESSAGE = "whatsapp_menu_message"
MENU_ENABLED = "whatsapp_menu_enabled"
MENU_REMINDER_ENABLED = "whatsapp_menu_reminder_enabled"
ASSISTANT_RULES = "whatsapp_assistant_rules"
INTENT_TRIGGERS = "whatsapp_intent_triggers"
INTENT_PROMPTS = "whatsapp_intent_prompts"

WHATSAPP_SETTING_KEYS = (
    SEND_WELCOME_ENABLED,
    WELCOME_MESSAGE,
    MENU_MESSAGE,
    MENU_ENABLED,
    MENU_REMINDER_ENABLED,
    ASSISTANT_RULES,
    INTENT_TRIGGERS,
    INTENT_PROMPTS,
)


def _flag(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() == "true"


def _json_mapping(raw: str | None, key: str) -> dict:
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        logger.warning("Setting is not valid JSON", extra={"context": {"key": key, "error": str(exc)}})
        return {}
    if not isinstance(parsed, dict):
        logger.warning("Setting is not a JSON object", extra={"context": {"key": key}})
        return {}
    return parsed


@dataclass(frozen=True)
class WhatsAppSettings:
    """Per-request snapshot of the WhatsApp feature settings."""

    values: dict[str, str] = field(default_factory=dict)

    @property
    def send_welcome_enabled(self) -> bool:
        return _flag(self.values.get(SEND_WELCOME_ENABLED), default=True)

    @property
    def welcome_message(self) -> str:
        return self.values.get(WELCOME_MESSAGE) or ""

    @property
    def menu_message(self) -> str:
        return self.values.get(MENU_MESSAGE) or ""

    @property
    def menu_enabled(self) -> bool:
        return _flag(self.values.get(MENU_ENABLED), default=False)

    @property
    def menu_reminder_enabled(self) -> bool:
        return _flag(self.values.get(MENU_REMINDER_ENABLED), default=False)

    @property
    def assistant_rules(self) -> str | None:
        return self.values.get(ASSISTANT_RULES)

    @property
    def intent_triggers(self) -> dict[str, list[str]]:
        parsed = _json_mapping(self.values.get(INTENT_TRIGGERS), INTENT_TRIGGERS)
        triggers: dict[str, list[str]] = {}
        for intent, tokens in parsed.items():
            if isinstance(tokens, str):
                tokens = [tokens]
            if isinstance(tokens, list):
                triggers[str(intent)] = [str(token) for token in tokens if str(token).strip()]
        return triggers

    @property
    def intent_prompts(self) -> dict[str, str]:
        parsed = _json_mapping(self.values.get(INTENT_PROMPTS), INTENT_PROMPTS)
        return {str(k): v for k, v in parsed.items() if isinstance(v, str) and v.strip()}


def get_settings(db: Session, keys: Iterable[str]) -> dict[str, str]:
    """Fetch the requested keys; an unavailable store degrades to an empty map."""
    keys = list(keys)
    try:
        rows = db.query(AppSetting).filter(AppSetting.key.in_(keys)).all()
    except Exception as exc:
        logger.error("Failed to load app settings", extra={"context": {"error": str(exc)}})
        db.rollback()
        return {}
    return {row.key: row.value for row in rows if row.value is not None}


def load_whatsapp_settings(db: Session) -> WhatsAppSettings:
    return WhatsAppSettings(values=get_settings(db, WHATSAPP_SETTING_KEYS))

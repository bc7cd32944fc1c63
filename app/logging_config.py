"""JSON logging for the Agape API: one object per line on stdout."""

import json
import logging
import sys
from datetime import datetime, timezone

SERVICE_NAME = "agape-whatsapp-api"

# Context keys whose values never reach the log stream.
REDACTED_CONTEXT_KEYS = frozenset({"token", "client_token", "api_key", "secret", "webhook_secret", "authorization"})
PHONE_CONTEXT_KEYS = frozenset({"phone", "user_phone", "phone_number"})


def mask_phone(phone: str | None) -> str:
    """Keep the last four digits of a phone number for log context."""
    if not phone:
        return ""
    if len(phone) <= 4:
        return "*" * len(phone)
    return f"{'*' * (len(phone) - 4)}{phone[-4:]}"


def scrub_context(context: dict) -> dict:
    scrubbed = {}
    for key, value in context.items():
        lowered = str(key).lower()
        if lowered in REDACTED_CONTEXT_KEYS:
            scrubbed[key] = "***"
        elif lowered in PHONE_CONTEXT_KEYS and isinstance(value, str) and "*" not in value:
            scrubbed[key] = mask_phone(value)
        else:
            scrubbed[key] = value
    return scrubbed


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if isinstance(context, dict) and context:
            entry["context"] = scrub_context(context)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    # httpx logs full request URLs, and Z-API URLs embed the instance token.
    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"agape.{name}")

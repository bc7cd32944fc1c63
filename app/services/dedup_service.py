from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.logging_config import get_logger, mask_phone
from app.services.conversation_service import find_recent_conversations
from app.services.normalization import fingerprint, normalize_text

logger = get_logger("dedup_service")


def is_recent_duplicate(
    db: Session,
    phone: str,
    text: str,
    *,
    now: Optional[datetime] = None,
    window_seconds: Optional[int] = None,
) -> bool:
    """Best-effort fingerprint guard: same phone and normalized text inside the window.

    Store errors are logged and treated as "not a duplicate"; the unique
    message_id claim remains the authoritative guard.
    """
    now = now or datetime.now(timezone.utc)
    window = window_seconds if window_seconds is not None else settings.dedup_window_seconds
    if not normalize_text(text):
        return False
    incoming = fingerprint(phone, text)

    try:
        rows = find_recent_conversations(
            db, phone, now - timedelta(seconds=window), limit=settings.dedup_max_rows
        )
    except Exception as exc:
        db.rollback()
        logger.warning(
            "Fingerprint dedup check failed, continuing",
            extra={"context": {"phone": mask_phone(phone), "error": str(exc)}},
        )
        return False

    for row in rows:
        if fingerprint(row.user_phone, row.message_content) == incoming:
            logger.info(
                "Duplicate message by fingerprint",
                extra={"context": {"phone": mask_phone(phone), "conversation_id": str(row.id)}},
            )
            return True
    return False

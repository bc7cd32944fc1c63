from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.logging_config import get_logger, mask_phone
from app.models import WhatsAppConversation

logger = get_logger("conversation_service")

CLAIM_PLACEHOLDER = "Processando..."

UNIQUE_VIOLATION_PGCODE = "23505"


class ClaimStatus(str, Enum):
    CLAIMED = "claimed"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class ClaimOutcome:
    status: ClaimStatus
    conversation_id: Optional[UUID] = None
    error: Optional[str] = None


def is_unique_violation(exc: IntegrityError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode == UNIQUE_VIOLATION_PGCODE:
        return True
    message = str(exc.orig).lower()
    return "unique constraint" in message or "duplicate key" in message


def insert_conversation_claim(
    db: Session,
    *,
    phone: str,
    text: str,
    conversation_type: str,
    message_type: str,
    message_id: Optional[str],
    now: Optional[datetime] = None,
) -> ClaimOutcome:
    """Insert the placeholder row. A unique violation on message_id is the duplicate signal."""
    row = WhatsAppConversation(
        user_phone=phone,
        conversation_type=conversation_type,
        message_content=text,
        response_content=CLAIM_PLACEHOLDER,
        message_type=message_type,
        message_id=message_id,
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if message_id and is_unique_violation(exc):
            logger.info(
                "Duplicate message_id on claim",
                extra={"context": {"phone": mask_phone(phone), "message_id": message_id}},
            )
            return ClaimOutcome(ClaimStatus.DUPLICATE, error=str(exc.orig))
        logger.error("Claim insert failed", extra={"context": {"phone": mask_phone(phone), "error": str(exc)}})
        return ClaimOutcome(ClaimStatus.FAILED, error=str(exc))
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Claim insert failed", extra={"context": {"phone": mask_phone(phone), "error": str(exc)}})
        return ClaimOutcome(ClaimStatus.FAILED, error=str(exc))

    return ClaimOutcome(ClaimStatus.CLAIMED, conversation_id=row.id)


def update_conversation(db: Session, conversation_id: UUID, **patch) -> bool:
    try:
        updated = (
            db.query(WhatsAppConversation)
            .filter(WhatsAppConversation.id == conversation_id)
            .update(patch, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Conversation update failed",
            extra={"context": {"conversation_id": str(conversation_id), "error": str(exc)}},
        )
        return False
    return updated == 1


def insert_conversation(
    db: Session,
    *,
    phone: str,
    text: str,
    response: str,
    conversation_type: str,
    message_type: str,
    message_id: Optional[str] = None,
    thread_id: Optional[str] = None,
    assistant_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[UUID]:
    """Best-effort final row, used when no claim row exists."""
    row = WhatsAppConversation(
        user_phone=phone,
        conversation_type=conversation_type,
        message_content=text,
        response_content=response,
        message_type=message_type,
        message_id=message_id,
        thread_id=thread_id,
        assistant_id=assistant_id,
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(row)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Fallback conversation insert failed",
            extra={"context": {"phone": mask_phone(phone), "message_id": message_id, "error": str(exc)}},
        )
        return None
    return row.id


def find_recent_conversations(
    db: Session, phone: str, since: datetime, limit: int = 5
) -> List[WhatsAppConversation]:
    return (
        db.query(WhatsAppConversation)
        .filter(WhatsAppConversation.user_phone == phone, WhatsAppConversation.created_at >= since)
        .order_by(WhatsAppConversation.created_at.desc())
        .limit(limit)
        .all()
    )


def count_conversations(db: Session, phone: str) -> int:
    return db.query(WhatsAppConversation).filter(WhatsAppConversation.user_phone == phone).count()


def get_recent_thread_id(db: Session, phone: str, assistant_id: Optional[str] = None) -> Optional[str]:
    query = db.query(WhatsAppConversation.thread_id).filter(
        WhatsAppConversation.user_phone == phone,
        WhatsAppConversation.thread_id.isnot(None),
    )
    if assistant_id:
        query = query.filter(WhatsAppConversation.assistant_id == assistant_id)
    row = query.order_by(WhatsAppConversation.created_at.desc()).first()
    return row[0] if row else None


def get_recent_history(
    db: Session, phone: str, limit: int = 3, exclude_id: Optional[UUID] = None
) -> List[dict]:
    """Last ``limit`` answered turns for the phone as chat messages, oldest first."""
    query = db.query(WhatsAppConversation).filter(
        WhatsAppConversation.user_phone == phone,
        WhatsAppConversation.response_content != CLAIM_PLACEHOLDER,
    )
    if exclude_id is not None:
        query = query.filter(WhatsAppConversation.id != exclude_id)
    rows = query.order_by(WhatsAppConversation.created_at.desc()).limit(limit).all()

    history = []
    for row in reversed(rows):
        history.append({"role": "user", "content": row.message_content})
        history.append({"role": "assistant", "content": row.response_content})
    return history

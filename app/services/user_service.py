from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.logging_config import get_logger, mask_phone
from app.models import WhatsAppUser
from app.services.payload_normalizer import DEFAULT_SENDER_NAME

logger = get_logger("user_service")


def find_user(db: Session, phone: str) -> Optional[WhatsAppUser]:
    return db.query(WhatsAppUser).filter(WhatsAppUser.phone_number == phone).first()


def _touch(user: WhatsAppUser, name: Optional[str], now: datetime) -> None:
    if name and (name != DEFAULT_SENDER_NAME or not user.name):
        user.name = name
    user.last_interaction_at = now
    user.updated_at = now


def upsert_user(db: Session, phone: str, name: Optional[str] = None, now: Optional[datetime] = None) -> Optional[WhatsAppUser]:
    """Create or refresh the user keyed by phone; keeps activity and subscription flags."""
    now = now or datetime.now(timezone.utc)
    try:
        user = find_user(db, phone)
        if user is None:
            user = WhatsAppUser(phone_number=phone, created_at=now)
            db.add(user)
        _touch(user, name, now)
        db.commit()
        return user
    except IntegrityError:
        # Lost the insert race to a concurrent request for the same phone.
        db.rollback()
        user = find_user(db, phone)
        if user is None:
            return None
        _touch(user, name, now)
        db.commit()
        return user
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("User upsert failed", extra={"context": {"phone": mask_phone(phone), "error": str(exc)}})
        return None


def _update_flags(db: Session, phone: str, values: dict, *, only_if: Optional[dict] = None) -> int:
    query = db.query(WhatsAppUser).filter(WhatsAppUser.phone_number == phone)
    for column, expected in (only_if or {}).items():
        query = query.filter(getattr(WhatsAppUser, column).is_(expected))
    values = {**values, "updated_at": datetime.now(timezone.utc)}
    try:
        updated = query.update(values, synchronize_session=False)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "User update failed",
            extra={"context": {"phone": mask_phone(phone), "values": list(values), "error": str(exc)}},
        )
        return 0
    return updated


def mark_first_message_sent(db: Session, phone: str) -> bool:
    """Flip has_sent_first_message once. True only for the request that performed the flip."""
    return _update_flags(
        db,
        phone,
        {"has_sent_first_message": True},
        only_if={"has_sent_first_message": False},
    ) == 1


def set_active(db: Session, phone: str, active: bool) -> bool:
    return _update_flags(db, phone, {"is_active": active}) == 1


def set_receives_daily_verse(db: Session, phone: str, enabled: bool) -> bool:
    return _update_flags(db, phone, {"receives_daily_verse": enabled}) == 1

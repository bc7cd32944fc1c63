import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.logging_config import get_logger, mask_phone
from app.schemas.webhook import WebhookResponse
from app.services.ai_service import generate_reply
from app.services.assistant_router import parse_roster, route
from app.services.conversation_service import (
    ClaimStatus,
    count_conversations,
    insert_conversation,
    insert_conversation_claim,
    update_conversation,
)
from app.services.dedup_service import is_recent_duplicate
from app.services.intent_service import (
    Command,
    Intent,
    classify,
    conversation_type_for,
    detect_command,
    detect_daily_verse_toggle,
)
from app.services.payload_normalizer import InboundMessage
from app.services.settings_service import WhatsAppSettings, load_whatsapp_settings
from app.services.user_service import (
    mark_first_message_sent,
    set_active,
    set_receives_daily_verse,
    upsert_user,
)
from app.services.welcome_service import send_menu_reminder, send_welcome
from app.services.zapi_service import send_text

logger = get_logger("message_service")

COMMAND_CONVERSATION_TYPE = "command"

REACTIVATED_REPLY = "✅ Mensagens reativadas. Você voltará a receber normalmente."
STOPPED_REPLY = "✅ Entendido. Pausamos todas as mensagens. Quando quiser voltar, envie REATIVAR."
DAILY_VERSE_ON_REPLY = "✅ Versículo diário ativado. Você começará a receber todos os dias."
DAILY_VERSE_OFF_REPLY = "❌ Versículo diário desativado. Você pode ativar quando quiser."
DAILY_VERSE_HELP_REPLY = (
    'Para receber o versículo do dia, envie: "ativar versículo diário". '
    'Para parar, envie: "parar versículo diário".'
)


@dataclass
class ComputedReply:
    text: str
    conversation_type: str
    source: str
    thread_id: Optional[str] = None
    assistant_id: Optional[str] = None


def _command_reply(db: Session, phone: str, command: Command) -> ComputedReply:
    match command:
        case Command.REACTIVATE:
            set_active(db, phone, True)
            text = REACTIVATED_REPLY
        case Command.STOP:
            set_active(db, phone, False)
            text = STOPPED_REPLY
    return ComputedReply(text=text, conversation_type=COMMAND_CONVERSATION_TYPE, source="command")


def _daily_verse_reply(db: Session, phone: str, text: str) -> ComputedReply:
    toggle = detect_daily_verse_toggle(text)
    if toggle is None:
        reply = DAILY_VERSE_HELP_REPLY
    else:
        set_receives_daily_verse(db, phone, toggle)
        reply = DAILY_VERSE_ON_REPLY if toggle else DAILY_VERSE_OFF_REPLY
    return ComputedReply(text=reply, conversation_type=conversation_type_for(Intent.DAILY_VERSE), source="daily_verse")


def compute_reply(
    db: Session,
    message: InboundMessage,
    intent: Intent,
    command: Optional[Command],
    whatsapp_settings: WhatsAppSettings,
    *,
    conversation_id=None,
    sleep: Callable[[float], None] = time.sleep,
) -> ComputedReply:
    if command is not None:
        return _command_reply(db, message.phone, command)
    if intent == Intent.DAILY_VERSE:
        return _daily_verse_reply(db, message.phone, message.text)

    decision = route(message.text, parse_roster(whatsapp_settings.assistant_rules), intent)
    outcome = generate_reply(
        db,
        message,
        intent,
        decision.assistant,
        prompt_overrides=whatsapp_settings.intent_prompts,
        exclude_conversation_id=conversation_id,
        sleep=sleep,
    )
    return ComputedReply(
        text=outcome.text,
        conversation_type=conversation_type_for(intent),
        source=outcome.source,
        thread_id=outcome.thread_id,
        assistant_id=outcome.assistant_id,
    )


def process_inbound_message(
    db: Session,
    message: InboundMessage,
    *,
    now: Optional[datetime] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> WebhookResponse:
    """Run the full pipeline for one normalized inbound message."""
    now = now or datetime.now(timezone.utc)
    phone = message.phone
    log_context = {"phone": mask_phone(phone), "message_id": message.message_id}

    if is_recent_duplicate(db, phone, message.text, now=now):
        return WebhookResponse.ignored("duplicate_message", phone=phone, message_id=message.message_id)

    whatsapp_settings = load_whatsapp_settings(db)

    user = upsert_user(db, phone, message.sender_name, now=now)
    is_first_message = user is None or not user.has_sent_first_message
    command = detect_command(message.text)

    if user is not None and not user.is_active and command != Command.REACTIVATE:
        logger.info("Ignoring message from inactive user", extra={"context": log_context})
        return WebhookResponse.ignored("user_inactive", phone=phone, message_id=message.message_id)

    intent = classify(message.text, whatsapp_settings.intent_triggers)
    initial_type = COMMAND_CONVERSATION_TYPE if command else conversation_type_for(intent)

    claim = insert_conversation_claim(
        db,
        phone=phone,
        text=message.text,
        conversation_type=initial_type,
        message_type=message.message_type,
        message_id=message.message_id,
        now=now,
    )
    if claim.status == ClaimStatus.DUPLICATE:
        return WebhookResponse.ignored("duplicate_message_id", phone=phone, message_id=message.message_id)

    logger.info(
        "Processing inbound message",
        extra={"context": {**log_context, "intent": intent.value, "command": command.value if command else None}},
    )

    reply = compute_reply(
        db,
        message,
        intent,
        command,
        whatsapp_settings,
        conversation_id=claim.conversation_id,
        sleep=sleep,
    )

    stored = False
    if claim.status == ClaimStatus.CLAIMED:
        patch = {"response_content": reply.text, "conversation_type": reply.conversation_type}
        if reply.thread_id:
            patch["thread_id"] = reply.thread_id
        if reply.assistant_id:
            patch["assistant_id"] = reply.assistant_id
        stored = update_conversation(db, claim.conversation_id, **patch)
    if not stored and claim.status != ClaimStatus.CLAIMED:
        insert_conversation(
            db,
            phone=phone,
            text=message.text,
            response=reply.text,
            conversation_type=reply.conversation_type,
            message_type=message.message_type,
            message_id=message.message_id,
            thread_id=reply.thread_id,
            assistant_id=reply.assistant_id,
            now=now,
        )

    sent = send_text(phone, reply.text)
    if not sent.success:
        logger.error("Reply dispatch failed", extra={"context": {**log_context, "error": sent.error}})

    if is_first_message and mark_first_message_sent(db, phone) and command is None:
        send_welcome(phone, whatsapp_settings, sleep=sleep)

    if command is None:
        try:
            total = count_conversations(db, phone)
        except Exception as exc:
            db.rollback()
            logger.warning("Conversation count failed", extra={"context": {**log_context, "error": str(exc)}})
            total = 0
        send_menu_reminder(phone, total, whatsapp_settings)

    logger.info(
        "Inbound message processed",
        extra={"context": {**log_context, "source": reply.source, "message_sent": sent.success}},
    )
    return WebhookResponse(
        status="success",
        response=reply.text,
        user=message.sender_name,
        phone=phone,
        message_id=message.message_id,
        message_sent=sent.success,
    )

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from app.models import AppSetting, WhatsAppConversation, WhatsAppUser
from app.services.ai_service import ReplyOutcome
from app.services.intent_service import GREETING_PROMPT, Intent
from app.services.message_service import (
    DAILY_VERSE_HELP_REPLY,
    DAILY_VERSE_OFF_REPLY,
    REACTIVATED_REPLY,
    STOPPED_REPLY,
    process_inbound_message,
)
from app.services.payload_normalizer import InboundMessage
from app.services.zapi_service import SendResult

PHONE = "5531999990000"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _message(text="Bom dia", message_id=None, sender_name="Maria"):
    return InboundMessage(phone=PHONE, text=text, sender_name=sender_name, message_id=message_id)


def _set(db, **values):
    for key, value in values.items():
        db.merge(AppSetting(key=key, value=value))
    db.commit()


@pytest.fixture
def sent():
    """Patch every outbound send and collect (phone, message) pairs."""
    calls = []

    def _send(phone, message):
        calls.append((phone, message))
        return SendResult(success=True)

    with patch("app.services.message_service.send_text", side_effect=_send), patch(
        "app.services.welcome_service.send_text", side_effect=_send
    ):
        yield calls


@pytest.fixture
def reply():
    outcome = ReplyOutcome(text="😊 Bom dia, Maria!", source="completion")
    with patch("app.services.message_service.generate_reply", return_value=outcome) as generate:
        yield generate


class TestHappyPath:
    def test_greeting_with_empty_roster_uses_completion(self, db, sent):
        with patch("app.services.ai_service.chat_complete", return_value="Bom dia!") as complete:
            response = process_inbound_message(db, _message(), now=NOW, sleep=Mock())

        assert response.status == "success"
        assert response.response == "😊 Bom dia!"
        assert response.message_sent is True
        assert complete.call_args.args[0].startswith(GREETING_PROMPT)

        row = db.query(WhatsAppConversation).one()
        assert row.response_content == "😊 Bom dia!"
        assert row.conversation_type == "intelligent_chat"
        assert sent[0] == (PHONE, "😊 Bom dia!")

    def test_assistant_thread_is_stored(self, db, sent):
        roster = {"assistants": [{"id": "biblia", "name": "Bíblia", "assistantId": "asst_1", "type": "biblical"}]}
        _set(db, whatsapp_assistant_rules=json.dumps(roster))
        outcome = ReplyOutcome(text="Paz!", source="assistant", thread_id="thread_9", assistant_id="biblia")

        with patch("app.services.message_service.generate_reply", return_value=outcome) as generate:
            process_inbound_message(db, _message("O que Jesus ensinou?"), now=NOW, sleep=Mock())

        assistant = generate.call_args.args[3]
        assert assistant.id == "biblia"
        row = db.query(WhatsAppConversation).one()
        assert row.thread_id == "thread_9"
        assert row.assistant_id == "biblia"

    def test_send_failure_still_success(self, db, reply):
        with patch("app.services.message_service.send_text", return_value=SendResult(success=False, error="HTTP 500")):
            response = process_inbound_message(db, _message(), now=NOW, sleep=Mock())
        assert response.status == "success"
        assert response.message_sent is False


class TestDuplicates:
    def test_same_message_id_processed_once(self, db, sent, reply):
        first = process_inbound_message(db, _message(message_id="abc123"), now=NOW, sleep=Mock())
        second = process_inbound_message(
            db, _message(message_id="abc123"), now=NOW + timedelta(minutes=5), sleep=Mock()
        )

        assert first.status == "success"
        assert second.status == "ignored"
        assert second.reason == "duplicate_message_id"
        assert db.query(WhatsAppConversation).filter_by(message_id="abc123").count() == 1

    def test_new_id_same_text_within_window(self, db, sent, reply):
        process_inbound_message(db, _message(message_id="m1"), now=NOW, sleep=Mock())
        response = process_inbound_message(db, _message(message_id="m2"), now=NOW + timedelta(seconds=20), sleep=Mock())
        assert response.reason == "duplicate_message"

    def test_new_id_same_text_after_window(self, db, sent, reply):
        process_inbound_message(db, _message(message_id="m1"), now=NOW, sleep=Mock())
        response = process_inbound_message(db, _message(message_id="m2"), now=NOW + timedelta(seconds=61), sleep=Mock())
        assert response.status == "success"
        assert db.query(WhatsAppConversation).count() == 2


class TestWelcome:
    def test_first_message_sends_welcome_once(self, db, sent, reply):
        _set(db, whatsapp_welcome_message="Bem-vindo ao Agape!")

        process_inbound_message(db, _message("oi"), now=NOW, sleep=Mock())
        process_inbound_message(db, _message("tudo bem?"), now=NOW + timedelta(minutes=2), sleep=Mock())

        messages = [m for _, m in sent]
        assert messages.count("Bem-vindo ao Agape!") == 1
        assert messages.index("Bem-vindo ao Agape!") == 1
        assert db.query(WhatsAppUser).one().has_sent_first_message is True

    def test_flag_set_even_when_welcome_disabled(self, db, sent, reply):
        _set(db, whatsapp_send_welcome_enabled="false", whatsapp_welcome_message="Bem-vindo!")
        process_inbound_message(db, _message(), now=NOW, sleep=Mock())
        assert db.query(WhatsAppUser).one().has_sent_first_message is True
        assert [m for _, m in sent] == ["😊 Bom dia, Maria!"]


class TestMenuReminder:
    def test_fifth_conversation_gets_menu(self, db, sent, reply):
        _set(db, whatsapp_menu_reminder_enabled="true", whatsapp_menu_message="1. Orar")
        for i in range(5):
            process_inbound_message(db, _message(f"mensagem {i}"), now=NOW + timedelta(minutes=i), sleep=Mock())
        assert [m for _, m in sent].count("1. Orar") == 1
        assert sent[-1] == (PHONE, "1. Orar")


class TestCommands:
    def test_stop_then_ignored_then_reactivate(self, db, sent, reply):
        stop = process_inbound_message(db, _message("parar"), now=NOW, sleep=Mock())
        assert stop.response == STOPPED_REPLY
        assert db.query(WhatsAppConversation).one().conversation_type == "command"

        ignored = process_inbound_message(db, _message("oi"), now=NOW + timedelta(minutes=1), sleep=Mock())
        assert ignored.status == "ignored"
        assert ignored.reason == "user_inactive"

        back = process_inbound_message(db, _message("Reativar"), now=NOW + timedelta(minutes=2), sleep=Mock())
        assert back.response == REACTIVATED_REPLY
        db.expire_all()
        assert db.query(WhatsAppUser).one().is_active is True
        reply.assert_not_called()

    def test_command_skips_welcome(self, db, sent):
        _set(db, whatsapp_welcome_message="Bem-vindo!")
        process_inbound_message(db, _message("parar"), now=NOW, sleep=Mock())
        assert [m for _, m in sent] == [STOPPED_REPLY]


class TestDailyVerse:
    def test_disable_subscription(self, db, sent, reply):
        response = process_inbound_message(db, _message("parar versículo diário"), now=NOW, sleep=Mock())
        assert response.response == DAILY_VERSE_OFF_REPLY
        db.expire_all()
        user = db.query(WhatsAppUser).one()
        assert user.receives_daily_verse is False
        assert user.is_active is True
        assert db.query(WhatsAppConversation).one().conversation_type == "daily_verse"

    def test_instructions(self, db, sent, reply):
        response = process_inbound_message(db, _message("versículo do dia"), now=NOW, sleep=Mock())
        assert response.response == DAILY_VERSE_HELP_REPLY
        reply.assert_not_called()


class TestTriggers:
    def test_configured_trigger_changes_intent(self, db, sent, reply):
        _set(db, whatsapp_intent_triggers=json.dumps({"prayer_request": ["bom dia"]}))
        process_inbound_message(db, _message(), now=NOW, sleep=Mock())
        assert reply.call_args.args[2] == Intent.PRAYER_REQUEST
        assert db.query(WhatsAppConversation).one().conversation_type == "prayer"


class TestDegradedStore:
    def test_claim_failure_falls_back_to_final_insert(self, db, sent, reply):
        with patch("app.services.message_service.insert_conversation_claim") as claim, patch(
            "app.services.message_service.insert_conversation"
        ) as insert:
            claim.return_value.status = "failed"
            claim.return_value.conversation_id = None
            response = process_inbound_message(db, _message(message_id="abc"), now=NOW, sleep=Mock())

        assert response.status == "success"
        assert insert.call_args.kwargs["response"] == "😊 Bom dia, Maria!"
        assert insert.call_args.kwargs["message_id"] == "abc"

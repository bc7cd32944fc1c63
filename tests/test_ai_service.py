from unittest.mock import Mock, patch

import pytest

from app.schemas.assistant import Assistant
from app.services import ai_service
from app.services.ai_service import (
    OUTPUT_RULES,
    build_system_prompt,
    canned_reply,
    chat_complete,
    generate_reply,
)
from app.services.assistant_session import AssistantReply
from app.services.intent_service import GREETING_PROMPT, Intent
from app.services.llm.base import LLMError, LLMResponse
from app.services.payload_normalizer import InboundMessage

PHONE = "5531999990000"


@pytest.fixture
def message():
    return InboundMessage(phone=PHONE, text="Bom dia", sender_name="Maria")


@pytest.fixture
def assistant():
    return Assistant(id="biblia", name="Bíblia", assistantId="asst_123", type="biblical")


class TestCannedReply:
    def test_greeting(self):
        assert canned_reply("Olá!", "Maria").startswith("Olá Maria, como você está?")

    def test_prayer(self):
        assert canned_reply("estou triste", "Maria").startswith("🙏 Maria, vou orar por você")

    def test_generic(self):
        assert canned_reply("qualquer coisa", "Maria").startswith("🤗 Olá Maria!")


class TestBuildSystemPrompt:
    def test_contains_intent_prompt_rules_and_name(self):
        prompt = build_system_prompt(Intent.GREETING, "Maria")
        assert prompt.startswith(GREETING_PROMPT)
        assert OUTPUT_RULES in prompt
        assert prompt.endswith("Nome do usuário: Maria")

    def test_override(self):
        prompt = build_system_prompt(Intent.GREETING, "Maria", {"greeting": "Prompt do admin"})
        assert prompt.startswith("Prompt do admin")


class TestChatComplete:
    def test_builds_messages(self):
        provider = Mock()
        provider.generate.return_value = LLMResponse(content="Olá!", model="gpt-4o")
        history = [{"role": "user", "content": "antes"}, {"role": "assistant", "content": "resposta"}]

        with patch("app.services.ai_service.get_llm_provider", return_value=provider):
            assert chat_complete("system", history, "agora") == "Olá!"

        messages = provider.generate.call_args.args[0]
        assert messages[0] == {"role": "system", "content": "system"}
        assert messages[1:3] == history
        assert messages[-1] == {"role": "user", "content": "agora"}

    def test_missing_provider_raises(self):
        with patch("app.services.ai_service.get_llm_provider", return_value=None):
            with pytest.raises(RuntimeError):
                chat_complete("system", [], "oi")

    def test_empty_content_raises(self):
        provider = Mock()
        provider.generate.return_value = LLMResponse(content="", model="gpt-4o")
        with patch("app.services.ai_service.get_llm_provider", return_value=provider):
            with pytest.raises(RuntimeError):
                chat_complete("system", [], "oi")


class TestGenerateReply:
    def test_no_assistant_uses_completion_with_intent_prompt(self, db, message):
        with patch("app.services.ai_service.chat_complete", return_value="Bom dia, Maria!") as complete:
            outcome = generate_reply(db, message, Intent.GREETING)

        assert outcome.source == "completion"
        assert outcome.text == "😊 Bom dia, Maria!"
        system_prompt, history, user_text = complete.call_args.args
        assert system_prompt.startswith(GREETING_PROMPT)
        assert history == []
        assert user_text == "Bom dia"

    def test_prefix_not_duplicated(self, db, message):
        with patch("app.services.ai_service.chat_complete", return_value="😊 Bom dia!"):
            outcome = generate_reply(db, message, Intent.GREETING)
        assert outcome.text == "😊 Bom dia!"

    def test_assistant_answer_wins(self, db, message, assistant):
        reply = AssistantReply(text="Paz!", thread_id="thread_1", assistant_id="biblia")
        with patch("app.services.ai_service.get_assistants_client", return_value=Mock()), patch(
            "app.services.ai_service.run_assistant_turn", return_value=reply
        ), patch("app.services.ai_service.chat_complete") as complete:
            outcome = generate_reply(db, message, Intent.GREETING, assistant)

        assert outcome.source == "assistant"
        assert outcome.text == "Paz!"
        assert outcome.thread_id == "thread_1"
        complete.assert_not_called()

    def test_assistant_failure_falls_back_to_completion(self, db, message, assistant):
        with patch("app.services.ai_service.get_assistants_client", return_value=Mock()), patch(
            "app.services.ai_service.run_assistant_turn", return_value=None
        ), patch("app.services.ai_service.chat_complete", return_value="Olá"):
            outcome = generate_reply(db, message, Intent.GREETING, assistant)
        assert outcome.source == "completion"
        assert outcome.thread_id is None

    def test_provider_error_falls_back_to_canned(self, db, message):
        with patch("app.services.ai_service.chat_complete", side_effect=LLMError("boom", 500)):
            outcome = generate_reply(db, message, Intent.GREETING)
        assert outcome.source == "canned"
        assert outcome.text == canned_reply("Bom dia", "Maria")

    def test_missing_key_falls_back_to_canned(self, db, message, assistant, monkeypatch):
        monkeypatch.setattr(ai_service, "_llm_provider", None)
        monkeypatch.setattr(ai_service, "_assistants_client", None)
        monkeypatch.setattr(ai_service.settings, "openai_api_key", None)
        outcome = generate_reply(db, message, Intent.GREETING, assistant)
        assert outcome.source == "canned"

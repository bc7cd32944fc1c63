import re
import time
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import settings
from app.logging_config import get_logger, mask_phone
from app.schemas.assistant import Assistant
from app.services.assistant_session import run_assistant_turn
from app.services.conversation_service import get_recent_history
from app.services.intent_service import Intent, response_prefix_for, system_prompt_for
from app.services.llm import AssistantsClient, LLMProvider, OpenAIProvider
from app.services.normalization import normalize_text
from app.services.payload_normalizer import InboundMessage

logger = get_logger("ai_service")

OUTPUT_RULES = """IMPORTANTE:
- Seu nome é Agape
- Seja natural, empático e inteligente
- Use emojis apropriados mas sem exagero
- Mantenha respostas entre 50-200 caracteres para WhatsApp
- Seja genuinamente útil e acolhedor
- Para cumprimentos simples como "olá", responda perguntando como a pessoa está"""

GREETING_WORDS = re.compile(r"\b(oi+|ola|bom dia|boa tarde|boa noite)\b")
PRAYER_WORDS = re.compile(r"\b(ore|orar|oracao|reza|rezar|triste|ansios[oa])\b")

_llm_provider: Optional[LLMProvider] = None
_assistants_client: Optional[AssistantsClient] = None


@dataclass
class ReplyOutcome:
    text: str
    source: str  # assistant, completion, canned
    thread_id: Optional[str] = None
    assistant_id: Optional[str] = None


def get_llm_provider() -> Optional[LLMProvider]:
    global _llm_provider
    if _llm_provider is None and settings.openai_api_key:
        _llm_provider = OpenAIProvider(
            api_key=settings.openai_api_key,
            default_model=settings.fallback_model,
            base_url=settings.openai_base_url,
        )
    return _llm_provider


def get_assistants_client() -> Optional[AssistantsClient]:
    global _assistants_client
    if _assistants_client is None and settings.openai_api_key:
        _assistants_client = AssistantsClient(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout_seconds=settings.openai_timeout_seconds,
        )
    return _assistants_client


def canned_reply(text: str, user_name: str) -> str:
    normalized = normalize_text(text)
    if GREETING_WORDS.search(normalized):
        return f"Olá {user_name}, como você está? Sou o Agape, seu companheiro espiritual. 🙏"
    if PRAYER_WORDS.search(normalized):
        return f"🙏 {user_name}, vou orar por você. Que Deus te abençoe e te dê paz neste momento. 💙"
    return f"🤗 Olá {user_name}! Sou o Agape, seu companheiro espiritual. Como posso te ajudar hoje? 😊"


def build_system_prompt(intent: Intent, user_name: str, overrides: Optional[Mapping[str, str]] = None) -> str:
    return f"{system_prompt_for(intent, overrides)}\n\n{OUTPUT_RULES}\n\nNome do usuário: {user_name}"


def chat_complete(system_prompt: str, history: List[dict], user_text: str) -> str:
    """Single-shot completion; raises when the provider is unavailable or answers empty."""
    provider = get_llm_provider()
    if provider is None:
        raise RuntimeError("OPENAI_API_KEY is not configured")

    messages = [{"role": "system", "content": system_prompt}, *history, {"role": "user", "content": user_text}]
    response = provider.generate(
        messages,
        model=settings.fallback_model,
        temperature=settings.fallback_temperature,
        max_tokens=settings.fallback_max_tokens,
        timeout_seconds=settings.openai_timeout_seconds,
    )
    if not response.content:
        raise RuntimeError("Empty completion")
    return response.content


def _with_prefix(intent: Intent, text: str) -> str:
    prefix = response_prefix_for(intent)
    if text.startswith(prefix.strip()):
        return text
    return f"{prefix}{text}"


def generate_reply(
    db: Session,
    message: InboundMessage,
    intent: Intent,
    assistant: Optional[Assistant] = None,
    *,
    prompt_overrides: Optional[Mapping[str, str]] = None,
    exclude_conversation_id: Optional[UUID] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ReplyOutcome:
    """Assistant turn, then generic completion, then canned reply. Never raises."""
    context = {"phone": mask_phone(message.phone), "intent": intent.value}

    if assistant is not None:
        client = get_assistants_client()
        if client is None:
            logger.warning("Assistant selected but OpenAI key is missing", extra={"context": context})
        else:
            reply = run_assistant_turn(client, db, message.phone, assistant, message.text, sleep=sleep)
            if reply:
                return ReplyOutcome(
                    text=reply.text,
                    source="assistant",
                    thread_id=reply.thread_id,
                    assistant_id=reply.assistant_id,
                )
            logger.info("Assistant gave no answer, using completion", extra={"context": context})

    try:
        history = get_recent_history(
            db, message.phone, limit=settings.history_turns, exclude_id=exclude_conversation_id
        )
    except Exception as exc:
        db.rollback()
        logger.warning("History lookup failed", extra={"context": {**context, "error": str(exc)}})
        history = []

    try:
        text = chat_complete(build_system_prompt(intent, message.sender_name, prompt_overrides), history, message.text)
        return ReplyOutcome(text=_with_prefix(intent, text), source="completion")
    except Exception as exc:
        logger.error("Completion fallback failed", extra={"context": {**context, "error": str(exc)}})

    return ReplyOutcome(text=canned_reply(message.text, message.sender_name), source="canned")

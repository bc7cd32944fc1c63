import re
from enum import Enum
from typing import Mapping, Optional, Sequence

from app.logging_config import get_logger
from app.services.normalization import normalize_text

logger = get_logger("intent_service")


class Intent(str, Enum):
    DAILY_VERSE = "daily_verse"  # Versículo do dia / assinatura
    PRAYER_REQUEST = "prayer_request"  # Pedido de oração, sofrimento
    SUPPORT_REQUEST = "support_request"  # Problema técnico, conta, app
    GENERAL_CONVERSATION = "general_conversation"  # Todo o resto
    GREETING = "greeting"  # Cumprimento
    BIBLE_QUESTION = "bible_question"  # Pergunta sobre a Bíblia
    SPIRITUAL_GUIDANCE = "spiritual_guidance"  # Pedido de conselho


class Command(str, Enum):
    REACTIVATE = "reativar"
    STOP = "parar"


# Trigger keys used by older admin screens.
LEGACY_TRIGGER_KEYS = {
    "prayer": Intent.PRAYER_REQUEST,
    "oracao": Intent.PRAYER_REQUEST,
    "verse": Intent.DAILY_VERSE,
    "daily": Intent.DAILY_VERSE,
    "bible": Intent.BIBLE_QUESTION,
    "help": Intent.SUPPORT_REQUEST,
    "support": Intent.SUPPORT_REQUEST,
    "hello": Intent.GREETING,
    "greet": Intent.GREETING,
    "advice": Intent.SPIRITUAL_GUIDANCE,
    "guidance": Intent.SPIRITUAL_GUIDANCE,
}

# Patterns run over normalize_text() output: lowercase, no accents.
INTENT_PATTERNS: tuple[tuple[Intent, re.Pattern], ...] = (
    (
        Intent.SUPPORT_REQUEST,
        re.compile(
            r"\b(suporte|ajuda|problema|erro|nao funciona|nao consigo|dificuldade|como fazer|como usar"
            r"|login|senha|conta|app|aplicativo|plataforma|sistema|atendimento)\b"
        ),
    ),
    (Intent.DAILY_VERSE, re.compile(r"(\bversiculos? (do dia|diario)\b|/versiculo)")),
    (
        Intent.PRAYER_REQUEST,
        re.compile(
            r"\b(oracao|oracoes|orar|ore|orem|reza|rezar|triste|tristeza|ansios[oa]|ansiedade"
            r"|angustia|angustiad[oa]|deprimid[oa]|depressao|medo|sofrendo|doente|luto)\b"
        ),
    ),
    (
        Intent.BIBLE_QUESTION,
        re.compile(
            r"\b(biblia|versiculo|jesus|deus|cristo|evangelho|escritura|parabola|salmos?"
            r"|apostolo|profeta|genesis|apocalipse)\b"
        ),
    ),
    (
        Intent.SPIRITUAL_GUIDANCE,
        re.compile(r"\b(conselhos?|orientacao|direcao|aconselh\w*|discernimento|proposito)\b"),
    ),
    (Intent.GREETING, re.compile(r"\b(oi+|ola|bom dia|boa tarde|boa noite|e ai|saudacoes|paz do senhor)\b")),
)

COMMAND_PATTERNS = (
    (Command.REACTIVATE, re.compile(r"\breativar\b")),
    (Command.STOP, re.compile(r"\bparar\b")),
)

DAILY_VERSE_MENTION = re.compile(r"\bversiculo")
DAILY_VERSE_ENABLE = re.compile(r"(ativar|ligar|comecar|inscrever|quero receber)")
DAILY_VERSE_DISABLE = re.compile(r"(parar|desativar|cancelar|remover|nao quero)")


def resolve_trigger_intent(key: str) -> Intent:
    normalized = normalize_text(key)
    for intent in Intent:
        if intent.value == normalized:
            return intent
    return LEGACY_TRIGGER_KEYS.get(normalized, Intent.GENERAL_CONVERSATION)


def classify(text: str, triggers: Optional[Mapping[str, Sequence[str]]] = None) -> Intent:
    """Classify a message. Deterministic and total: configured triggers, then patterns, then general."""
    normalized = normalize_text(text)

    for key, tokens in (triggers or {}).items():
        for token in tokens or ():
            needle = normalize_text(token)
            if needle and needle in normalized:
                return resolve_trigger_intent(key)

    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(normalized):
            return intent

    return Intent.GENERAL_CONVERSATION


def detect_command(text: str) -> Optional[Command]:
    """Account-level commands. Daily verse phrases ("parar versículo diário") are not commands."""
    normalized = normalize_text(text)
    if DAILY_VERSE_MENTION.search(normalized):
        return None
    for command, pattern in COMMAND_PATTERNS:
        if pattern.search(normalized):
            return command
    return None


def detect_daily_verse_toggle(text: str) -> Optional[bool]:
    """True to subscribe, False to unsubscribe, None when no action is asked for."""
    normalized = normalize_text(text)
    if DAILY_VERSE_DISABLE.search(normalized):
        return False
    if DAILY_VERSE_ENABLE.search(normalized):
        return True
    return None


def conversation_type_for(intent: Intent) -> str:
    match intent:
        case Intent.PRAYER_REQUEST:
            return "prayer"
        case Intent.DAILY_VERSE:
            return "daily_verse"
        case (
            Intent.SUPPORT_REQUEST
            | Intent.GENERAL_CONVERSATION
            | Intent.GREETING
            | Intent.BIBLE_QUESTION
            | Intent.SPIRITUAL_GUIDANCE
        ):
            return "intelligent_chat"
    raise ValueError(f"Unhandled intent: {intent}")


def response_prefix_for(intent: Intent) -> str:
    match intent:
        case Intent.GREETING:
            return "😊 "
        case Intent.PRAYER_REQUEST:
            return "🙏 "
        case Intent.BIBLE_QUESTION:
            return "📖 "
        case Intent.SPIRITUAL_GUIDANCE:
            return "✨ "
        case Intent.SUPPORT_REQUEST:
            return "🔧 "
        case Intent.GENERAL_CONVERSATION:
            return "💙 "
        case Intent.DAILY_VERSE:
            return "📖 "
    raise ValueError(f"Unhandled intent: {intent}")


GREETING_PROMPT = (
    "Você é Agape, um assistente espiritual cristão carinhoso. O usuário está cumprimentando você. "
    "Responda de forma calorosa e acolhedora, perguntando como ele está."
)
PRAYER_PROMPT = (
    "Você é Agape, um assistente espiritual cristão. O usuário precisa de oração. "
    "Crie uma oração personalizada e reconfortante para a situação dele. Use linguagem acolhedora."
)
BIBLE_PROMPT = (
    "Você é Agape, especialista da Bíblia. Responda perguntas bíblicas com conhecimento teológico "
    "e referências bíblicas. Seja didático e acessível."
)
GUIDANCE_PROMPT = (
    "Você é Agape, conselheiro espiritual cristão. Ofereça orientação baseada nos ensinamentos "
    "bíblicos com empatia e sabedoria."
)
SUPPORT_PROMPT = """Você é Agape, assistente de suporte técnico da plataforma Agapefy.

SUA MISSÃO:
- Resolver problemas do usuário de forma rápida e eficaz
- Explicar de forma clara e didática, com passos numerados quando apropriado
- Ser empático e paciente com dificuldades técnicas
- Se não souber algo específico, indicar onde encontrar ajuda
- NÃO usar referências bíblicas para questões técnicas de suporte"""
DAILY_VERSE_PROMPT = (
    "Você é Agape, companheiro espiritual cristão. Compartilhe um versículo bíblico inspirador "
    "com a referência e uma breve reflexão."
)
GENERAL_PROMPT = (
    "Você é Agape, companheiro espiritual cristão inteligente e carinhoso. "
    "Responda naturalmente com empatia e sabedoria cristã."
)


def system_prompt_for(intent: Intent, overrides: Optional[Mapping[str, str]] = None) -> str:
    override = (overrides or {}).get(intent.value)
    if override:
        return override
    match intent:
        case Intent.GREETING:
            return GREETING_PROMPT
        case Intent.PRAYER_REQUEST:
            return PRAYER_PROMPT
        case Intent.BIBLE_QUESTION:
            return BIBLE_PROMPT
        case Intent.SPIRITUAL_GUIDANCE:
            return GUIDANCE_PROMPT
        case Intent.SUPPORT_REQUEST:
            return SUPPORT_PROMPT
        case Intent.DAILY_VERSE:
            return DAILY_VERSE_PROMPT
        case Intent.GENERAL_CONVERSATION:
            return GENERAL_PROMPT
    raise ValueError(f"Unhandled intent: {intent}")

"""Pick which configured assistant answers a message.

Tiers, first hit wins:

1. ``keyword``: an enabled assistant's own keyword list.
2. ``context``: fixed support/sales and biblical vocabulary families.
3. ``structure``: functional questions ("como faço para usar...") and
   problem reports without biblical vocabulary count as support.
4. ``default``: ``defaultAssistantId`` when enabled, else the first enabled.

A ``support_request`` intent decided upstream overrides whatever tier won:
when the chosen assistant is not support or sales typed, the first support
(then sales) assistant takes the message as ``support_bias``.
"""

import json
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from pydantic import ValidationError

from app.logging_config import get_logger
from app.schemas.assistant import Assistant, AssistantRoster, AssistantType
from app.services.intent_service import Intent
from app.services.normalization import normalize_text

logger = get_logger("assistant_router")

SUPPORT_SALES_PATTERNS = (
    re.compile(r"\b(suporte|atendimento)\b"),
    re.compile(r"\b(nao consigo|nao funciona|nao esta funcionando|nao consegui|nao esta dando certo)\b"),
    re.compile(r"\b(erro|problema|dificuldade|preciso de ajuda|preciso ajuda|estou com problema|tenho problema)\b"),
    re.compile(r"\b(como faco|como fazer|como usar|como funciona|como posso|nao sei como|nao entendi como)\b"),
    re.compile(r"\b(login|entrar|acessar|conta|senha|esqueci|esqueceu|recuperar|resetar)\b"),
    re.compile(r"\b(cadastro|registro|registrar|cadastrar|perfil|usuario)\b"),
    re.compile(r"\b(app|aplicativo|plataforma|sistema|site|pagina)\b"),
    re.compile(
        r"\b(pagamento|pagar|pagando|comprar|compra|assinatura|assinar|planos?|precos?|custo|valor"
        r"|quanto custa|quanto e)\b"
    ),
    re.compile(r"\b(desconto|promocao|oferta|especial|beneficio|vantagem)\b"),
    re.compile(r"\b(quero|gostaria|interessad[oa]|desejo|preciso comprar|quero assinar)\b"),
    re.compile(r"\b(o que e|o que faz|para que serve|funcionalidade|recurso|feature)\b"),
    re.compile(r"\b(duvidas?|perguntas?|quero saber|gostaria de saber)\b"),
)

BIBLICAL_PATTERNS = (
    re.compile(r"\b(biblia|versiculos?|escrituras?)\b"),
    re.compile(r"\b(jesus|cristo|deus|senhor|espirito santo|trindade)\b"),
    re.compile(r"\b(evangelhos?|apostolos?|discipulos?)\b"),
    re.compile(r"\b(parabolas?|salmos?|proverbios)\b"),
    re.compile(r"\b(o que a biblia diz|o que diz a biblia|o que significa|explique|ensina|fala sobre)\b"),
    re.compile(r"\b(mateus|marcos|lucas|joao|genesis|exodo|levitico|numeros|deuteronomio|josue|juizes)\b"),
    re.compile(r"\b(oracao|oracoes|orar|reza|rezar|rezo|pedidos?)\b"),
    re.compile(r"\b(fe|esperanca|amor|caridade|perdao|graca)\b"),
)

FUNCTIONAL_QUESTION = re.compile(r"^(como|o que|qual|quando|onde|por que|porque)")
FUNCTIONAL_VERBS = ("fazer", "usar", "funciona")
PROBLEM_WORDS = re.compile(r"\b(nao|erro|problema|dificuldade|ajuda)\b")
CORE_BIBLICAL_WORDS = re.compile(r"\b(biblia|versiculo|jesus|deus)\b")

SUPPORT_TYPES = (AssistantType.SUPPORT, AssistantType.SALES)


@dataclass(frozen=True)
class RouteDecision:
    assistant: Optional[Assistant]
    tier: Optional[str] = None
    matched: tuple[str, ...] = ()


def parse_roster(raw: Optional[str]) -> Optional[AssistantRoster]:
    """Parse the JSON roster setting, skipping malformed assistant entries."""
    if not raw or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except ValueError as exc:
        logger.error("Assistant roster is not valid JSON", extra={"context": {"error": str(exc)}})
        return None
    if not isinstance(data, dict):
        logger.error("Assistant roster is not a JSON object")
        return None

    assistants = []
    for entry in data.get("assistants") or []:
        try:
            assistants.append(Assistant.model_validate(entry))
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid assistant entry",
                extra={"context": {"entry": entry if isinstance(entry, dict) else str(entry), "error": str(exc)}},
            )
    return AssistantRoster(assistants=assistants, defaultAssistantId=data.get("defaultAssistantId"))


def _first_of_type(assistants: Iterable[Assistant], types: Iterable[AssistantType]) -> Optional[Assistant]:
    assistants = list(assistants)
    for assistant_type in types:
        for assistant in assistants:
            if assistant.type == assistant_type:
                return assistant
    return None


def _keyword_match(normalized: str, enabled: list[Assistant]) -> RouteDecision | None:
    for assistant in enabled:
        matched = tuple(kw for kw in assistant.keywords if normalize_text(kw) and normalize_text(kw) in normalized)
        if matched:
            return RouteDecision(assistant, "keyword", matched)
    return None


def _context_match(normalized: str, enabled: list[Assistant]) -> RouteDecision | None:
    if any(pattern.search(normalized) for pattern in SUPPORT_SALES_PATTERNS):
        assistant = _first_of_type(enabled, SUPPORT_TYPES)
        if assistant:
            return RouteDecision(assistant, "context")
    if any(pattern.search(normalized) for pattern in BIBLICAL_PATTERNS):
        assistant = _first_of_type(enabled, (AssistantType.BIBLICAL,))
        if assistant:
            return RouteDecision(assistant, "context")
    return None


def _structure_match(normalized: str, enabled: list[Assistant]) -> RouteDecision | None:
    functional = FUNCTIONAL_QUESTION.match(normalized) and any(verb in normalized for verb in FUNCTIONAL_VERBS)
    problem = PROBLEM_WORDS.search(normalized) and not CORE_BIBLICAL_WORDS.search(normalized)
    if functional or problem:
        # Either support or sales, whichever is listed first.
        for assistant in enabled:
            if assistant.type in SUPPORT_TYPES:
                return RouteDecision(assistant, "structure")
    return None


def _default(roster: AssistantRoster, enabled: list[Assistant]) -> RouteDecision:
    if roster.default_assistant_id:
        for assistant in enabled:
            if assistant.id == roster.default_assistant_id:
                return RouteDecision(assistant, "default")
    if enabled:
        return RouteDecision(enabled[0], "default")
    return RouteDecision(None)


def route(text: str, roster: Optional[AssistantRoster], intent: Optional[Intent] = None) -> RouteDecision:
    if roster is None:
        return RouteDecision(None)
    enabled = roster.enabled
    if not enabled:
        return RouteDecision(None)

    normalized = normalize_text(text)

    decision = (
        _keyword_match(normalized, enabled)
        or _context_match(normalized, enabled)
        or _structure_match(normalized, enabled)
        or _default(roster, enabled)
    )

    if intent == Intent.SUPPORT_REQUEST and decision.assistant.type not in SUPPORT_TYPES:
        support = _first_of_type(enabled, SUPPORT_TYPES)
        if support:
            decision = RouteDecision(support, "support_bias", decision.matched)

    if decision.assistant:
        logger.info(
            "Assistant selected",
            extra={
                "context": {
                    "assistant_id": decision.assistant.id,
                    "assistant_type": decision.assistant.type.value,
                    "tier": decision.tier,
                    "matched": list(decision.matched),
                }
            },
        )
    return decision


def select_assistant(
    text: str,
    roster: Optional[AssistantRoster],
    intent: Optional[Intent] = None,
) -> Optional[Assistant]:
    return route(text, roster, intent).assistant

"""Canonical view over the heterogeneous WhatsApp provider payloads.

Z-API and the older relays deliver the same logical message in several
shapes: fields at the top level or nested under ``data``, the phone as
``phone``/``remoteJid``/``chatId``, and the text spread over a dozen
Baileys-style message objects. Each field is resolved by an ordered tuple of
small pure extractors; :func:`first_match` returns the first one that yields
a usable value together with its tag so tests (and logs) can tell which shape
matched.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from app.services.result import Result

DEFAULT_SENDER_NAME = "Irmão(ã)"

Extractor = tuple[str, Callable[[dict], Any]]


@dataclass(frozen=True)
class InboundMessage:
    phone: str
    text: str
    sender_name: str = DEFAULT_SENDER_NAME
    message_id: Optional[str] = None
    message_type: str = "text"
    from_me: bool = False


def _get_path(payload: Any, *keys: str) -> Any:
    current = payload
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _path(*keys: str) -> Callable[[dict], Any]:
    return lambda payload: _get_path(payload, *keys)


def _message_object(payload: dict) -> dict:
    for candidate in (payload.get("message"), _get_path(payload, "data", "message")):
        if isinstance(candidate, dict):
            return candidate
    return {}


def _in_message(*keys: str) -> Callable[[dict], Any]:
    return lambda payload: _get_path(_message_object(payload), *keys)


def _text_value(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _id_value(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int)):
        text = str(value).strip()
        return text or None
    return None


def _phone_value(value: Any) -> Optional[str]:
    raw = _id_value(value)
    if not raw:
        return None
    digits = re.sub(r"\D", "", raw)
    return digits or None


def first_match(
    payload: dict,
    extractors: Iterable[Extractor],
    accept: Callable[[Any], Any] = _text_value,
) -> tuple[Optional[str], Any]:
    """Return ``(tag, value)`` of the first extractor producing an accepted value."""
    for tag, extractor in extractors:
        value = accept(extractor(payload))
        if value is not None:
            return tag, value
    return None, None


PHONE_EXTRACTORS: tuple[Extractor, ...] = (
    ("phone", _path("phone")),
    ("remoteJid", _path("remoteJid")),
    ("chatId", _path("chatId")),
    ("data.phone", _path("data", "phone")),
    ("data.remoteJid", _path("data", "remoteJid")),
    ("key.remoteJid", _path("key", "remoteJid")),
    ("data.key.remoteJid", _path("data", "key", "remoteJid")),
)

MESSAGE_ID_EXTRACTORS: tuple[Extractor, ...] = (
    ("messageId", _path("messageId")),
    ("id", _path("id")),
    ("data.messageId", _path("data", "messageId")),
    ("data.id", _path("data", "id")),
    ("key.id", _path("key", "id")),
    ("data.key.id", _path("data", "key", "id")),
)

TEXT_EXTRACTORS: tuple[Extractor, ...] = (
    ("message.conversation", _in_message("conversation")),
    ("message.text", _in_message("text")),
    ("message.text.message", _in_message("text", "message")),
    ("message.extendedTextMessage.text", _in_message("extendedTextMessage", "text")),
    ("message.imageMessage.caption", _in_message("imageMessage", "caption")),
    ("message.videoMessage.caption", _in_message("videoMessage", "caption")),
    ("message.documentMessage.caption", _in_message("documentMessage", "caption")),
    (
        "message.buttonsResponseMessage.selectedDisplayText",
        _in_message("buttonsResponseMessage", "selectedDisplayText"),
    ),
    ("message.buttonsResponseMessage.selectedButtonId", _in_message("buttonsResponseMessage", "selectedButtonId")),
    ("message.listResponseMessage.title", _in_message("listResponseMessage", "title")),
    ("message.listResponseMessage.description", _in_message("listResponseMessage", "description")),
    (
        "message.templateButtonReplyMessage.selectedDisplayText",
        _in_message("templateButtonReplyMessage", "selectedDisplayText"),
    ),
    ("message.templateButtonReplyMessage.selectedId", _in_message("templateButtonReplyMessage", "selectedId")),
    ("text.message", _path("text", "message")),
    ("text", _path("text")),
    ("data.message", _path("data", "message")),
    ("data.text", _path("data", "text")),
    ("data.body", _path("data", "body")),
    ("body", _path("body")),
    ("message", _path("message")),
)

SENDER_NAME_EXTRACTORS: tuple[Extractor, ...] = (
    ("senderName", _path("senderName")),
    ("pushName", _path("pushName")),
    ("chatName", _path("chatName")),
    ("data.senderName", _path("data", "senderName")),
    ("data.pushName", _path("data", "pushName")),
)

# Order matters: button replies also carry media-like sub-objects in some relays.
MESSAGE_TYPE_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("button_reply", ("buttonsResponseMessage", "templateButtonReplyMessage")),
    ("list_reply", ("listResponseMessage",)),
    ("sticker", ("stickerMessage",)),
    ("image", ("imageMessage",)),
    ("video", ("videoMessage",)),
    ("audio", ("audioMessage",)),
    ("document", ("documentMessage",)),
    ("contact", ("contactMessage", "contactsArrayMessage")),
    ("location", ("locationMessage",)),
    ("reaction", ("reactionMessage",)),
)

PLACEHOLDER_TYPES = {"sticker", "image", "video", "audio", "document", "contact", "location", "reaction"}


def detect_message_type(payload: dict) -> str:
    message = _message_object(payload)
    for message_type, markers in MESSAGE_TYPE_MARKERS:
        if any(message.get(marker) for marker in markers):
            return message_type
    return "text"


def _is_from_me(payload: dict) -> bool:
    candidates = (
        payload.get("fromMe"),
        _get_path(payload, "data", "fromMe"),
        _get_path(payload, "key", "fromMe"),
        _get_path(payload, "data", "key", "fromMe"),
    )
    for value in candidates:
        if value is True or (isinstance(value, str) and value.strip().lower() == "true"):
            return True
    return False


def parse_body(raw_body: bytes | str | None) -> Result[dict]:
    if raw_body is None:
        return Result.failure("empty_body")
    if isinstance(raw_body, bytes):
        raw_body = raw_body.decode("utf-8", "ignore")
    if not raw_body.strip():
        return Result.failure("empty_body")
    try:
        payload = json.loads(raw_body)
    except (ValueError, TypeError) as exc:
        return Result.failure("invalid_json", str(exc), body_preview=raw_body[:200])
    if not isinstance(payload, dict):
        return Result.failure("invalid_body", f"payload is {type(payload).__name__}")
    return Result.success(payload)


def normalize_payload(payload: dict) -> Result[InboundMessage]:
    """Extract the canonical inbound message from an already decoded payload."""
    if not isinstance(payload, dict):
        return Result.failure("invalid_body")
    from_me = _is_from_me(payload)
    if from_me:
        return Result.failure("own_message")

    _, phone = first_match(payload, PHONE_EXTRACTORS, accept=_phone_value)
    if not phone:
        return Result.failure("no_phone")

    message_type = detect_message_type(payload)
    _, text = first_match(payload, TEXT_EXTRACTORS)
    if not text and message_type in PLACEHOLDER_TYPES:
        text = f"[{message_type}]"
    if not text:
        return Result.failure("empty_message", phone=phone)

    _, message_id = first_match(payload, MESSAGE_ID_EXTRACTORS, accept=_id_value)
    _, sender_name = first_match(payload, SENDER_NAME_EXTRACTORS)

    return Result.success(
        InboundMessage(
            phone=phone,
            text=text,
            sender_name=sender_name or DEFAULT_SENDER_NAME,
            message_id=message_id,
            message_type=message_type,
            from_me=from_me,
        )
    )


def normalize_request_body(raw_body: bytes | str | None) -> Result[InboundMessage]:
    """Decode and normalize a raw webhook body; never raises."""
    parsed = parse_body(raw_body)
    if not parsed.ok:
        return Result(ok=False, error=parsed.error, reason=parsed.reason, details=parsed.details)
    return normalize_payload(parsed.value)

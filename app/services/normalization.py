import re
import unicodedata


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str | None) -> str:
    """Lowercase, drop diacritics and collapse whitespace."""
    if not text:
        return ""
    normalized = strip_accents(text.casefold())
    return re.sub(r"\s+", " ", normalized).strip()


def fingerprint(phone: str, text: str | None) -> str:
    return f"{phone}|{normalize_text(text)}"

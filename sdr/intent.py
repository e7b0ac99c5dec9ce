# sdr/intent.py
"""
Intent Classifier
-----------------
Rule-based intent detection for inbound WhatsApp messages and AI replies.
Every heuristic the conversation flow relies on lives here behind a named
classifier so lexicons can be tuned and tested on their own.
"""

from __future__ import annotations

import re
import unicodedata
from enum import Enum
from typing import Iterable, List, Optional


class Intent(str, Enum):
    PHOTO_REQUEST = "photo_request"
    CHOOSE_HUMAN = "choose_human"
    CHOOSE_AGENT = "choose_agent"
    SCHEDULE_VISIT = "schedule_visit"
    NONE = "none"


# -----------------------------
# Lexicons (accent-free, lowercase)
# -----------------------------
PREFERENCE_QUESTION = {
    "prefere ser atendido por um consultor",
    "prefere ser atendida por um consultor",
    "quer que eu mesma",
    "consultor humano ou",
}
CHOOSE_HUMAN = {"consultor", "corretor", "humano", "atendente", "uma pessoa", "pessoa de verdade"}
CHOOSE_AGENT = {
    "pode me ajudar",
    "com voce",
    "pode ser voce",
    "voce mesma",
    "prefiro voce",
    "pode continuar",
    "continua voce",
    "continue voce",
    "com a susi",
    "por aqui mesmo",
    "pode seguir",
}
PHOTO_REQUEST = {
    "me envia",
    "envia",
    "manda",
    "me manda",
    "quero ver foto",
    "me mostra foto",
    "mostra foto",
    "ver foto",
    "ver imagem",
    "fotos do",
    "fotos da",
    "imagens do",
    "imagens da",
    "detalhes do",
    "detalhes da",
    "informacoes do",
    "informacoes da",
    "informacao do",
    "informacao da",
    "mais sobre o",
    "mais sobre a",
    "mais sobre esse",
    "mais sobre este",
    "quero saber mais sobre",
    "me fala sobre o",
    "me fala sobre a",
}
AFFIRMATIVE = {
    "sim",
    "quero",
    "ok",
    "pode",
    "claro",
    "bora",
    "pode ser",
    "quero sim",
    "sim quero",
    "sim por favor",
    "pode mandar",
    "manda ai",
    "com certeza",
    "aham",
    "isso",
    "beleza",
}
PHOTO_OFFER = {"foto", "fotos", "imagem", "imagens", "detalhes", "quer ver", "posso te mostrar", "posso mostrar"}
SCHEDULING = {
    "agendar",
    "visita",
    "visitar",
    "marcar",
    "conhecer pessoalmente",
    "ir ver",
    "horario",
    "quando posso",
    "disponibilidade",
}
LISTING_MARKERS = {"r$", "quartos", "🏠", "🏡"}
LISTING_MIN_LENGTH = 300

ORDINAL_FIRST = {"primeiro", "primeira", "1"}
ORDINAL_SECOND = {"segundo", "segunda", "2"}
ORDINAL_ALL = {"ambas", "ambos", "todas", "todos", "os dois", "as duas"}
ALL_POSITIONS = -1

_PROPERTY_CODE = re.compile(r"codigo\s+do\s+imovel\s*:?\s*#?\s*(\d+)")


# -----------------------------
# Utils
# -----------------------------
def _norm(text: Optional[str]) -> str:
    """Lowercase, strip accents, collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", stripped.lower()).strip()


def _has_any(text: str, phrases: Iterable[str]) -> bool:
    return any(p in text for p in phrases)


def _match_words(text: str, words: Iterable[str]) -> bool:
    pattern = r"\b(" + "|".join(map(re.escape, words)) + r")\b"
    return bool(re.search(pattern, text))


def _bare(text: str) -> str:
    return re.sub(r"[^\w\s]", "", text).strip()


# -----------------------------
# Classifiers
# -----------------------------
def extract_property_code(message: str) -> Optional[int]:
    """Return the id in 'Código do imóvel: <digits>' if present."""
    match = _PROPERTY_CODE.search(_norm(message))
    return int(match.group(1)) if match else None


def asked_preference(ai_reply: str) -> bool:
    """True when the assistant asked 'human consultant or me?'."""
    return _has_any(_norm(ai_reply), PREFERENCE_QUESTION)


def classify_preference(message: str) -> Intent:
    text = _norm(message)
    if _has_any(text, CHOOSE_HUMAN):
        return Intent.CHOOSE_HUMAN
    if _has_any(text, CHOOSE_AGENT):
        return Intent.CHOOSE_AGENT
    return Intent.NONE


def offered_photos(assistant_message: Optional[str]) -> bool:
    text = _norm(assistant_message)
    return bool(text) and "?" in text and _has_any(text, PHOTO_OFFER)


def is_short_affirmative(message: str) -> bool:
    text = _bare(_norm(message))
    if not text or len(text.split()) > 4:
        return False
    return text in AFFIRMATIVE or _match_words(text, {"sim", "quero", "pode mandar", "manda"})


def classify_photo_request(message: str, last_assistant: Optional[str] = None) -> Intent:
    """Explicit photo/info request, or a short yes to an assistant photo offer."""
    text = _norm(message)
    if _has_any(text, PHOTO_REQUEST):
        return Intent.PHOTO_REQUEST
    if is_short_affirmative(message) and offered_photos(last_assistant):
        return Intent.PHOTO_REQUEST
    return Intent.NONE


def classify_scheduling(*texts: Optional[str]) -> Intent:
    for text in texts:
        if text and _has_any(_norm(text), SCHEDULING):
            return Intent.SCHEDULE_VISIT
    return Intent.NONE


def looks_like_listing(assistant_message: Optional[str]) -> bool:
    if not assistant_message:
        return False
    lowered = assistant_message.lower()
    return _has_any(lowered, LISTING_MARKERS) or len(assistant_message) > LISTING_MIN_LENGTH


def ordinal_positions(message: str) -> List[int]:
    """0-based positions referenced by the message; [ALL_POSITIONS] for 'ambas'/'todas'."""
    text = _bare(_norm(message))
    if not text:
        return []
    if _match_words(text, ORDINAL_ALL):
        return [ALL_POSITIONS]
    positions: List[int] = []
    if _match_words(text, ORDINAL_FIRST):
        positions.append(0)
    if _match_words(text, ORDINAL_SECOND):
        positions.append(1)
    return positions


def classify_intent(message: str, last_assistant: Optional[str] = None) -> Intent:
    """Single dominant label for a message; preference beats photo request beats scheduling."""
    preference = classify_preference(message)
    if preference is not Intent.NONE:
        return preference
    if classify_photo_request(message, last_assistant) is Intent.PHOTO_REQUEST:
        return Intent.PHOTO_REQUEST
    return classify_scheduling(message)


def normalize_text(text: Optional[str]) -> str:
    return _norm(text)


__all__ = [
    "Intent",
    "ALL_POSITIONS",
    "extract_property_code",
    "asked_preference",
    "classify_preference",
    "classify_photo_request",
    "classify_scheduling",
    "classify_intent",
    "looks_like_listing",
    "ordinal_positions",
    "offered_photos",
    "normalize_text",
]

"""
🧠 SDR Runtime Core
-------------------
Centralized utilities for logging, timing, timezone handling,
Brazilian phone helpers and environment introspection.
"""

from __future__ import annotations

import logging
import os
import re
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

# set once per process
_LOGGING_CONFIGURED = False
_CORE_ENV_LOGGED = False
_DIGIT_PATTERN = re.compile(r"\d+")

WHATSAPP_JID_SUFFIX = "@s.whatsapp.net"


# ────────────────────────────────────────────────
# ENV MASKING + LOGGING CONFIG
# ────────────────────────────────────────────────
def _mask_env_value(value: Optional[str]) -> str:
    """Show only the edges of a secret: `abcd...wxyz`."""
    secret = (value or "").strip()
    if not secret:
        return "<missing>"
    keep = 4 if len(secret) > 8 else 2 if len(secret) > 4 else 0
    return f"{secret[:keep]}...{secret[-keep:]}" if keep else "*" * len(secret)


def _resolve_level(value: int | str | None) -> int:
    """Explicit level, else SDR_LOG_LEVEL, else INFO."""
    value = value if value is not None else os.getenv("SDR_LOG_LEVEL", "INFO")
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(value.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: int | str | None = None) -> None:
    """Configure the root logger on first call; later calls are no-ops."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return
    logging.basicConfig(
        level=_resolve_level(level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    _LOGGING_CONFIGURED = True
    _log_core_env()


def get_logger(name: str = "sdr") -> logging.Logger:
    """Named logger; configures logging lazily."""
    if not _LOGGING_CONFIGURED:
        configure_logging()
    return logging.getLogger(name)


# ────────────────────────────────────────────────
# CORE ENV LOGGING
# ────────────────────────────────────────────────
def _log_core_env() -> None:
    """One masked summary of the collaborator settings at startup."""
    global _CORE_ENV_LOGGED
    if _CORE_ENV_LOGGED:
        return
    logger = get_logger("env")

    logger.info(
        "Core env summary:\n"
        "• Evolution URL=%s | Instance=%s | Key=%s | DRY_RUN=%s\n"
        "• OpenAI Key=%s | Model=%s\n"
        "• UpstashREST=%s | RedisTCP=%s | ForceInMemory=%s\n"
        "• Baserow URL=%s | Token=%s | Properties=%s | Leads=%s\n"
        "• Calendly Key=%s | Realtor=%s",
        os.getenv("EVOLUTION_API_URL") or "<missing>",
        os.getenv("EVOLUTION_INSTANCE") or "<missing>",
        _mask_env_value(os.getenv("EVOLUTION_API_KEY")),
        os.getenv("EVOLUTION_DRY_RUN", "false"),
        _mask_env_value(os.getenv("OPENAI_API_KEY")),
        os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        bool(os.getenv("UPSTASH_REDIS_REST_URL")),
        bool(os.getenv("REDIS_URL")),
        os.getenv("SDR_FORCE_IN_MEMORY", "false"),
        os.getenv("BASEROW_API_URL") or "<missing>",
        _mask_env_value(os.getenv("BASEROW_TOKEN")),
        os.getenv("BASEROW_TABLE_ID") or "<missing>",
        os.getenv("BASEROW_LEADS_TABLE_ID") or "<missing>",
        _mask_env_value(os.getenv("CALENDLY_API_KEY")),
        _mask_env_value(os.getenv("REALTOR_PHONE")),
    )
    _CORE_ENV_LOGGED = True


# ────────────────────────────────────────────────
# TIME UTILITIES
# ────────────────────────────────────────────────
def utc_now() -> datetime:
    """Return UTC datetime (always timezone-aware)."""
    return datetime.now(timezone.utc)


def iso_now() -> str:
    """Return ISO8601 UTC timestamp (Z suffix)."""
    return to_iso(utc_now())


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO8601 (with Z or offset, milliseconds tolerated) into an aware UTC datetime."""
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        # drop fractional seconds fromisoformat rejects
        match = re.match(r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.\d+)?(.*)$", text)
        if not match:
            return None
        try:
            parsed = datetime.fromisoformat(match.group(1) + (match.group(2) or ""))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# ────────────────────────────────────────────────
# PHONE UTILITIES
# ────────────────────────────────────────────────
def only_digits(value: str | None) -> str:
    """Extract all digits from a string."""
    if value is None:
        return ""
    return "".join(_DIGIT_PATTERN.findall(str(value)))


def strip_jid(value: str | None) -> str:
    """Remove the WhatsApp JID suffix from a remote id."""
    return (value or "").replace(WHATSAPP_JID_SUFFIX, "").strip()


def normalize_phone_br(value: str | None) -> Optional[str]:
    """Normalize a Brazilian WhatsApp number to 55 + DDD + number digits.

    Returns None when the input cannot be a valid recipient.
    """
    digits = only_digits(value)
    if not digits:
        return None
    if digits.startswith("55") and 12 <= len(digits) <= 13:
        return digits
    if len(digits) == 11:
        return "55" + digits
    if len(digits) > 13 and digits.startswith("55"):
        return digits[:13]
    return digits if len(digits) >= 12 else None


def clean_lead_phone(value: str | None) -> Optional[str]:
    """Digits only; local numbers (10/11 digits) get the 55 country prefix."""
    digits = only_digits(value)
    if not digits:
        return None
    if len(digits) in (10, 11):
        digits = "55" + digits
    return digits


# ────────────────────────────────────────────────
# PERF DECORATORS
# ────────────────────────────────────────────────
def timed_async(label: str):
    """Decorator to time an async function and log its duration."""
    def deco(func: Callable[..., Awaitable[T]]):
        async def wrapper(*args, **kwargs) -> T:
            start = time.time()
            try:
                return await func(*args, **kwargs)
            finally:
                dur = round(time.time() - start, 3)
                get_logger(label).debug("⏱ %s took %ss (async)", label, dur)
        wrapper.__name__ = getattr(func, "__name__", label)
        wrapper.__doc__ = getattr(func, "__doc__", None)
        return wrapper
    return deco

# sdr/ai/responder.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from sdr.config import settings
from sdr.runtime import get_logger, timed_async

logger = get_logger("ai_responder")


# ───────────────────────────────────────────────────────────
# Helpers
# ───────────────────────────────────────────────────────────
def fallback_reply() -> str:
    return (
        "Desculpe, estou com dificuldades técnicas no momento. 😔 "
        "Por favor, tente novamente em instantes ou fale direto com um consultor: "
        f"{settings().human_contact_link}"
    )


def _build_messages(system_prompt: str, history: List[Dict[str, str]], user_message: str) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    for entry in history:
        role = entry.get("role")
        content = entry.get("content")
        if role in ("user", "assistant", "system") and content:
            messages.append({"role": role, "content": content})
    messages.append({"role": "user", "content": user_message})
    return messages


# ───────────────────────────────────────────────────────────
# Client
# ───────────────────────────────────────────────────────────
def _client() -> Optional[Any]:
    cfg = settings()
    if not cfg.openai_api_key:
        return None
    try:
        return AsyncOpenAI(api_key=cfg.openai_api_key, timeout=cfg.openai_timeout, max_retries=cfg.openai_max_retries)
    except Exception as e:
        logger.warning("OpenAI client init failed: %s", e)
        return None


# ───────────────────────────────────────────────────────────
# Public API
# ───────────────────────────────────────────────────────────
@timed_async("ai_reply")
async def generate_reply(system_prompt: str, history: List[Dict[str, str]], user_message: str) -> str:
    """
    Chat completion for one conversational turn.
    Never raises; falls back to the apologetic contact message on any error.
    """
    cli = _client()
    if cli is None:
        logger.warning("OpenAI unavailable or missing API key; using fallback reply.")
        return fallback_reply()

    cfg = settings()
    try:
        resp = await cli.chat.completions.create(
            model=cfg.openai_model,
            messages=_build_messages(system_prompt, history, user_message),
            temperature=cfg.openai_temperature,
            max_tokens=cfg.openai_max_tokens,
        )
        text = (resp.choices[0].message.content or "").strip()
    except Exception as e:
        logger.error("OpenAI completion failed: %s", e)
        return fallback_reply()
    return text or fallback_reply()

# sdr/evolution_sender.py
"""
📡 Evolution Sender — WhatsApp transport over the Evolution API
- POST /message/sendText/{instance}  {number, text}
- POST /message/sendMedia/{instance} {number, mediatype, media, caption}
- Raises EvolutionError on any failure; callers decide how to degrade
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx

from sdr.config import settings
from sdr.runtime import get_logger, strip_jid

logger = get_logger("evolution_sender")


# =========================
# Errors
# =========================


class EvolutionError(RuntimeError):
    """Custom error that carries HTTP metadata and response body."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Any = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.payload = payload

    def __str__(self) -> str:  # pragma: no cover - string formatting helper
        base = super().__str__()
        if self.body in (None, "", b""):
            return base
        body_repr = str(self.body).strip()
        if not body_repr or body_repr in base:
            return base
        return f"{base} | body={body_repr}"


# =========================
# Small helpers
# =========================
def _has_value(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def clean_number(number: Optional[str]) -> str:
    return strip_jid(number)


def _extract_error_body(resp: Any) -> Any:
    """Parse JSON body if available; fallback to plain text."""
    if resp is None:
        return None
    try:
        return resp.json()
    except Exception:
        text = getattr(resp, "text", None)
        return text.strip() if text else None


def _summarize_error_body(body: Any) -> str:
    if body is None:
        return ""
    if isinstance(body, dict):
        response = body.get("response")
        if isinstance(response, dict) and _has_value(response.get("message")):
            return str(response["message"])
        for key in ("message", "error", "detail", "errors"):
            value = body.get(key)
            if _has_value(value):
                return str(value)
    return str(body)


def _endpoint(action: str) -> str:
    cfg = settings()
    if not cfg.evolution_configured:
        raise EvolutionError("Evolution API not configured (EVOLUTION_API_URL / EVOLUTION_API_KEY / EVOLUTION_INSTANCE)")
    return f"{cfg.evolution_api_url}/message/{action}/{cfg.evolution_instance}"


async def _http_post(url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    cfg = settings()
    if cfg.evolution_dry_run:
        logger.info("[DRY RUN] POST %s number=%s", url, payload.get("number"))
        return {"key": {"id": f"DRY_{int(time.time() * 1000)}"}, "status": "PENDING"}

    try:
        async with httpx.AsyncClient(timeout=cfg.http_timeout) as client:
            resp = await client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json", "apikey": cfg.evolution_api_key or ""},
            )
    except httpx.HTTPError as exc:
        raise EvolutionError(f"Evolution request failed: {exc}", payload=payload) from exc

    if resp.is_error:
        body = _extract_error_body(resp)
        summary = _summarize_error_body(body)
        logger.error("Evolution %s error body: %s", resp.status_code, summary)
        message = f"Evolution API error: {resp.status_code}"
        if summary:
            message = f"{message} - {summary}"
        raise EvolutionError(message, status_code=resp.status_code, body=body, payload=payload)
    try:
        return resp.json()
    except ValueError:
        return {"raw": resp.text}


# =========================
# Core Sender
# =========================
async def send_text(number: str, text: str) -> Dict[str, Any]:
    """Send one WhatsApp text. Returns the provider response."""
    to = clean_number(number)
    if not to or not _has_value(text):
        raise EvolutionError("missing number/text", payload={"number": to})
    payload = {"number": to, "text": text}
    resp = await _http_post(_endpoint("sendText"), payload)
    logger.info("📤 WhatsApp text → %s (%s chars)", to, len(text))
    return resp


async def send_media(number: str, media_url: str, caption: str = "", mediatype: str = "image") -> Dict[str, Any]:
    to = clean_number(number)
    if not to or not _has_value(media_url):
        raise EvolutionError("missing number/media", payload={"number": to})
    payload = {"number": to, "mediatype": mediatype, "media": media_url, "caption": caption or ""}
    resp = await _http_post(_endpoint("sendMedia"), payload)
    logger.info("🖼️ WhatsApp %s → %s", mediatype, to)
    return resp


def message_id(resp: Optional[Dict[str, Any]]) -> Optional[str]:
    key = (resp or {}).get("key")
    if isinstance(key, dict):
        return key.get("id")
    return (resp or {}).get("id")

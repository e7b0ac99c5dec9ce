"""
📣 WhatsApp Broadcast Engine
----------------------------
- Normalizes + dedupes recipients (first occurrence wins)
- {{nome}} / {{primeiroNome}} personalization
- 3s between sends, 60s pause after every 20 messages
- Circuit breaker: 5 consecutive failures stops the job
- Progress surfaced as an async stream of event dicts
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional

from sdr import evolution_sender
from sdr.config import (
    BATCH_DELAY_MS,
    BATCH_SIZE,
    LARGE_BROADCAST_WARNING,
    MAX_CONSECUTIVE_FAILURES,
    MESSAGE_DELAY_MS,
    STOPPED_REASON,
)
from sdr.runtime import get_logger, normalize_phone_br

logger = get_logger("broadcast")

SendFn = Callable[[str, str], Awaitable[Any]]
SleepFn = Callable[[float], Awaitable[Any]]

_FULL_NAME = re.compile(r"{{\s*(nome|name)\s*}}", re.IGNORECASE)
_FIRST_NAME = re.compile(r"{{\s*(primeiroNome|firstName)\s*}}", re.IGNORECASE)

DEFAULT_NAME = "cliente"


@dataclass
class Recipient:
    phone: str
    name: str = ""

    @property
    def first_name(self) -> str:
        parts = self.name.split()
        return parts[0] if parts else ""


def apply_template(template: str, recipient: Recipient) -> str:
    full = recipient.name.strip()
    first = recipient.first_name
    text = _FULL_NAME.sub(lambda _m: full or first or DEFAULT_NAME, template)
    return _FIRST_NAME.sub(lambda _m: first or full or DEFAULT_NAME, text)


def build_recipients(raw_records: Iterable[Any]) -> List[Recipient]:
    """Normalized, valid, unique recipients in input order."""
    seen = set()
    out: List[Recipient] = []
    for raw in raw_records or []:
        if not isinstance(raw, dict):
            continue
        number = raw.get("phoneNumber") or raw.get("phone") or raw.get("number")
        phone = normalize_phone_br(str(number) if number is not None else None)
        if not phone:
            logger.debug("Skipping invalid recipient number: %r", number)
            continue
        if phone in seen:
            continue
        seen.add(phone)
        out.append(Recipient(phone=phone, name=str(raw.get("name") or "").strip()))
    return out


async def _default_send(phone: str, text: str) -> Any:
    return await evolution_sender.send_text(phone, text)


async def run_broadcast(
    message: str,
    recipients: List[Recipient],
    send: Optional[SendFn] = None,
    sleep: SleepFn = asyncio.sleep,
) -> AsyncIterator[Dict[str, Any]]:
    """
    Sequential paced send loop yielding progress events.

    Event types: start, progress, batch_pause, stopped, complete.
    Transport exceptions are captured per recipient; nothing escapes the loop.
    """
    send = send or _default_send
    total = len(recipients)
    sent = failed = consecutive = 0
    results: List[Dict[str, Any]] = []

    start: Dict[str, Any] = {"type": "start", "total": total, "sent": 0, "failed": 0, "currentIndex": 0}
    if total > LARGE_BROADCAST_WARNING:
        start["warning"] = f"Envio para {total} contatos pode levar bastante tempo"
    logger.info("📣 Broadcast starting → %d recipients", total)
    yield start

    for idx, rcpt in enumerate(recipients):
        entry: Dict[str, Any] = {"phoneNumber": rcpt.phone, "name": rcpt.name}
        try:
            await send(rcpt.phone, apply_template(message, rcpt))
            sent += 1
            consecutive = 0
            entry["status"] = "sent"
        except Exception as exc:
            failed += 1
            consecutive += 1
            entry["status"] = "failed"
            entry["error"] = str(exc)
            logger.warning("Broadcast send to %s failed: %s", rcpt.phone, exc)
        results.append(entry)

        yield {
            "type": "progress",
            "sent": sent,
            "failed": failed,
            "currentIndex": idx + 1,
            "total": total,
            **entry,
        }

        if consecutive >= MAX_CONSECUTIVE_FAILURES:
            for rest in recipients[idx + 1:]:
                failed += 1
                results.append({"phoneNumber": rest.phone, "name": rest.name, "status": "failed", "error": STOPPED_REASON})
            logger.error("🛑 Broadcast stopped after %d consecutive failures (%d/%d processed)", consecutive, idx + 1, total)
            yield {
                "type": "stopped",
                "reason": STOPPED_REASON,
                "sent": sent,
                "failed": failed,
                "currentIndex": idx + 1,
                "total": total,
                "results": results,
            }
            return

        remaining = total - (idx + 1)
        if not remaining:
            break
        if (idx + 1) % BATCH_SIZE == 0:
            yield {
                "type": "batch_pause",
                "sent": sent,
                "failed": failed,
                "currentIndex": idx + 1,
                "total": total,
                "pauseSeconds": BATCH_DELAY_MS / 1000,
            }
            await sleep(BATCH_DELAY_MS / 1000)
        else:
            await sleep(MESSAGE_DELAY_MS / 1000)

    logger.info("✅ Broadcast complete → sent=%d failed=%d", sent, failed)
    yield {
        "type": "complete",
        "sent": sent,
        "failed": failed,
        "currentIndex": total,
        "total": total,
        "results": results,
    }


async def collect_broadcast(
    message: str,
    recipients: List[Recipient],
    send: Optional[SendFn] = None,
    sleep: SleepFn = asyncio.sleep,
) -> Dict[str, Any]:
    """Drain the event stream into one buffered summary."""
    summary: Dict[str, Any] = {"success": True, "total": len(recipients), "sent": 0, "failed": 0, "stopped": False, "results": []}
    async for event in run_broadcast(message, recipients, send=send, sleep=sleep):
        if event["type"] in ("complete", "stopped"):
            summary.update(
                sent=event["sent"],
                failed=event["failed"],
                stopped=event["type"] == "stopped",
                results=event["results"],
            )
            if event["type"] == "stopped":
                summary["reason"] = event["reason"]
    return summary

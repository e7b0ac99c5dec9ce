"""
WhatsApp SDR Engine — FastAPI app
- Evolution / Calendly / Typebot webhooks
- Broadcast (SSE or buffered JSON)
- Operator + Baserow CRUD endpoints
- Background reminder sweep + in-memory context janitor
"""

from __future__ import annotations

import asyncio
from typing import List

from fastapi import FastAPI

from sdr import __version__, scheduling
from sdr.config import MEMORY_CONTEXT_MAX_AGE, settings
from sdr.conversation_store import purge_stale_memory_conversations
from sdr.kv_store import STORE
from sdr.routes.admin import router as admin_router
from sdr.routes.baserow import router as baserow_router
from sdr.routes.broadcast import router as broadcast_router
from sdr.routes.webhooks import router as webhooks_router
from sdr.runtime import configure_logging, get_logger, iso_now

configure_logging()
logger = get_logger("main")

JANITOR_INTERVAL_SEC = 60 * 60

app = FastAPI(title="WhatsApp SDR Engine", version=__version__)
app.include_router(webhooks_router)
app.include_router(broadcast_router)
app.include_router(admin_router)
app.include_router(baserow_router)

_background: List[asyncio.Task] = []


async def _memory_janitor() -> None:
    while True:
        await asyncio.sleep(JANITOR_INTERVAL_SEC)
        try:
            await purge_stale_memory_conversations(MEMORY_CONTEXT_MAX_AGE)
        except Exception:
            logger.exception("In-memory context purge failed")


# ─────────────────────────── Startup / shutdown ─────────────────────────
@app.on_event("startup")
async def startup_checks():
    cfg = settings()
    missing = []
    if not cfg.evolution_configured:
        missing.append("EVOLUTION_API_URL|EVOLUTION_API_KEY|EVOLUTION_INSTANCE")
    if not cfg.openai_api_key:
        missing.append("OPENAI_API_KEY")
    if not cfg.baserow_configured:
        missing.append("BASEROW_API_URL|BASEROW_TOKEN|BASEROW_TABLE_ID")
    if missing:
        logger.warning("🚨 Missing env vars → %s", ", ".join(missing))

    _background.append(asyncio.create_task(scheduling.reminder_sweeper(cfg.reminder_sweep_seconds)))
    _background.append(asyncio.create_task(_memory_janitor()))
    logger.info("✅ SDR engine started (kv backend: %s)", STORE.backend_name())


@app.on_event("shutdown")
async def shutdown_tasks():
    for task in _background:
        task.cancel()
    await asyncio.gather(*_background, return_exceptions=True)
    _background.clear()


# ─────────────────────────── Health ────────────────────────────────
@app.get("/health")
async def health():
    return {
        "ok": True,
        "status": "ok",
        "service": "SDR Agent",
        "version": __version__,
        "timestamp": iso_now(),
        "kv": {"backend": STORE.backend_name(), "connected": await STORE.ping()},
    }

# sdr/routes/broadcast.py
"""
POST /api/whatsapp/broadcast

Accept: text/event-stream → one `data: {json}` frame per engine event.
Anything else → buffered JSON summary once the job finishes.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Header, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from sdr.broadcast import build_recipients, collect_broadcast, run_broadcast
from sdr.config import settings
from sdr.runtime import get_logger

logger = get_logger("broadcast_route")

router = APIRouter(prefix="/api/whatsapp", tags=["broadcast"])


class BroadcastRequest(BaseModel):
    message: Optional[str] = None
    recipients: Optional[List[Dict[str, Any]]] = None


def _sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


@router.post("/broadcast")
async def broadcast_endpoint(req: BroadcastRequest, accept: Optional[str] = Header(None)):
    message = (req.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")
    if not req.recipients:
        raise HTTPException(status_code=400, detail="Recipients list is required")
    recipients = build_recipients(req.recipients)
    if not recipients:
        raise HTTPException(status_code=400, detail="No valid recipients")
    if not settings().evolution_configured:
        raise HTTPException(status_code=500, detail="Evolution API configuration missing")

    logger.info("📣 Broadcast requested: %d valid of %d recipients", len(recipients), len(req.recipients))

    if "text/event-stream" in (accept or ""):
        async def stream():
            try:
                async for event in run_broadcast(message, recipients):
                    yield _sse(event)
            except Exception as e:
                logger.exception("Broadcast stream aborted")
                yield _sse({"type": "error", "error": str(e)})

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    return await collect_broadcast(message, recipients)

# sdr/routes/admin.py
"""
🛠 Operator endpoints: conversation inspection, stats, reminders,
manual scheduling link, manual send and a dry AI turn.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from sdr import agent, catalog, evolution_sender, scheduling
from sdr.conversation_store import get_conversation, get_stats, list_conversations
from sdr.datastore import list_properties
from sdr.evolution_sender import EvolutionError
from sdr.intent import classify_intent
from sdr.runtime import get_logger, strip_jid

logger = get_logger("admin")

router = APIRouter(prefix="/api", tags=["admin"])


class ScheduleVisitRequest(BaseModel):
    customerPhone: Optional[str] = None
    customerName: Optional[str] = None
    customerEmail: Optional[str] = None
    propertyId: Optional[int] = None


class SendMessageRequest(BaseModel):
    phoneNumber: Optional[str] = None
    message: Optional[str] = None


class TestAIRequest(BaseModel):
    phoneNumber: Optional[str] = None
    message: Optional[str] = None
    propertyId: Optional[int] = None


def _summary(ctx) -> Dict[str, Any]:
    return {
        "phoneNumber": ctx.phone,
        "messages": len(ctx.history),
        "propertyId": ctx.property_id,
        "qualificationState": ctx.qualification.value,
        "schedulingInProgress": ctx.scheduling_in_progress,
        "updatedAt": ctx.updated_at,
    }


# ───────────────────────────── Conversations ─────────────────────────────
@router.get("/conversations")
async def conversations():
    items = await list_conversations()
    return {"success": True, "count": len(items), "conversations": [_summary(c) for c in items]}


@router.get("/conversations/{phone}")
async def conversation_detail(phone: str):
    ctx = await get_conversation(strip_jid(phone))
    if ctx is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"success": True, "phoneNumber": ctx.phone, "conversation": ctx.to_dict()}


@router.get("/sdr-stats")
async def sdr_stats():
    return {"success": True, "stats": await get_stats()}


@router.get("/reminders")
async def reminders():
    items = await scheduling.list_reminders()
    return {"success": True, "count": len(items), "reminders": items}


# ───────────────────────────── Actions ─────────────────────────────
@router.post("/schedule-visit")
async def schedule_visit(req: ScheduleVisitRequest):
    if not req.customerPhone or not req.customerName or req.propertyId is None:
        raise HTTPException(status_code=400, detail="Customer phone, name, and property ID are required")
    prop = catalog.find_by_id(await list_properties(), req.propertyId)
    if prop is None:
        raise HTTPException(status_code=404, detail="Property not found")
    result = await scheduling.schedule_property_visit(
        strip_jid(req.customerPhone), req.customerName, req.customerEmail or "", prop
    )
    if not result.get("success"):
        raise HTTPException(status_code=500, detail=result.get("error") or "Failed to schedule visit")
    return result


@router.post("/send-message")
async def send_message(req: SendMessageRequest):
    if not req.phoneNumber or not req.message:
        raise HTTPException(status_code=400, detail="Phone number and message are required")
    try:
        resp = await evolution_sender.send_text(req.phoneNumber, req.message)
    except EvolutionError as e:
        logger.error("Manual send to %s failed: %s", req.phoneNumber, e)
        raise HTTPException(status_code=500, detail=f"Failed to send message: {e}")
    return {"success": True, "message": "Message sent successfully", "messageId": evolution_sender.message_id(resp)}


@router.post("/test-ai")
async def test_ai(req: TestAIRequest):
    """Runs a full agent turn (state is persisted) without sending anything."""
    if not req.phoneNumber or not req.message:
        raise HTTPException(status_code=400, detail="Phone number and message are required")
    prior = await get_conversation(strip_jid(req.phoneNumber))
    label = classify_intent(req.message, prior.last_assistant_message() if prior else None)
    result = await agent.process_message(req.phoneNumber, req.message, req.propertyId)
    return {
        "success": True,
        **result.to_dict(),
        "intent": label.value,
        "context": {"historyLength": len(result.context.history), "propertyId": result.context.property_id},
    }

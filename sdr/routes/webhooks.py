# sdr/routes/webhooks.py
"""
Inbound webhooks: WhatsApp (Evolution), Calendly, Typebot.

WhatsApp and Calendly always answer 200 so the providers never retry.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request

from sdr import agent, catalog, evolution_sender, scheduling
from sdr.calendly_client import format_scheduling_message
from sdr.config import COMPANY_PHONE_DISPLAY
from sdr.conversation_store import save_typebot_lead
from sdr.datastore import list_properties
from sdr.evolution_sender import EvolutionError
from sdr.runtime import get_logger, strip_jid
from sdr.typebot import extract_lead_info, extract_phone

logger = get_logger("webhooks")

router = APIRouter(prefix="/webhook", tags=["webhooks"])

SCHEDULING_ERROR_MESSAGE = (
    "Desculpe, tive um problema ao criar o link de agendamento. "
    f"Por favor, entre em contato pelo telefone {COMPANY_PHONE_DISPLAY}."
)
PROPERTY_NEEDED_MESSAGE = (
    "Para agendar uma visita, preciso que você escolha um imóvel específico primeiro. "
    "Posso te mostrar algumas opções?"
)


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def extract_inbound_text(data: Dict[str, Any]) -> Optional[str]:
    message = data.get("message") or {}
    text = message.get("conversation") or (message.get("extendedTextMessage") or {}).get("text")
    return text or None


# ───────────────────────────────────────────────────────────
# Delivery of one agent decision
# ───────────────────────────────────────────────────────────
async def _send_scheduling(phone: str, result: agent.AgentResult) -> None:
    prop_id = (result.scheduling_info or {}).get("propertyId")
    prop = catalog.find_by_id(await list_properties(), prop_id) if prop_id is not None else None
    if prop is None:
        await evolution_sender.send_text(phone, PROPERTY_NEEDED_MESSAGE)
        return
    info = result.context.customer_info
    name = info.get("name") or phone
    outcome = await scheduling.schedule_property_visit(phone, name, info.get("email") or "", prop)
    if outcome.get("success"):
        text = format_scheduling_message(name, outcome["propertyTitle"], outcome["schedulingLink"])
        await evolution_sender.send_text(phone, text)
        logger.info("🗓️ Scheduling link sent to %s", phone)
    else:
        await evolution_sender.send_text(phone, SCHEDULING_ERROR_MESSAGE)


async def deliver(phone: str, result: agent.AgentResult, message: str) -> None:
    """Scheduling link, else property details, else the AI text; handoff notice on top."""
    if result.scheduling_info and result.scheduling_info.get("wantsToSchedule"):
        await _send_scheduling(phone, result)
    elif result.should_send_property_details:
        logger.info("📸 Sending %d property detail set(s) to %s", len(result.properties_to_send), phone)
        for prop in result.properties_to_send:
            await agent.send_property_details(phone, prop)
    else:
        await evolution_sender.send_text(phone, result.response)
        logger.info("💬 Reply sent to %s", phone)

    if result.handoff:
        await agent.notify_human_handoff(phone, result.context, message)


# ───────────────────────────────────────────────────────────
# Routes
# ───────────────────────────────────────────────────────────
@router.post("/whatsapp")
async def whatsapp_webhook(request: Request):
    try:
        body = await _json_body(request)
        data = body.get("data") or {}
        key = data.get("key") or {}
        if body.get("event") != "messages.upsert" or key.get("fromMe") is not False:
            return {"success": True}
        text = extract_inbound_text(data)
        phone = strip_jid(key.get("remoteJid"))
        if not text or not phone:
            return {"success": True}

        logger.info("📥 Message from %s: %s", phone, text)
        result = await agent.process_message(phone, text)
        await deliver(phone, result, text)
        return {"success": True}
    except EvolutionError as e:
        logger.error("WhatsApp delivery failed: %s", e)
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.exception("WhatsApp webhook error")
        return {"success": False, "error": str(e)}


@router.post("/calendly")
async def calendly_webhook(request: Request):
    try:
        body = await _json_body(request)
        return await scheduling.handle_calendly_webhook(body)
    except Exception as e:
        logger.exception("Calendly webhook error")
        return {"success": False, "error": str(e)}


@router.post("/typebot")
async def typebot_webhook(request: Request):
    body = await _json_body(request)
    phone = extract_phone(body)
    if not phone:
        raise HTTPException(status_code=400, detail="Phone number is required")
    try:
        lead_info = extract_lead_info(body)
        lead = await save_typebot_lead(phone, lead_info)
    except Exception as e:
        logger.exception("Typebot webhook error")
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True, "phoneNumber": phone, "leadInfo": lead.lead_info}

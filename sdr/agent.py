"""
🤖 SDR Agent — per-message conversation flow
-------------------------------------------
Decides, for each inbound WhatsApp message, whether the caller should send
the AI text, auto-send property details, start scheduling, or hand the
customer to a human realtor. Only ``send_property_details`` and
``notify_human_handoff`` talk to the transport themselves.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from sdr import catalog, evolution_sender
from sdr.ai.prompts import build_system_prompt, seed_property_note
from sdr.ai.responder import generate_reply
from sdr.config import IMAGE_DELAY_SEC, settings
from sdr.conversation_store import (
    ConversationContext,
    CustomerHistory,
    TypebotLead,
    get_conversation,
    get_typebot_lead,
    mark_typebot_processed,
    record_customer_contact,
    save_conversation,
)
from sdr.datastore import list_properties
from sdr.evolution_sender import EvolutionError
from sdr.intent import (
    ALL_POSITIONS,
    Intent,
    classify_photo_request,
    classify_scheduling,
    extract_property_code,
    looks_like_listing,
    ordinal_positions,
)
from sdr.lead_scorer import LeadScore, evaluate_lead
from sdr.qualification import QualificationState, advance
from sdr.runtime import get_logger, parse_iso, strip_jid, utc_now
from sdr.typebot import format_lead_for_ai

logger = get_logger("sdr_agent")

LOCAL_TZ = ZoneInfo("America/Sao_Paulo")


class CustomerState(str, Enum):
    NEW = "NEW"
    RETURNING_SAME_DAY = "RETURNING_SAME_DAY"
    RETURNING_WITHIN_WEEK = "RETURNING_WITHIN_WEEK"
    RETURNING_LATER = "RETURNING_LATER"
    TYPEBOT_LEAD = "TYPEBOT_LEAD"


@dataclass
class AgentResult:
    response: str
    context: ConversationContext
    customer_state: CustomerState
    should_send_property_details: bool = False
    properties_to_send: List[Dict[str, Any]] = field(default_factory=list)
    scheduling_info: Optional[Dict[str, Any]] = None
    handoff: bool = False
    lead_score: Optional[LeadScore] = None

    @property
    def property_to_send(self) -> Optional[Dict[str, Any]]:
        return self.properties_to_send[0] if self.properties_to_send else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "customerState": self.customer_state.value,
            "shouldSendPropertyDetails": self.should_send_property_details,
            "propertiesToSend": [p.get("id") for p in self.properties_to_send],
            "schedulingInfo": self.scheduling_info,
            "handoff": self.handoff,
            "qualificationState": self.context.qualification.value,
            "leadScore": self.lead_score.to_dict() if self.lead_score else None,
        }


# ============================================================
# CUSTOMER STATE
# ============================================================


def classify_customer(
    previous: Optional[CustomerHistory],
    pending_typebot: Optional[TypebotLead] = None,
    now: Optional[datetime] = None,
) -> CustomerState:
    """Derived each turn from the history as it was before this message."""
    if pending_typebot is not None and not pending_typebot.processed:
        return CustomerState.TYPEBOT_LEAD
    if previous is None:
        return CustomerState.NEW
    last = parse_iso(previous.last_contact)
    if last is None:
        return CustomerState.NEW
    now = now or utc_now()
    if last.astimezone(LOCAL_TZ).date() == now.astimezone(LOCAL_TZ).date():
        return CustomerState.RETURNING_SAME_DAY
    if (now - last).days < 7:
        return CustomerState.RETURNING_WITHIN_WEEK
    return CustomerState.RETURNING_LATER


# ============================================================
# PROPERTY DISAMBIGUATION
# ============================================================


def _latest_listing(history: List[Dict[str, str]]) -> Optional[str]:
    for entry in reversed(history):
        if entry.get("role") == "assistant" and looks_like_listing(entry.get("content")):
            return entry.get("content")
    return None


def resolve_properties(
    message: str,
    ai_reply: str,
    ctx: ConversationContext,
    active: List[Dict[str, Any]],
    prior_history: List[Dict[str, str]],
) -> List[Dict[str, Any]]:
    """Which active properties the customer means, tried in a fixed order."""
    # (a) type + neighborhood named in the message or the reply
    for text in (message, ai_reply):
        hit = catalog.match_type_and_neighborhood(text, active)
        if hit is not None:
            return [hit]

    # (b) "o primeiro", "a segunda", "ambas" against the last listing
    positions = ordinal_positions(message)
    listing = _latest_listing(prior_history) if positions else None
    if listing:
        mentioned = catalog.mentioned_in(listing, active)
        if ALL_POSITIONS in positions and mentioned:
            return mentioned
        picked = [mentioned[i] for i in positions if 0 <= i < len(mentioned)]
        if picked:
            return picked

    # (c) last property discussed, (d) landing property
    for prop_id in (ctx.property_id, ctx.origin_property_id):
        hit = catalog.find_by_id(active, prop_id) if prop_id is not None else None
        if hit is not None:
            return [hit]

    # (e) weak keyword match
    hit = catalog.weak_title_match(message, active)
    return [hit] if hit is not None else []


# ============================================================
# MAIN FLOW
# ============================================================


async def process_message(phone: str, message: str, property_id: Optional[int] = None) -> AgentResult:
    phone = strip_jid(phone)

    code = extract_property_code(message)
    if code is not None:
        property_id = code

    typebot_lead = await get_typebot_lead(phone)
    pending_typebot = typebot_lead if typebot_lead is not None and not typebot_lead.processed else None

    history, previous = await record_customer_contact(phone, source="typebot" if pending_typebot else "direct")
    customer_state = classify_customer(previous, pending_typebot)

    ctx = await get_conversation(phone)
    if ctx is None:
        ctx = ConversationContext(phone=phone)
    first_turn = not ctx.history
    if pending_typebot is not None:
        for key in ("name", "email"):
            value = pending_typebot.lead_info.get(key)
            if value and not ctx.customer_info.get(key):
                ctx.customer_info[key] = value

    all_props = await list_properties()
    active = [p for p in all_props if catalog.is_active(p)]

    if property_id is not None:
        if first_turn and ctx.origin_property_id is None:
            landing = catalog.find_by_id(all_props, property_id)
            if landing is not None:
                ctx.origin_property_id = int(property_id)
                ctx.history.append({"role": "system", "content": seed_property_note(catalog.title(landing), int(property_id))})
        ctx.property_id = int(property_id)

    system_prompt = build_system_prompt(
        catalog.format_properties_for_ai(active),
        customer_state.value,
        typebot_block=format_lead_for_ai(pending_typebot.lead_info) if pending_typebot else None,
        qualification_state=ctx.qualification.value,
    )
    prior_history = list(ctx.history)
    last_assistant = ctx.last_assistant_message()
    ai_reply = await generate_reply(system_prompt, prior_history, message)

    before = ctx.qualification
    ctx.qualification = advance(before, message, ai_reply)
    handoff = ctx.qualification is QualificationState.QUALIFIED_HUMAN and before is not QualificationState.QUALIFIED_HUMAN
    if ctx.qualification is not before:
        logger.info("🔀 %s qualification %s → %s", phone, before.value, ctx.qualification.value)

    ctx.append("user", message)
    ctx.append("assistant", ai_reply)

    explicit_request = classify_photo_request(message, last_assistant) is Intent.PHOTO_REQUEST
    to_send: List[Dict[str, Any]] = []
    if (ctx.qualification_completed or explicit_request) and active:
        to_send = resolve_properties(message, ai_reply, ctx, active, prior_history)
        if not explicit_request:
            to_send = [p for p in to_send if catalog.property_id(p) not in ctx.details_sent]
        if to_send:
            ctx.property_id = catalog.property_id(to_send[0])
            for prop in to_send:
                pid = catalog.property_id(prop)
                if pid is not None and pid not in ctx.details_sent:
                    ctx.details_sent.append(pid)
        else:
            logger.info("No property resolved for %s; sending AI text only", phone)

    scheduling_info = None
    if classify_scheduling(message, ai_reply) is Intent.SCHEDULE_VISIT:
        scheduling_info = {"wantsToSchedule": True, "propertyId": ctx.property_id or ctx.origin_property_id}

    await save_conversation(ctx)

    if pending_typebot is not None:
        await mark_typebot_processed(phone)

    score: Optional[LeadScore] = None
    try:
        score = await evaluate_lead(phone, ctx, history, typebot_lead)
    except Exception:
        logger.warning("Lead evaluation failed for %s", phone, exc_info=True)

    return AgentResult(
        response=ai_reply,
        context=ctx,
        customer_state=customer_state,
        should_send_property_details=bool(to_send),
        properties_to_send=to_send,
        scheduling_info=scheduling_info,
        handoff=handoff,
        lead_score=score,
    )


# ============================================================
# OUTBOUND SEQUENCES
# ============================================================


async def send_property_details(
    phone: str,
    prop: Dict[str, Any],
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> bool:
    """Details text, up to 3 photos one second apart, then the call to action."""
    name = catalog.title(prop)
    try:
        await evolution_sender.send_text(phone, catalog.details_message(prop))
        for idx, url in enumerate(catalog.image_urls(prop)):
            if idx > 0:
                await sleep(IMAGE_DELAY_SEC)
            await evolution_sender.send_media(phone, url, caption=name if idx == 0 else "")
        await evolution_sender.send_text(phone, catalog.CALL_TO_ACTION)
    except EvolutionError as exc:
        logger.error("Property details for %s (#%s) failed: %s", phone, prop.get("id"), exc)
        return False
    logger.info("🏠 Property details sent to %s: %s (#%s)", phone, name, prop.get("id"))
    return True


def handoff_message(phone: str, ctx: ConversationContext, last_message: str, property_title: Optional[str]) -> str:
    name = ctx.customer_info.get("name") or "Não informado"
    return (
        "🙋 *CLIENTE PEDIU ATENDIMENTO HUMANO*\n\n"
        f"*Cliente:* {name}\n"
        f"*Telefone:* {phone}\n"
        f"*Imóvel de interesse:* {property_title or 'Não informado'}\n\n"
        f"*Última mensagem:* {last_message}"
    )


async def notify_human_handoff(phone: str, ctx: ConversationContext, last_message: str) -> bool:
    prop_title = None
    prop_id = ctx.property_id or ctx.origin_property_id
    if prop_id is not None:
        prop = catalog.find_by_id(await list_properties(), prop_id)
        prop_title = catalog.title(prop) if prop else None
    try:
        await evolution_sender.send_text(settings().realtor_phone, handoff_message(phone, ctx, last_message, prop_title))
    except EvolutionError as exc:
        logger.error("Handoff notification for %s failed: %s", phone, exc)
        return False
    logger.info("🙋 Realtor notified of handoff for %s", phone)
    return True

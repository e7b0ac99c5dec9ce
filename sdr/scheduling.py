"""
Visit scheduling workflow

✓ Prefilled Calendly link per customer + property
✓ invitee.created → confirmation to customer, notification to realtor, reminder record
✓ invitee.canceled → reminder record deleted, both parties notified
✓ Reminders are stored records swept periodically (survive restarts)
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sdr import calendly_client, catalog, evolution_sender
from sdr.config import REMINDER_LEAD_MINUTES, REMINDER_TTL, settings
from sdr.conversation_store import (
    ConversationContext,
    ScheduledReminder,
    delete_reminder,
    get_conversation,
    list_reminders as _stored_reminders,
    save_conversation,
    save_reminder,
)
from sdr.evolution_sender import EvolutionError
from sdr.runtime import get_logger, iso_now, normalize_phone_br, only_digits, parse_iso, to_iso, utc_now

logger = get_logger("scheduling")


async def _send(number: str, text: str) -> bool:
    try:
        await evolution_sender.send_text(number, text)
        return True
    except EvolutionError as exc:
        logger.error("WhatsApp send to %s failed: %s", number, exc)
        return False


def _phone_from_answer(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    return normalize_phone_br(raw) or only_digits(raw) or None


# ───────────────────────────────────────────────────────────
# Scheduling link
# ───────────────────────────────────────────────────────────
async def schedule_property_visit(
    phone: str,
    name: Optional[str],
    email: Optional[str],
    prop: Dict[str, Any],
) -> Dict[str, Any]:
    """Build the prefilled link and mark scheduling in progress on the conversation."""
    title = catalog.title(prop)
    address = catalog.address(prop)
    link_to_property = catalog.property_link(prop)
    customer_name = name or "Cliente"
    try:
        link = calendly_client.build_scheduling_link(
            customer_name, email, phone, prop.get("id"), title, address, link_to_property
        )
    except Exception as exc:
        logger.error("Scheduling link for %s failed: %s", phone, exc)
        return {"success": False, "error": str(exc)}

    ctx = await get_conversation(phone) or ConversationContext(phone=phone)
    ctx.scheduling_in_progress = True
    ctx.scheduling_data = {
        "propertyId": prop.get("id"),
        "propertyTitle": title,
        "propertyAddress": address,
        "propertyLink": link_to_property,
        "schedulingLink": link,
        "customerName": customer_name,
        "customerEmail": email,
        "createdAt": iso_now(),
    }
    await save_conversation(ctx)
    logger.info("🗓️ Scheduling link created for %s (#%s)", phone, prop.get("id"))
    return {"success": True, "schedulingLink": link, "propertyTitle": title, "customerName": customer_name}


# ───────────────────────────────────────────────────────────
# Reminders
# ───────────────────────────────────────────────────────────
async def schedule_reminder(
    event_time: str,
    *,
    event_uri: str,
    customer_name: str,
    customer_phone: str,
    property_title: str,
    property_address: str,
    invitee_uri: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[ScheduledReminder]:
    """Store a reminder due REMINDER_LEAD_MINUTES before the visit. Past due times are skipped."""
    when = parse_iso(event_time)
    if when is None:
        logger.warning("Unparseable event time %r; reminder skipped", event_time)
        return None
    reminder_at = when - timedelta(minutes=REMINDER_LEAD_MINUTES)
    now = now or utc_now()
    if reminder_at <= now:
        logger.info("Reminder time is in the past, skipping (%s)", event_uri)
        return None
    reminder = ScheduledReminder(
        event_uri=event_uri,
        invitee_uri=invitee_uri,
        customer_name=customer_name,
        customer_phone=customer_phone,
        realtor_phone=settings().realtor_phone,
        property_title=property_title,
        property_address=property_address,
        event_time=event_time,
        reminder_time=to_iso(reminder_at),
    )
    # keep the record alive past its due time plus the grace window
    ttl = int((reminder_at - now).total_seconds()) + REMINDER_TTL
    if not await save_reminder(reminder, ttl=ttl):
        logger.warning("Reminder %s kept in memory only", event_uri)
    logger.info("⏰ Reminder scheduled for %s (%s)", reminder.reminder_time, event_uri)
    return reminder


async def send_reminders(reminder: ScheduledReminder) -> None:
    await _send(
        reminder.customer_phone,
        calendly_client.format_reminder_message(
            reminder.customer_name, reminder.property_title, reminder.property_address, reminder.event_time
        ),
    )
    await _send(
        reminder.realtor_phone or settings().realtor_phone,
        calendly_client.format_realtor_reminder(
            reminder.customer_name,
            reminder.customer_phone,
            reminder.property_title,
            reminder.property_address,
            reminder.event_time,
        ),
    )


async def fire_due_reminders(now: Optional[datetime] = None) -> int:
    """Send and delete every reminder whose due time has passed."""
    now = now or utc_now()
    fired = 0
    for reminder in await _stored_reminders():
        if not reminder.due(now):
            continue
        # delete first so a slow send never double-fires on the next sweep
        await delete_reminder(reminder.event_uri)
        await send_reminders(reminder)
        fired += 1
    if fired:
        logger.info("⏰ Fired %d visit reminder(s)", fired)
    return fired


async def cancel_reminder(event_uri: str) -> None:
    await delete_reminder(event_uri)
    logger.info("Reminder canceled for %s", event_uri)


async def list_reminders() -> List[Dict[str, Any]]:
    return [r.to_dict() for r in await _stored_reminders()]


async def reminder_sweeper(interval: Optional[float] = None) -> None:
    """Background loop started with the app; runs until cancelled."""
    interval = interval or settings().reminder_sweep_seconds
    logger.info("⏱️ Reminder sweeper running every %ss", interval)
    while True:
        try:
            await fire_due_reminders()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Reminder sweep failed")
        await asyncio.sleep(interval)


# ───────────────────────────────────────────────────────────
# Calendly webhook
# ───────────────────────────────────────────────────────────
async def _load_invitee(payload: Dict[str, Any]):
    event_uri = payload.get("event")
    if not event_uri:
        logger.error("Calendly payload without event URI")
        return None
    details = await calendly_client.get_event_details(event_uri)
    if not details:
        logger.error("Failed to fetch event details for %s", event_uri)
        return None
    invitees = await calendly_client.get_event_invitees(event_uri)
    if not invitees:
        logger.error("Failed to fetch invitee details for %s", event_uri)
        return None
    invitee = invitees[0]
    info = calendly_client.parse_property_info_from_answers(invitee.get("questions_and_answers"))
    phone = _phone_from_answer(info.get("phone"))
    if not phone:
        logger.error("Customer phone not found in Calendly event %s", event_uri)
        return None
    return event_uri, details, invitee, info, phone


async def _invitee_created(payload: Dict[str, Any]) -> None:
    loaded = await _load_invitee(payload)
    if loaded is None:
        return
    event_uri, details, invitee, info, phone = loaded
    name = invitee.get("name") or "Cliente"
    event_time = details.get("start_time") or ""
    title = info.get("title") or "Imóvel"
    address = info.get("address") or "A definir"
    logger.info("📅 Visit booked: %s (%s) → %s at %s", name, phone, title, event_time)

    await _send(phone, calendly_client.format_customer_confirmation(name, title, address, event_time))
    await _send(
        settings().realtor_phone,
        calendly_client.format_realtor_notification(name, phone, title, address, info.get("link") or "", event_time),
    )
    await schedule_reminder(
        event_time,
        event_uri=event_uri,
        invitee_uri=payload.get("invitee"),
        customer_name=name,
        customer_phone=phone,
        property_title=title,
        property_address=address,
    )

    ctx = await get_conversation(phone) or ConversationContext(phone=phone)
    ctx.scheduling_in_progress = False
    ctx.last_scheduled_visit = {
        "propertyId": info.get("id"),
        "propertyTitle": info.get("title"),
        "eventTime": event_time,
        "eventUri": event_uri,
        "confirmedAt": iso_now(),
    }
    if invitee.get("email") and not ctx.customer_info.get("email"):
        ctx.customer_info["email"] = invitee["email"]
    if invitee.get("name") and not ctx.customer_info.get("name"):
        ctx.customer_info["name"] = invitee["name"]
    await save_conversation(ctx)


async def _invitee_canceled(payload: Dict[str, Any]) -> None:
    loaded = await _load_invitee(payload)
    if loaded is None:
        return
    event_uri, _details, invitee, info, phone = loaded
    name = invitee.get("name") or "Cliente"
    logger.info("❌ Visit canceled: %s (%s) → %s", name, phone, info.get("title"))

    await cancel_reminder(event_uri)
    await _send(phone, calendly_client.format_customer_cancellation(info.get("title")))
    await _send(settings().realtor_phone, calendly_client.format_realtor_cancellation(name, phone, info.get("title")))


async def handle_calendly_webhook(event: Dict[str, Any]) -> Dict[str, Any]:
    kind = (event or {}).get("event")
    payload = (event or {}).get("payload") or {}
    logger.info("Processing Calendly webhook: %s", kind)
    try:
        if kind == "invitee.created":
            await _invitee_created(payload)
        elif kind == "invitee.canceled":
            await _invitee_canceled(payload)
        else:
            logger.info("Unhandled Calendly event: %s", kind)
    except Exception as exc:
        logger.error("Calendly webhook %s failed: %s", kind, exc, exc_info=True)
        return {"success": False, "error": str(exc)}
    return {"success": True}

"""Per-phone conversation state kept in the key-value store.

Records: ConversationContext (6h TTL), CustomerHistory (no TTL),
TypebotLead (30/90 day TTL) and ScheduledReminder (48h TTL).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sdr.config import (
    CONVERSATION_PREFIX,
    CONVERSATION_TTL,
    CUSTOMER_PREFIX,
    HISTORY_WINDOW,
    MEMORY_CONTEXT_MAX_AGE,
    REMINDER_PREFIX,
    REMINDER_TTL,
    TYPEBOT_LEAD_PREFIX,
    TYPEBOT_PROCESSED_TTL,
    TYPEBOT_TTL,
)
from sdr.kv_store import STORE
from sdr.qualification import QualificationState
from sdr.runtime import get_logger, iso_now, parse_iso, utc_now

logger = get_logger("conversation_store")


# ============================================================
# RECORDS
# ============================================================


@dataclass
class ConversationContext:
    phone: str
    history: List[Dict[str, str]] = field(default_factory=list)
    property_id: Optional[int] = None
    origin_property_id: Optional[int] = None
    qualification: QualificationState = QualificationState.INIT
    customer_info: Dict[str, Any] = field(default_factory=dict)
    details_sent: List[int] = field(default_factory=list)
    scheduling_in_progress: bool = False
    scheduling_data: Optional[Dict[str, Any]] = None
    last_scheduled_visit: Optional[Dict[str, Any]] = None
    created_at: str = field(default_factory=iso_now)
    updated_at: Optional[str] = None

    @property
    def asked_about_preference(self) -> bool:
        return self.qualification.asked_about_preference

    @property
    def qualification_completed(self) -> bool:
        return self.qualification.completed

    def append(self, role: str, content: str) -> None:
        self.history.append({"role": role, "content": content})
        self.truncate()

    def truncate(self, window: int = HISTORY_WINDOW) -> None:
        if len(self.history) > window:
            self.history = self.history[-window:]

    def last_assistant_message(self) -> Optional[str]:
        for entry in reversed(self.history):
            if entry.get("role") == "assistant":
                return entry.get("content")
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phoneNumber": self.phone,
            "history": list(self.history),
            "propertyId": self.property_id,
            "originPropertyId": self.origin_property_id,
            "qualificationState": self.qualification.value,
            "askedAboutPreference": self.asked_about_preference,
            "qualificationCompleted": self.qualification_completed,
            "customerInfo": dict(self.customer_info),
            "detailsSent": list(self.details_sent),
            "schedulingInProgress": self.scheduling_in_progress,
            "schedulingData": self.scheduling_data,
            "lastScheduledVisit": self.last_scheduled_visit,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, phone: str, data: Dict[str, Any]) -> "ConversationContext":
        state = QualificationState.parse(
            data.get("qualificationState"),
            asked=bool(data.get("askedAboutPreference")),
            completed=bool(data.get("qualificationCompleted")),
        )
        return cls(
            phone=phone,
            history=list(data.get("history") or []),
            property_id=_as_int(data.get("propertyId")),
            origin_property_id=_as_int(data.get("originPropertyId")),
            qualification=state,
            customer_info=dict(data.get("customerInfo") or {}),
            details_sent=[i for i in (_as_int(v) for v in data.get("detailsSent") or []) if i is not None],
            scheduling_in_progress=bool(data.get("schedulingInProgress")),
            scheduling_data=data.get("schedulingData"),
            last_scheduled_visit=data.get("lastScheduledVisit"),
            created_at=data.get("createdAt") or iso_now(),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class CustomerHistory:
    phone: str
    first_contact: str
    last_contact: str
    total_messages: int = 0
    source: str = "direct"
    previous_contact: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phoneNumber": self.phone,
            "firstContact": self.first_contact,
            "lastContact": self.last_contact,
            "previousContact": self.previous_contact,
            "totalMessages": self.total_messages,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, phone: str, data: Dict[str, Any]) -> "CustomerHistory":
        return cls(
            phone=phone,
            first_contact=data.get("firstContact") or iso_now(),
            last_contact=data.get("lastContact") or iso_now(),
            previous_contact=data.get("previousContact"),
            total_messages=int(data.get("totalMessages") or 0),
            source=data.get("source") or "direct",
        )


@dataclass
class TypebotLead:
    phone: str
    lead_info: Dict[str, Any]
    received_at: str = field(default_factory=iso_now)
    processed: bool = False
    processed_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phoneNumber": self.phone,
            "leadInfo": self.lead_info,
            "receivedAt": self.received_at,
            "processed": self.processed,
            "processedAt": self.processed_at,
        }

    @classmethod
    def from_dict(cls, phone: str, data: Dict[str, Any]) -> "TypebotLead":
        return cls(
            phone=data.get("phoneNumber") or phone,
            lead_info=dict(data.get("leadInfo") or {}),
            received_at=data.get("receivedAt") or iso_now(),
            processed=bool(data.get("processed")),
            processed_at=data.get("processedAt"),
        )


@dataclass
class ScheduledReminder:
    event_uri: str
    customer_name: str
    customer_phone: str
    realtor_phone: str
    property_title: str
    property_address: str
    event_time: str
    reminder_time: str
    invitee_uri: Optional[str] = None
    scheduled_at: str = field(default_factory=iso_now)

    def due(self, now: Optional[datetime] = None) -> bool:
        when = parse_iso(self.reminder_time)
        return when is not None and when <= (now or utc_now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventUri": self.event_uri,
            "inviteeUri": self.invitee_uri,
            "customerName": self.customer_name,
            "customerPhone": self.customer_phone,
            "realtorPhone": self.realtor_phone,
            "propertyTitle": self.property_title,
            "propertyAddress": self.property_address,
            "eventTime": self.event_time,
            "reminderTime": self.reminder_time,
            "scheduledAt": self.scheduled_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduledReminder":
        return cls(
            event_uri=data.get("eventUri") or "",
            invitee_uri=data.get("inviteeUri"),
            customer_name=data.get("customerName") or "",
            customer_phone=data.get("customerPhone") or "",
            realtor_phone=data.get("realtorPhone") or "",
            property_title=data.get("propertyTitle") or "Imóvel",
            property_address=data.get("propertyAddress") or "A definir",
            event_time=data.get("eventTime") or "",
            reminder_time=data.get("reminderTime") or "",
            scheduled_at=data.get("scheduledAt") or iso_now(),
        )


def _as_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ============================================================
# CUSTOMER HISTORY
# ============================================================


async def get_customer_history(phone: str) -> Optional[CustomerHistory]:
    data = await STORE.get_json(f"{CUSTOMER_PREFIX}{phone}")
    return CustomerHistory.from_dict(phone, data) if isinstance(data, dict) else None


async def record_customer_contact(phone: str, source: str = "direct") -> Tuple[CustomerHistory, Optional[CustomerHistory]]:
    """Create on first contact, otherwise bump counters. Returns (current, previous)."""
    previous = await get_customer_history(phone)
    now = iso_now()
    if previous is None:
        current = CustomerHistory(phone=phone, first_contact=now, last_contact=now, total_messages=1, source=source)
    else:
        current = CustomerHistory(
            phone=phone,
            first_contact=previous.first_contact,
            last_contact=now,
            previous_contact=previous.last_contact,
            total_messages=previous.total_messages + 1,
            source=previous.source if previous.source != "direct" else source,
        )
    if not await STORE.set_json(f"{CUSTOMER_PREFIX}{phone}", current.to_dict()):
        logger.warning("⚠️ Customer history for %s kept in memory only", phone)
    return current, previous


async def list_customers() -> List[CustomerHistory]:
    out: List[CustomerHistory] = []
    for key in await STORE.keys(CUSTOMER_PREFIX):
        phone = key[len(CUSTOMER_PREFIX):]
        data = await STORE.get_json(key)
        if isinstance(data, dict):
            out.append(CustomerHistory.from_dict(phone, data))
    return out


# ============================================================
# CONVERSATION CONTEXT
# ============================================================


async def get_conversation(phone: str) -> Optional[ConversationContext]:
    data = await STORE.get_json(f"{CONVERSATION_PREFIX}{phone}")
    return ConversationContext.from_dict(phone, data) if isinstance(data, dict) else None


async def save_conversation(ctx: ConversationContext) -> bool:
    ctx.truncate()
    ctx.updated_at = iso_now()
    ok = await STORE.set_json(f"{CONVERSATION_PREFIX}{ctx.phone}", ctx.to_dict(), ttl=CONVERSATION_TTL)
    if not ok:
        logger.warning("⚠️ Conversation context for %s kept in memory only", ctx.phone)
    return ok


async def list_conversations() -> List[ConversationContext]:
    out: List[ConversationContext] = []
    for key in await STORE.keys(CONVERSATION_PREFIX):
        phone = key[len(CONVERSATION_PREFIX):]
        data = await STORE.get_json(key)
        if isinstance(data, dict):
            out.append(ConversationContext.from_dict(phone, data))
    return out


async def purge_stale_memory_conversations(max_age: int = MEMORY_CONTEXT_MAX_AGE) -> int:
    """Drop in-memory fallback contexts created more than ``max_age`` seconds ago."""
    cutoff = utc_now() - timedelta(seconds=max_age)
    removed = 0
    for key in await STORE.memory.keys(f"{CONVERSATION_PREFIX}*"):
        raw = await STORE.memory.get(key)
        data = json.loads(raw) if raw else None
        created = parse_iso(data.get("createdAt")) if isinstance(data, dict) else None
        if created is not None and created < cutoff:
            await STORE.memory.delete(key)
            removed += 1
    if removed:
        logger.info("🧹 Purged %s stale in-memory conversations", removed)
    return removed


async def get_stats() -> Dict[str, Any]:
    return {
        "connected": await STORE.ping(),
        "backend": STORE.backend_name(),
        "customers": len(await STORE.keys(CUSTOMER_PREFIX)),
        "activeConversations": len(await STORE.keys(CONVERSATION_PREFIX)),
        "pendingReminders": len(await STORE.keys(REMINDER_PREFIX)),
        "typebotLeads": len(await STORE.keys(TYPEBOT_LEAD_PREFIX)),
    }


# ============================================================
# TYPEBOT LEADS
# ============================================================


async def get_typebot_lead(phone: str) -> Optional[TypebotLead]:
    data = await STORE.get_json(f"{TYPEBOT_LEAD_PREFIX}{phone}")
    return TypebotLead.from_dict(phone, data) if isinstance(data, dict) else None


async def save_typebot_lead(phone: str, lead_info: Dict[str, Any]) -> TypebotLead:
    lead = TypebotLead(phone=phone, lead_info=lead_info)
    await STORE.set_json(f"{TYPEBOT_LEAD_PREFIX}{phone}", lead.to_dict(), ttl=TYPEBOT_TTL)
    logger.info("📝 Typebot lead stored for %s", phone)
    return lead


async def mark_typebot_processed(phone: str) -> Optional[TypebotLead]:
    lead = await get_typebot_lead(phone)
    if lead is None:
        return None
    lead.processed = True
    lead.processed_at = iso_now()
    await STORE.set_json(f"{TYPEBOT_LEAD_PREFIX}{phone}", lead.to_dict(), ttl=TYPEBOT_PROCESSED_TTL)
    return lead


# ============================================================
# REMINDERS
# ============================================================


async def save_reminder(reminder: ScheduledReminder, ttl: int = REMINDER_TTL) -> bool:
    """Callers pass a ttl that outlives the due time; the sweep deletes fired records."""
    return await STORE.set_json(f"{REMINDER_PREFIX}{reminder.event_uri}", reminder.to_dict(), ttl=ttl)


async def delete_reminder(event_uri: str) -> None:
    await STORE.delete(f"{REMINDER_PREFIX}{event_uri}")


async def list_reminders() -> List[ScheduledReminder]:
    out: List[ScheduledReminder] = []
    for key in await STORE.keys(REMINDER_PREFIX):
        data = await STORE.get_json(key)
        if isinstance(data, dict):
            out.append(ScheduledReminder.from_dict(data))
    out.sort(key=lambda r: r.reminder_time)
    return out


"""Lead scoring: additive point buckets, recomputed from scratch every turn."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sdr.config import HOT_THRESHOLD, LEAD_FIELD_MAP, TYPEBOT_LEAD_FIELDS, WARM_THRESHOLD
from sdr.conversation_store import ConversationContext, CustomerHistory, TypebotLead
from sdr.datastore import LEADS
from sdr.qualification import QualificationState
from sdr.runtime import get_logger, iso_now, parse_iso

logger = get_logger("lead_scorer")

QUALIFICATION_POINTS = {
    QualificationState.INIT: 0,
    QualificationState.AWAITING_PREFERENCE: 10,
    QualificationState.QUALIFIED_AGENT: 20,
    QualificationState.QUALIFIED_HUMAN: 20,
}


@dataclass
class LeadScore:
    score: int
    quality: str
    indicators: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "quality": self.quality, "indicators": list(self.indicators)}


def quality_for(score: int) -> str:
    if score >= HOT_THRESHOLD:
        return "hot"
    if score >= WARM_THRESHOLD:
        return "warm"
    return "cold"


def _engagement(total_messages: int) -> int:
    if total_messages >= 10:
        return 30
    if total_messages >= 6:
        return 20
    if total_messages >= 3:
        return 10
    return 0


def _contact_details(context: Optional[ConversationContext], typebot_lead: Optional[TypebotLead]) -> Dict[str, Any]:
    info: Dict[str, Any] = {}
    if typebot_lead is not None:
        info.update({k: v for k, v in typebot_lead.lead_info.items() if k in ("name", "email") and v})
    if context is not None:
        info.update({k: v for k, v in context.customer_info.items() if k in ("name", "email") and v})
    return info


def _recency(history: Optional[CustomerHistory]) -> int:
    """Points for a returning customer by the gap since their previous message."""
    if history is None or not history.previous_contact:
        return 0
    last = parse_iso(history.last_contact)
    prev = parse_iso(history.previous_contact)
    if last is None or prev is None:
        return 0
    gap = (last - prev).total_seconds()
    if gap < 3600:
        return 10
    if gap < 86400:
        return 5
    return 0


def score_lead(
    phone: str,
    context: Optional[ConversationContext],
    history: Optional[CustomerHistory],
    typebot_lead: Optional[TypebotLead] = None,
) -> LeadScore:
    """Pure function of the conversation signals; no I/O."""
    indicators: List[str] = []
    score = 0

    total = history.total_messages if history else 0
    engagement = _engagement(total)
    if engagement:
        indicators.append(f"engajamento:{total}_mensagens")
    score += engagement

    if context is not None and (context.property_id or context.origin_property_id):
        score += 25
        indicators.append("interesse_em_imovel")

    state = context.qualification if context is not None else QualificationState.INIT
    qual = QUALIFICATION_POINTS[state]
    if qual:
        indicators.append(f"qualificacao:{state.value.lower()}")
    score += qual

    contact = _contact_details(context, typebot_lead)
    if contact.get("name") and contact.get("email"):
        score += 15
        indicators.append("contato_completo")
    elif contact.get("name"):
        score += 12
        indicators.append("nome_informado")

    from_typebot = typebot_lead is not None or (history is not None and history.source == "typebot")
    if from_typebot:
        score += 10
        indicators.append("origem_typebot")

    recency = _recency(history)
    if recency:
        score += recency
        indicators.append("retorno_recente")

    score = max(0, min(100, score))
    logger.debug("Lead score %s → %s", phone, score)
    return LeadScore(score=score, quality=quality_for(score), indicators=indicators)


async def evaluate_lead(
    phone: str,
    context: Optional[ConversationContext],
    history: Optional[CustomerHistory],
    typebot_lead: Optional[TypebotLead] = None,
) -> LeadScore:
    """Score the lead and upsert the result into the leads table."""
    result = score_lead(phone, context, history, typebot_lead)
    contact = _contact_details(context, typebot_lead)
    fields: Dict[str, Any] = {
        LEAD_FIELD_MAP["SCORE"]: result.score,
        LEAD_FIELD_MAP["QUALITY"]: result.quality,
        LEAD_FIELD_MAP["INDICATORS"]: result.indicators,
        LEAD_FIELD_MAP["TOTAL_MESSAGES"]: history.total_messages if history else 0,
        LEAD_FIELD_MAP["SOURCE"]: "typebot" if typebot_lead is not None else (history.source if history else "direct"),
        LEAD_FIELD_MAP["LAST_EVALUATION"]: iso_now(),
        LEAD_FIELD_MAP["NAME"]: contact.get("name"),
        LEAD_FIELD_MAP["EMAIL"]: contact.get("email"),
        LEAD_FIELD_MAP["TAGS"]: ["whatsapp", "typebot"] if typebot_lead is not None else ["whatsapp"],
    }
    if context is not None and (context.property_id or context.origin_property_id):
        fields[LEAD_FIELD_MAP["PROPERTY_INTEREST"]] = str(context.property_id or context.origin_property_id)
    if typebot_lead is not None:
        for info_key, field_key in TYPEBOT_LEAD_FIELDS.items():
            value = typebot_lead.lead_info.get(info_key)
            if value:
                fields[LEAD_FIELD_MAP[field_key]] = str(value)
    await LEADS.upsert(phone, fields)
    return result

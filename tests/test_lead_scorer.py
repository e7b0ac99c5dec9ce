import asyncio
from datetime import datetime, timedelta, timezone

from sdr import datastore
from sdr.conversation_store import ConversationContext, CustomerHistory, TypebotLead
from sdr.lead_scorer import evaluate_lead, quality_for, score_lead
from sdr.qualification import QualificationState

PHONE = "5511988887777"


def _history(total, previous=None, source="direct"):
    now = datetime(2025, 3, 14, 15, 0, tzinfo=timezone.utc)
    return CustomerHistory(
        phone=PHONE,
        first_contact=(now - timedelta(days=2)).isoformat(),
        last_contact=now.isoformat(),
        previous_contact=previous(now).isoformat() if previous else None,
        total_messages=total,
        source=source,
    )


def test_quality_thresholds():
    assert quality_for(80) == "hot"
    assert quality_for(79) == "warm"
    assert quality_for(50) == "warm"
    assert quality_for(49) == "cold"


def test_brand_new_contact_is_cold_zero():
    result = score_lead(PHONE, ConversationContext(phone=PHONE), _history(1))
    assert result.score == 0
    assert result.quality == "cold"
    assert result.indicators == []


def test_fully_engaged_typebot_lead_is_hot_and_clamped():
    ctx = ConversationContext(
        phone=PHONE,
        property_id=4,
        qualification=QualificationState.QUALIFIED_AGENT,
        customer_info={"name": "Ana", "email": "ana@example.com"},
    )
    lead = TypebotLead(phone=PHONE, lead_info={"name": "Ana"})
    result = score_lead(PHONE, ctx, _history(12, previous=lambda now: now - timedelta(minutes=5)), lead)

    assert result.score == 100
    assert result.quality == "hot"
    assert "contato_completo" in result.indicators
    assert "origem_typebot" in result.indicators


def test_warm_lead_from_buckets():
    ctx = ConversationContext(phone=PHONE, origin_property_id=2, qualification=QualificationState.AWAITING_PREFERENCE)
    result = score_lead(PHONE, ctx, _history(6))
    # 20 engagement + 25 property + 10 qualification
    assert result.score == 55
    assert result.quality == "warm"


def test_recency_uses_gap_to_previous_message():
    ctx = ConversationContext(phone=PHONE)
    assert score_lead(PHONE, ctx, _history(1, previous=lambda now: now - timedelta(minutes=20))).score == 10
    assert score_lead(PHONE, ctx, _history(1, previous=lambda now: now - timedelta(hours=5))).score == 5
    assert score_lead(PHONE, ctx, _history(1, previous=lambda now: now - timedelta(days=3))).score == 0


def test_name_only_scores_partial_contact():
    ctx = ConversationContext(phone=PHONE, customer_info={"name": "Ana"})
    assert score_lead(PHONE, ctx, _history(1)).score == 12


def test_evaluate_lead_upserts_single_row():
    ctx = ConversationContext(phone=PHONE, property_id=3)
    lead = TypebotLead(phone=PHONE, lead_info={"name": "Ana", "email": "ana@example.com", "tipoImovel": "Casa"})

    asyncio.run(evaluate_lead(PHONE, ctx, _history(3, source="typebot"), lead))
    ctx.customer_info = {"name": "Outro Nome"}
    second = asyncio.run(evaluate_lead(PHONE, ctx, _history(4)))

    rows = asyncio.run(datastore.LEADS.list_leads())
    assert len(rows) == 1
    row = rows[0]
    assert row["Telefone"] == PHONE
    assert row["Nome"] == "Ana"
    assert row["Email"] == "ana@example.com"
    assert row["Tags"] == "whatsapp,typebot"
    assert row["ImovelInteresse"] == "3"
    assert row["Score"] == second.score


def test_evaluate_lead_adds_country_code_for_local_numbers():
    asyncio.run(evaluate_lead("11988887777", ConversationContext(phone="11988887777"), _history(1)))
    found = asyncio.run(datastore.LEADS.find_by_phone(PHONE))
    assert found is not None
    assert found["Telefone"] == PHONE

import asyncio
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from sdr import calendly_client, kv_store, scheduling
from sdr.conversation_store import get_conversation
from sdr.runtime import to_iso, utc_now

PHONE = "5511999990000"
REALTOR = "5511981598027"


# -----------------------------
# Links + formatting
# -----------------------------
def test_scheduling_link_prefills_answers():
    link = calendly_client.build_scheduling_link(
        "Ana Souza", None, PHONE, 7, "Apartamento Centro", "Centro, Itaquaquecetuba", "https://site/imovel/7"
    )
    parsed = urlparse(link)
    params = parse_qs(parsed.query)

    assert link.startswith("https://calendly.com/bs-consultoria?")
    assert params["name"] == ["Ana Souza"]
    assert params["email"] == [f"{PHONE}@cliente.temp"]
    assert params["a1"] == [PHONE]
    assert params["a2"] == ["Imóvel ID: 7 - Apartamento Centro"]
    assert params["a3"] == ["Centro, Itaquaquecetuba"]
    assert params["a4"] == ["https://site/imovel/7"]


def test_scheduling_link_without_property_is_general():
    link = calendly_client.build_scheduling_link("Ana", "ana@example.com", PHONE)
    params = parse_qs(urlparse(link).query)
    assert params["a2"] == ["Consulta Geral"]
    assert params["email"] == ["ana@example.com"]


def test_answers_parse_back_into_property_info():
    info = calendly_client.parse_property_info_from_answers(
        [
            {"question": "Telefone (WhatsApp)", "answer": "+55 11 99999-0000"},
            {"question": "Imóvel de interesse", "answer": "Imóvel ID: 7 - Apartamento Centro"},
            {"question": "Endereço do imóvel", "answer": "Centro, Itaquaquecetuba"},
            {"question": "Link", "answer": "https://site/imovel/7"},
        ]
    )
    assert info == {
        "id": "7",
        "title": "Apartamento Centro",
        "address": "Centro, Itaquaquecetuba",
        "link": "https://site/imovel/7",
        "phone": "+55 11 99999-0000",
    }


def test_dates_are_formatted_in_portuguese_local_time():
    assert calendly_client.format_date_pt("2025-03-14T18:00:00Z") == "sexta-feira, 14 de março de 2025"
    assert calendly_client.format_time_pt("2025-03-14T18:00:00.000000Z") == "15:00"
    assert calendly_client.format_date_pt(None) == "A definir"


def test_schedule_property_visit_marks_context():
    prop = {"id": 7, "Title": "Apartamento Centro", "Bairro": "Centro", "Cidade": "Itaquaquecetuba"}

    result = asyncio.run(scheduling.schedule_property_visit(PHONE, "Ana", "", prop))

    assert result["success"] is True
    assert result["propertyTitle"] == "Apartamento Centro"
    assert "a2=Im%C3%B3vel+ID%3A+7" in result["schedulingLink"]
    ctx = asyncio.run(get_conversation(PHONE))
    assert ctx.scheduling_in_progress is True
    assert ctx.scheduling_data["propertyId"] == 7
    assert ctx.scheduling_data["propertyAddress"] == "Centro, Itaquaquecetuba"


# -----------------------------
# Reminders
# -----------------------------
def _reminder(event_time, now=None):
    return asyncio.run(
        scheduling.schedule_reminder(
            event_time,
            event_uri="https://api.calendly.com/scheduled_events/EV1",
            customer_name="Ana",
            customer_phone=PHONE,
            property_title="Apartamento Centro",
            property_address="Centro",
            now=now,
        )
    )


def test_reminder_in_the_past_is_skipped():
    now = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)
    assert _reminder("2025-03-14T12:30:00Z", now=now) is None
    assert asyncio.run(scheduling.list_reminders()) == []


def test_reminder_fires_once_for_both_parties(outbox):
    now = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)
    reminder = _reminder("2025-03-14T18:00:00Z", now=now)
    assert reminder.reminder_time == "2025-03-14T17:00:00Z"
    assert len(asyncio.run(scheduling.list_reminders())) == 1

    not_yet = asyncio.run(scheduling.fire_due_reminders(now=datetime(2025, 3, 14, 16, 59, tzinfo=timezone.utc)))
    fired = asyncio.run(scheduling.fire_due_reminders(now=datetime(2025, 3, 14, 17, 1, tzinfo=timezone.utc)))
    again = asyncio.run(scheduling.fire_due_reminders(now=datetime(2025, 3, 14, 17, 2, tzinfo=timezone.utc)))

    assert (not_yet, fired, again) == (0, 1, 0)
    assert [m[1] for m in outbox] == [PHONE, REALTOR]
    assert "LEMBRETE DE VISITA" in outbox[0][2]
    assert "15:00" in outbox[0][2]
    assert "VISITA EM 1 HORA" in outbox[1][2]
    assert asyncio.run(scheduling.list_reminders()) == []


def test_reminder_for_visit_days_ahead_survives_until_due(outbox, monkeypatch):
    now = utc_now()
    reminder = _reminder(to_iso(now + timedelta(days=3)), now=now)
    assert reminder is not None

    later = now + timedelta(hours=71, minutes=10)
    monkeypatch.setattr(kv_store.time, "time", lambda: later.timestamp())

    assert len(asyncio.run(scheduling.list_reminders())) == 1
    assert asyncio.run(scheduling.fire_due_reminders(now=later)) == 1
    assert [m[1] for m in outbox] == [PHONE, REALTOR]


# -----------------------------
# Calendly webhook
# -----------------------------
EVENT_URI = "https://api.calendly.com/scheduled_events/EV42"


@pytest.fixture
def calendly_event(monkeypatch):
    start = to_iso(utc_now() + timedelta(days=1))

    async def fake_details(uri):
        return {"uri": uri, "start_time": start}

    async def fake_invitees(uri):
        return [
            {
                "name": "Ana Souza",
                "email": "ana@example.com",
                "questions_and_answers": [
                    {"question": "Telefone", "answer": "(11) 99999-0000"},
                    {"question": "Imóvel", "answer": "Imóvel ID: 7 - Apartamento Centro"},
                    {"question": "Endereço", "answer": "Centro, Itaquaquecetuba"},
                ],
            }
        ]

    monkeypatch.setattr(calendly_client, "get_event_details", fake_details)
    monkeypatch.setattr(calendly_client, "get_event_invitees", fake_invitees)
    return start


def test_invitee_created_confirms_and_schedules_reminder(outbox, calendly_event):
    body = {"event": "invitee.created", "payload": {"event": EVENT_URI, "invitee": EVENT_URI + "/invitees/I1"}}

    assert asyncio.run(scheduling.handle_calendly_webhook(body)) == {"success": True}

    assert [m[1] for m in outbox] == [PHONE, REALTOR]
    assert "VISITA CONFIRMADA" in outbox[0][2]
    assert "NOVA VISITA AGENDADA" in outbox[1][2]
    reminders = asyncio.run(scheduling.list_reminders())
    assert [r["eventUri"] for r in reminders] == [EVENT_URI]
    ctx = asyncio.run(get_conversation(PHONE))
    assert ctx.last_scheduled_visit["eventUri"] == EVENT_URI
    assert ctx.customer_info == {"email": "ana@example.com", "name": "Ana Souza"}


def test_invitee_canceled_drops_reminder(outbox, calendly_event):
    created = {"event": "invitee.created", "payload": {"event": EVENT_URI}}
    canceled = {"event": "invitee.canceled", "payload": {"event": EVENT_URI}}

    asyncio.run(scheduling.handle_calendly_webhook(created))
    asyncio.run(scheduling.handle_calendly_webhook(canceled))

    assert asyncio.run(scheduling.list_reminders()) == []
    assert "foi cancelada" in outbox[2][2]
    assert outbox[3][1] == REALTOR
    assert "VISITA CANCELADA" in outbox[3][2]


def test_unknown_calendly_event_is_acknowledged(outbox):
    assert asyncio.run(scheduling.handle_calendly_webhook({"event": "routing_form.submitted"})) == {"success": True}
    assert outbox == []


def test_missing_phone_answer_sends_nothing(outbox, monkeypatch):
    async def fake_details(uri):
        return {"start_time": "2030-01-01T12:00:00Z"}

    async def fake_invitees(uri):
        return [{"name": "Ana", "questions_and_answers": []}]

    monkeypatch.setattr(calendly_client, "get_event_details", fake_details)
    monkeypatch.setattr(calendly_client, "get_event_invitees", fake_invitees)

    result = asyncio.run(scheduling.handle_calendly_webhook({"event": "invitee.created", "payload": {"event": EVENT_URI}}))
    assert result == {"success": True}
    assert outbox == []

import pytest
from fastapi.testclient import TestClient

from sdr import agent
from sdr.main import app

client = TestClient(app)

PHONE = "5511999990000"


@pytest.fixture
def fake_ai(monkeypatch):
    async def fake_generate_reply(system_prompt, history, user_message):
        return "Oi! Posso te ajudar com algum imóvel?"

    monkeypatch.setattr(agent, "generate_reply", fake_generate_reply)


def test_test_ai_runs_turn_without_sending(fake_ai, outbox):
    response = client.post("/api/test-ai", json={"phoneNumber": PHONE, "message": "Oi"})

    assert response.status_code == 200
    data = response.json()
    assert data["response"] == "Oi! Posso te ajudar com algum imóvel?"
    assert data["customerState"] == "NEW"
    assert data["qualificationState"] == "INIT"
    assert data["intent"] == "none"
    assert data["context"]["historyLength"] == 2
    assert data["leadScore"]["quality"] == "cold"
    assert outbox == []

    listing = client.get("/api/conversations").json()
    assert listing["count"] == 1
    assert listing["conversations"][0]["phoneNumber"] == PHONE
    detail = client.get(f"/api/conversations/{PHONE}@s.whatsapp.net").json()
    assert detail["conversation"]["history"][0] == {"role": "user", "content": "Oi"}


def test_test_ai_labels_the_message_intent(fake_ai, outbox):
    photos = client.post("/api/test-ai", json={"phoneNumber": PHONE, "message": "me manda fotos"}).json()
    human = client.post("/api/test-ai", json={"phoneNumber": PHONE, "message": "prefiro um corretor"}).json()

    assert photos["intent"] == "photo_request"
    assert human["intent"] == "choose_human"


def test_test_ai_requires_fields():
    assert client.post("/api/test-ai", json={"message": "Oi"}).status_code == 400


def test_unknown_conversation_is_404():
    assert client.get("/api/conversations/5511000000000").status_code == 404


def test_schedule_visit_flow(seed_properties):
    (prop,) = seed_properties([{"Title": "Casa Verde", "Bairro": "Vila", "Cidade": "Itaquaquecetuba"}])

    missing = client.post("/api/schedule-visit", json={"customerPhone": PHONE})
    unknown = client.post(
        "/api/schedule-visit", json={"customerPhone": PHONE, "customerName": "Ana", "propertyId": 999}
    )
    ok = client.post(
        "/api/schedule-visit",
        json={"customerPhone": PHONE, "customerName": "Ana", "customerEmail": "ana@example.com", "propertyId": prop["id"]},
    )

    assert missing.status_code == 400
    assert unknown.status_code == 404
    assert ok.status_code == 200
    body = ok.json()
    assert body["success"] is True
    assert body["propertyTitle"] == "Casa Verde"
    assert "email=ana%40example.com" in body["schedulingLink"]


def test_send_message_endpoint(outbox):
    assert client.post("/api/send-message", json={"phoneNumber": PHONE}).status_code == 400
    response = client.post("/api/send-message", json={"phoneNumber": PHONE, "message": "Teste"})
    assert response.json() == {"success": True, "message": "Message sent successfully", "messageId": "MSG1"}
    assert outbox == [("text", PHONE, "Teste")]


def test_send_message_surfaces_transport_error():
    response = client.post("/api/send-message", json={"phoneNumber": PHONE, "message": "Teste"})
    assert response.status_code == 500


def test_reminders_listing_starts_empty():
    assert client.get("/api/reminders").json() == {"success": True, "count": 0, "reminders": []}

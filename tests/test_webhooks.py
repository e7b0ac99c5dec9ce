import pytest
from fastapi.testclient import TestClient

from sdr import agent
from sdr.main import app
from sdr.routes.webhooks import PROPERTY_NEEDED_MESSAGE, extract_inbound_text

client = TestClient(app)

PHONE = "5511999990000"
JID = f"{PHONE}@s.whatsapp.net"
REALTOR = "5511981598027"


def _upsert(text, from_me=False, event="messages.upsert"):
    return {
        "event": event,
        "instance": "bs",
        "data": {
            "key": {"remoteJid": JID, "fromMe": from_me, "id": "3EB0"},
            "pushName": "Ana",
            "message": {"conversation": text},
        },
    }


@pytest.fixture
def reply(monkeypatch):
    box = {"text": "Olá! Sou a Susi, da BS Consultoria."}

    async def fake_generate_reply(system_prompt, history, user_message):
        return box["text"]

    monkeypatch.setattr(agent, "generate_reply", fake_generate_reply)
    return box


def test_extract_inbound_text_variants():
    assert extract_inbound_text({"message": {"conversation": "oi"}}) == "oi"
    assert extract_inbound_text({"message": {"extendedTextMessage": {"text": "olá"}}}) == "olá"
    assert extract_inbound_text({"message": {"imageMessage": {}}}) is None


def test_own_and_non_message_events_are_ignored(outbox, reply):
    assert client.post("/webhook/whatsapp", json=_upsert("oi", from_me=True)).json() == {"success": True}
    assert client.post("/webhook/whatsapp", json=_upsert("oi", event="connection.update")).json() == {"success": True}
    assert client.post("/webhook/whatsapp", json={"event": "messages.upsert"}).json() == {"success": True}
    assert outbox == []


def test_inbound_message_gets_ai_reply(outbox, reply):
    response = client.post("/webhook/whatsapp", json=_upsert("Oi, tudo bem?"))

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert outbox == [("text", PHONE, reply["text"])]


def test_photo_request_sends_only_the_details(outbox, reply, seed_properties):
    (prop,) = seed_properties(
        [{"Title": "Apartamento Centro", "Type": "Apartamento", "Bairro": "Centro", "images": ["/img/a.jpg"]}]
    )
    reply["text"] = "Já envio as fotos pra você!"

    client.post("/webhook/whatsapp", json=_upsert(f"Olá! Código do imóvel: {prop['id']}. Me manda fotos?"))

    assert [m[0] for m in outbox] == ["text", "media", "text"]
    assert all(m[2] != reply["text"] for m in outbox)
    assert "Apartamento Centro" in outbox[0][2]
    assert outbox[1][2] == "https://bs-consultoria.vercel.app/img/a.jpg"


def test_scheduling_without_property_asks_to_choose(outbox, reply):
    reply["text"] = "Claro! Vamos marcar."

    client.post("/webhook/whatsapp", json=_upsert("quero agendar uma visita"))

    assert outbox == [("text", PHONE, PROPERTY_NEEDED_MESSAGE)]


def test_scheduling_with_property_sends_calendly_link(outbox, reply, seed_properties):
    (prop,) = seed_properties([{"Title": "Sobrado Jardim", "Bairro": "Jardim", "Cidade": "Itaquaquecetuba"}])
    reply["text"] = "Perfeito, vamos agendar!"

    client.post("/webhook/whatsapp", json=_upsert(f"Código do imóvel: {prop['id']} quero visitar"))

    assert len(outbox) == 1
    text = outbox[0][2]
    assert "Sobrado Jardim" in text
    assert "https://calendly.com/bs-consultoria?" in text


def test_human_choice_notifies_realtor(outbox, reply):
    reply["text"] = "Você prefere ser atendido por um consultor humano ou quer que eu mesma continue?"
    client.post("/webhook/whatsapp", json=_upsert("Oi"))
    reply["text"] = "Combinado! Um corretor vai falar com você."
    client.post("/webhook/whatsapp", json=_upsert("prefiro um corretor"))

    assert outbox[-2] == ("text", PHONE, "Combinado! Um corretor vai falar com você.")
    assert outbox[-1][1] == REALTOR
    assert "ATENDIMENTO HUMANO" in outbox[-1][2]


def test_delivery_failure_still_answers_200(reply):
    # Evolution is not configured, so the send raises
    response = client.post("/webhook/whatsapp", json=_upsert("Oi"))
    assert response.status_code == 200
    assert response.json()["success"] is False


def test_typebot_requires_phone():
    response = client.post("/webhook/typebot", json={"name": "Ana"})
    assert response.status_code == 400


def test_typebot_stores_lead_for_next_message(outbox, reply):
    payload = {
        "answers": [{"blockId": "telefone", "value": "(11) 99999-0000"}],
        "variables": [{"name": "nome", "value": "Ana"}, {"name": "email", "value": "ana@example.com"}],
    }
    response = client.post("/webhook/typebot", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["phoneNumber"] == PHONE
    assert body["leadInfo"]["name"] == "Ana"
    assert body["leadInfo"]["email"] == "ana@example.com"

    client.post("/webhook/whatsapp", json=_upsert("Oi!"))
    convo = client.get(f"/api/conversations/{PHONE}").json()["conversation"]
    assert convo["customerInfo"] == {"name": "Ana", "email": "ana@example.com"}


def test_calendly_webhook_acknowledges_unknown_event():
    response = client.post("/webhook/calendly", json={"event": "something.else", "payload": {}})
    assert response.status_code == 200
    assert response.json() == {"success": True}

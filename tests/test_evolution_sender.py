import asyncio
import json

import httpx
import pytest

from sdr import evolution_sender as evo


def _mock_httpx(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(evo.httpx, "AsyncClient", factory)


def test_send_text_requires_configuration():
    with pytest.raises(evo.EvolutionError) as exc:
        asyncio.run(evo.send_text("5511999990000", "oi"))

    assert "not configured" in str(exc.value)


def test_send_text_rejects_empty_text(evolution_env):
    with pytest.raises(evo.EvolutionError):
        asyncio.run(evo.send_text("5511999990000", "   "))


def test_send_text_posts_to_instance(evolution_env, monkeypatch):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["apikey"] = request.headers.get("apikey")
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"key": {"id": "ABC123"}, "status": "PENDING"})

    _mock_httpx(monkeypatch, handler)

    resp = asyncio.run(evo.send_text("5511999990000@s.whatsapp.net", "Olá!"))

    assert evo.message_id(resp) == "ABC123"
    assert seen["url"] == "https://evo.example.com/message/sendText/bs"
    assert seen["apikey"] == "evo-key"
    assert seen["body"] == {"number": "5511999990000", "text": "Olá!"}


def test_send_media_exposes_error_body(evolution_env, monkeypatch):
    def handler(request):
        return httpx.Response(400, json={"response": {"message": "Invalid media url"}})

    _mock_httpx(monkeypatch, handler)

    with pytest.raises(evo.EvolutionError) as exc:
        asyncio.run(evo.send_media("5511999990000", "https://cdn.example.com/a.jpg", caption="Casa"))

    assert exc.value.status_code == 400
    assert exc.value.body == {"response": {"message": "Invalid media url"}}
    assert "Invalid media url" in str(exc.value)
    assert exc.value.payload["mediatype"] == "image"


def test_dry_run_skips_network(evolution_env, monkeypatch):
    monkeypatch.setenv("EVOLUTION_DRY_RUN", "true")
    evo.settings.cache_clear()

    def handler(request):  # pragma: no cover - must not be reached
        raise AssertionError("network call in dry run")

    _mock_httpx(monkeypatch, handler)

    resp = asyncio.run(evo.send_text("5511999990000", "teste"))
    assert evo.message_id(resp).startswith("DRY_")

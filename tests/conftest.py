import os
import sys

# Ensure project root is in sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

from sdr import datastore, kv_store
from sdr.config import settings

COLLABORATOR_ENV = [
    "EVOLUTION_API_URL",
    "EVOLUTION_API_KEY",
    "EVOLUTION_INSTANCE",
    "EVOLUTION_DRY_RUN",
    "OPENAI_API_KEY",
    "UPSTASH_REDIS_REST_URL",
    "UPSTASH_REDIS_REST_TOKEN",
    "REDIS_URL",
    "BASEROW_API_URL",
    "BASEROW_TOKEN",
    "BASEROW_TABLE_ID",
    "BASEROW_LEADS_TABLE_ID",
    "CALENDLY_API_KEY",
    "CALENDLY_PUBLIC_URL",
    "REALTOR_PHONE",
    "SITE_BASE_URL",
]


@pytest.fixture(autouse=True)
def _reset_state():
    for key in COLLABORATOR_ENV:
        os.environ.pop(key, None)
    os.environ["SDR_FORCE_IN_MEMORY"] = "1"
    settings.cache_clear()
    kv_store.reset_state()
    datastore.reset_state()
    yield
    settings.cache_clear()


@pytest.fixture
def evolution_env(monkeypatch):
    monkeypatch.setenv("EVOLUTION_API_URL", "https://evo.example.com")
    monkeypatch.setenv("EVOLUTION_API_KEY", "evo-key")
    monkeypatch.setenv("EVOLUTION_INSTANCE", "bs")
    settings.cache_clear()
    yield
    settings.cache_clear()


@pytest.fixture
def outbox(monkeypatch):
    """Capture every WhatsApp send instead of calling Evolution."""
    from sdr import evolution_sender

    sent = []

    async def fake_send_text(number, text):
        sent.append(("text", number, text))
        return {"key": {"id": f"MSG{len(sent)}"}}

    async def fake_send_media(number, media_url, caption="", mediatype="image"):
        sent.append(("media", number, media_url, caption))
        return {"key": {"id": f"MSG{len(sent)}"}}

    monkeypatch.setattr(evolution_sender, "send_text", fake_send_text)
    monkeypatch.setattr(evolution_sender, "send_media", fake_send_media)
    return sent


@pytest.fixture
def seed_properties():
    """Populate the in-memory properties table."""
    import asyncio

    async def _seed(rows):
        table = datastore.CONNECTOR.properties().table
        return [await table.create_row(r) for r in rows]

    def seed(rows):
        return asyncio.run(_seed(rows))

    return seed

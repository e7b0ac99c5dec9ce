# tests/test_health_endpoints.py
from fastapi.testclient import TestClient
from sdr.main import app

client = TestClient(app)


def test_health_endpoint():
    """/health reports service identity and the key-value backend."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["status"] == "ok"
    assert data["service"] == "SDR Agent"
    assert "timestamp" in data
    assert "version" in data
    assert data["kv"] == {"backend": "memory", "connected": False}


def test_stats_endpoint_counts_records():
    response = client.get("/api/sdr-stats")
    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["customers"] == 0
    assert stats["activeConversations"] == 0

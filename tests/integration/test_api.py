"""Integration tests for the FastAPI application."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from deep_research.main import create_app
from deep_research.services.research_service import ResearchService


@pytest.fixture
def client(settings, mock_transport):
    """Test client over an in-memory service with mocked providers."""
    service = ResearchService(settings, mock_transport, researcher=MagicMock())
    app = create_app(settings, service)
    with TestClient(app) as c:
        yield c


def _start(client, **body):
    payload = {"query": "Sourcing study for carbon steel in North America", **body}
    resp = client.post("/api/v1/research", json=payload)
    assert resp.status_code == 200
    return resp.json()


def test_health_endpoint(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_ready_endpoint(client):
    resp = client.get("/api/v1/ready")
    assert resp.status_code == 200
    assert resp.json() == {
        "status": "ready",
        "providers": {"reasoner": True, "schema_json": True, "web_search": True},
    }


def test_request_id_echoed(client):
    resp = client.get("/api/v1/health", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"


def test_intent_score(client):
    resp = client.post("/api/v1/intent/score", json={"query": "I need a comprehensive sourcing study for carbon steel"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["inferred_study_type"] == "sourcing_study"
    assert 0.0 <= data["score"] <= 1.0


def test_intent_score_malformed_query(client):
    resp = client.post("/api/v1/intent/score", json={"query": 42})
    assert resp.status_code == 200
    assert resp.json()["score"] == 0.0


def test_start_research_enters_intake(client):
    data = _start(client)

    assert data["phase"] == "intake"
    assert data["study_type"] == "sourcing_study"
    assert data["intake_answers"]["region"] == ["na"]
    assert data["intake_questions"]


def test_start_research_rejects_empty_query(client):
    resp = client.post("/api/v1/research", json={"query": ""})
    assert resp.status_code == 422


def test_get_research(client):
    job_id = _start(client)["job_id"]

    resp = client.get(f"/api/v1/research/{job_id}")

    assert resp.status_code == 200
    assert resp.json()["job_id"] == job_id


def test_get_research_not_found(client):
    resp = client.get("/api/v1/research/nonexistent")
    assert resp.status_code == 404


def test_report_not_ready(client):
    job_id = _start(client)["job_id"]

    resp = client.get(f"/api/v1/research/{job_id}/report")

    assert resp.status_code == 404
    assert resp.json()["detail"] == "Report not available yet"


def test_cancel_then_cancel_again(client):
    job_id = _start(client)["job_id"]

    first = client.delete(f"/api/v1/research/{job_id}/cancel")
    assert first.status_code == 200
    assert first.json()["phase"] == "error"
    assert first.json()["error"]["code"] == "cancelled"

    second = client.delete(f"/api/v1/research/{job_id}/cancel")
    assert second.status_code == 409


def test_stream_replays_and_resumes(client):
    job_id = _start(client)["job_id"]
    client.delete(f"/api/v1/research/{job_id}/cancel")

    with client.stream("GET", f"/api/v1/research/{job_id}/stream") as resp:
        assert resp.status_code == 200
        full = "".join(resp.iter_text())
    with client.stream("GET", f"/api/v1/research/{job_id}/stream", headers={"Last-Event-ID": "1"}) as resp:
        resumed = "".join(resp.iter_text())

    assert "event: phase_change" in full
    assert "event: error" in full
    assert "id: 2" in full
    assert "event: phase_change" not in resumed
    assert "event: error" in resumed

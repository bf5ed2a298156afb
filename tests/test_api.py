"""
Tests for the /process API router.

The orchestrator dependency is overridden with one wired to a scripted
language model.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from catalai.api.middleware import RateLimitMiddleware
from catalai.api.process import UNABLE_TO_CLASSIFY, get_audit_service, get_orchestrator
from catalai.api_server import app
from catalai.exceptions import ConversationBusyError, LLMError
from tests.samples import (
    GOOD_DESCRIPTION,
    POOR_DESCRIPTION,
    SMALL_DAILY_TEAM,
    ScriptedLLM,
    classification_json,
    scripted_orchestrator,
)


@pytest.fixture
def orchestrator():
    llm = ScriptedLLM(classification_json(confidence=0.95), attributes=SMALL_DAILY_TEAM)
    return scripted_orchestrator(llm)


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_audit_service] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["rule_set_version"] == "1"
    assert "X-Request-ID" in response.headers


def test_classify(client):
    response = client.post("/process/classify", json={"description": GOOD_DESCRIPTION})
    assert response.status_code == 200
    body = response.json()
    assert body["category"] == "RPA"
    assert body["confidence"] == 0.95


def test_classify_llm_failure_maps_to_502(client, orchestrator):
    orchestrator.classifier = AsyncMock()
    orchestrator.classifier.classify.side_effect = LLMError("upstream down", status_code=503)

    response = client.post("/process/classify", json={"description": GOOD_DESCRIPTION})

    assert response.status_code == 502
    assert response.json()["detail"]["message"] == UNABLE_TO_CLASSIFY


def test_route(client):
    response = client.post("/process/route", json={
        "description": POOR_DESCRIPTION,
        "classification": {"category": "RPA", "confidence": 0.95},
    })
    assert response.json() == {"action": "clarify"}


def test_interview(client):
    response = client.post("/process/interview", json={
        "description": POOR_DESCRIPTION,
        "classification": {"category": "RPA", "confidence": 0.7},
        "transcript": [{"question": "How often?", "answer": "Daily"}],
    })
    body = response.json()
    assert body["stop"] is True
    assert body["code"] == "no_further_questions"
    assert body["next_questions"] == []


def test_attributes(client):
    response = client.post("/process/attributes", json={"description": GOOD_DESCRIPTION})
    attributes = response.json()["attributes"]
    assert attributes["frequency"]["value"] == "daily"
    assert attributes["sponsorship"]["value"] == "unknown"


def test_attributes_llm_failure_maps_to_502(client, orchestrator):
    orchestrator.extractor = AsyncMock()
    orchestrator.extractor.extract.side_effect = LLMError("Language model request timed out")

    response = client.post("/process/attributes", json={"description": GOOD_DESCRIPTION})

    assert response.status_code == 502
    assert response.json()["detail"]["error"] == "Language model request timed out"


def test_evaluate_rules(client):
    response = client.post("/process/rules/evaluate", json={
        "attributes": {"attributes": {
            "frequency": {"value": "daily"},
            "user_count": {"value": "1-5"},
        }},
        "classification": {"category": "RPA", "confidence": 0.8},
    })
    body = response.json()
    assert body["final"]["category"] == "Simplify"
    assert body["overridden"] is True
    assert body["triggered_rules"][0]["rule_id"] == "daily-small-team-simplify"


def test_evaluate_unknown_version_is_404(client):
    response = client.post("/process/rules/evaluate", json={
        "attributes": {"attributes": {}},
        "classification": {"category": "RPA", "confidence": 0.8},
        "rule_set_version": "42",
    })
    assert response.status_code == 404


def test_turn(client):
    response = client.post("/process/turn", json={
        "conversation_id": "conv-1",
        "description": GOOD_DESCRIPTION,
    })
    body = response.json()
    assert response.status_code == 200
    assert body["action"] == "auto_classify"
    assert body["evaluation"]["final"]["category"] == "Simplify"


def test_turn_busy_is_409(client, orchestrator):
    orchestrator.process_turn = AsyncMock(side_effect=ConversationBusyError("conv-1"))

    response = client.post("/process/turn", json={"conversation_id": "conv-1", "description": GOOD_DESCRIPTION})
    assert response.status_code == 409


def test_turn_records_audit(orchestrator):
    audit = AsyncMock()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_audit_service] = lambda: audit
    try:
        response = TestClient(app).post("/process/turn", json={
            "conversation_id": "conv-1",
            "description": GOOD_DESCRIPTION,
            "actor": "analyst",
        })
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    audit.record_turn.assert_awaited_once()
    assert audit.record_turn.await_args.kwargs["actor"] == "analyst"


def test_active_rules(client):
    response = client.get("/process/rules/active")
    assert response.status_code == 200
    assert response.json()["version"] == "1"


def test_empty_description_rejected(client):
    response = client.post("/process/classify", json={"description": ""})
    assert response.status_code == 422


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_rate_limit():
    limited = FastAPI()
    limited.add_middleware(RateLimitMiddleware, window_seconds=60, max_requests=2)

    @limited.get("/ping")
    async def ping():
        return {"ok": True}

    client = TestClient(limited)
    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 200
    response = client.get("/ping")
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"


def _ping_app(**limits) -> FastAPI:
    limited = FastAPI()
    limited.add_middleware(RateLimitMiddleware, window_seconds=60, max_requests=2, **limits)

    @limited.get("/ping")
    async def ping():
        return {"ok": True}

    return limited


def test_rate_limit_ignores_spoofed_forwarded_for():
    client = TestClient(_ping_app())

    statuses = [
        client.get("/ping", headers={"X-Forwarded-For": f"10.0.0.{i}"}).status_code
        for i in range(10)
    ]

    assert statuses[:2] == [200, 200]
    assert set(statuses[2:]) == {429}


def test_rate_limit_trusted_proxy_uses_appended_hop():
    client = TestClient(_ping_app(trusted_proxies=["testclient"]))

    def ping(forwarded: str) -> int:
        return client.get("/ping", headers={"X-Forwarded-For": forwarded}).status_code

    assert ping("1.1.1.1, 203.0.113.5") == 200
    assert ping("2.2.2.2, 203.0.113.5") == 200
    assert ping("3.3.3.3, 203.0.113.5") == 429
    assert ping("198.51.100.7") == 200


def test_rate_limit_sweeps_idle_clients():
    limiter = RateLimitMiddleware(FastAPI(), window_seconds=60, max_requests=2)
    limiter._hits["idle"].append(0.0)
    limiter._hits["active"].append(100.0)
    limiter._hits["empty"]

    limiter._sweep(120.0)

    assert set(limiter._hits) == {"active"}

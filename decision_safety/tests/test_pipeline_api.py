from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient

from decision_safety.api.main import app
from decision_safety.internal_core.registry import HashRegistry, InMemoryHashRegistry, RegistryError
from decision_safety.security.anomaly_detector import BehavioralAnomalyDetector
from decision_safety.security.quarantine import QuarantineSystem

_STATE_ATTRS = (
    "pipeline_config",
    "decision_generator",
    "safety_validator",
    "generation_gate",
    "quarantine_system",
    "hash_registry",
    "anomaly_detector",
)
DAY_MS = 24 * 60 * 60 * 1000


class _Clock:
    def __init__(self) -> None:
        self.now_ms = 1_000

    def __call__(self) -> int:
        return self.now_ms


@pytest.fixture()
def clock():
    for name in _STATE_ATTRS:
        if hasattr(app.state, name):
            delattr(app.state, name)
    created = _Clock()
    app.state.quarantine_system = QuarantineSystem(InMemoryHashRegistry(), hash_key="test:api:quarantine", clock=created)
    yield created
    for name in _STATE_ATTRS:
        if hasattr(app.state, name):
            delattr(app.state, name)


def _context(timestamp: int = 1_700_000_000_000) -> dict:
    return {
        "system_vitals": {"health": 0.95, "stress": 0.1, "harmony": 0.9, "creativity": 0.6, "timestamp": timestamp},
        "system_metrics": {"cpu_usage": 0.3, "memory_usage": 0.4, "network_connections": 8},
    }


def _generate(client: TestClient, timestamp: int = 1_700_000_000_000) -> dict:
    response = client.post("/decisions/generate", json={"context": _context(timestamp)})
    assert response.status_code == 200
    return response.json()["decisions"][0]


def test_healthz() -> None:
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_generate_is_deterministic_and_reports_cache(clock) -> None:
    client = TestClient(app)
    first = client.post("/decisions/generate", json={"context": _context()}).json()
    second = client.post("/decisions/generate", json={"context": _context()}).json()

    assert first["decisions"] == second["decisions"]
    assert second["cache"] == {"size": 1, "hits": 1, "misses": 1}


def test_generate_cycle(clock) -> None:
    client = TestClient(app)
    response = client.post("/decisions/generate", json={"context": _context(10), "cycles": 3})
    assert response.status_code == 200
    decisions = response.json()["decisions"]
    assert [item["generation_timestamp"] for item in decisions] == [10, 11, 12]


def test_generate_rejects_invalid_cycles(clock) -> None:
    client = TestClient(app)
    response = client.post("/decisions/generate", json={"context": _context(), "cycles": 0})
    assert response.status_code == 422


def test_validate_flags_destructive_text(clock) -> None:
    client = TestClient(app)
    decision = _generate(client)
    dangerous = dict(decision, description="drop table users")

    response = client.post(
        "/decisions/validate",
        json={"decisions": [decision, dangerous], "context": _context()},
    )
    assert response.status_code == 200
    results = response.json()["results"]
    assert len(results) == 2
    assert not any(item.startswith("Dangerous patterns") for item in results[0]["concerns"])
    assert results[1]["is_safe"] is False
    assert results[1]["risk_level"] >= 0.9
    assert results[1]["containment_level"] == "maximum"


def test_pattern_sanity_endpoint(clock) -> None:
    client = TestClient(app)
    response = client.post(
        "/patterns/sanity",
        json={
            "patterns": [
                {"sequence": [1, 1, 2, 3, 5], "position": 2, "key": "a#", "harmony_ratio": 0.5},
                {"sequence": [1, 1, 10, 10, 100], "position": 2, "key": "C", "harmony_ratio": 0.5},
                {"sequence": [], "position": 14, "key": None, "harmony_ratio": 1.5},
            ]
        },
    )
    assert response.status_code == 200
    results = response.json()["results"]
    assert results[0]["is_sane"] is True
    assert any("exceeds maximum change" in issue for issue in results[1]["issues"])
    assert results[1]["severity"] == "high"
    assert results[2]["is_sane"] is False
    assert any("empty" in issue for issue in results[2]["issues"])


def test_sanity_assess_can_pause_generation(clock) -> None:
    client = TestClient(app)
    feedback = [
        {
            "decision_type_id": f"d{i}",
            "human_rating": 1 if i % 2 else 10,
            "applied_successfully": False,
            "performance_impact": -0.5,
            "timestamp": i,
        }
        for i in range(6)
    ]
    body = {
        "context": {
            "system_vitals": {"health": 0.2, "stress": 0.8, "timestamp": 5},
            "feedback_history": feedback,
        },
        "execute_intervention": True,
    }
    response = client.post("/sanity/assess", json=body)
    assert response.status_code == 200
    payload = response.json()
    assert payload["intervention_type"] == "shutdown"
    assert payload["requires_intervention"] is True
    assert payload["intervention_executed"] is True
    assert payload["gate"]["shut_down"] is True

    blocked = client.post("/decisions/generate", json={"context": _context()})
    assert blocked.status_code == 409


def test_containment_plan_endpoint(clock) -> None:
    client = TestClient(app)
    response = client.post(
        "/containment/plan",
        json={"containment_level": "high", "target_component": "consensus-engine"},
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["contained"] is True
    assert payload["monitoring_level"] == "intensive"
    assert "Disable consensus voting for 1 hour" in payload["containment_actions"]

    invalid = client.post("/containment/plan", json={"containment_level": "extreme"})
    assert invalid.status_code == 422


def test_quarantine_lifecycle(clock) -> None:
    client = TestClient(app)
    decision = _generate(client)
    runtime = {"failure_rate": 0.8, "performance_impact": -0.3, "anomaly_score": 0.9, "feedback_score": 0.2}

    evaluated = client.post("/quarantine/evaluate", json={"decision": decision, "runtime": runtime})
    assert evaluated.status_code == 200
    assert evaluated.json()["should_quarantine"] is True

    baseline = client.get("/quarantine/stats").json()
    put = client.put("/quarantine/deploy-7", json={"decision": decision, "runtime": runtime})
    assert put.status_code == 200
    assert put.json()["entry"]["pattern_id"] == "deploy-7"
    assert client.get("/quarantine/deploy-7").status_code == 200
    assert [item["pattern_id"] for item in client.get("/quarantine").json()["entries"]] == ["deploy-7"]
    assert client.get("/quarantine/stats").json()["total_quarantined"] == baseline["total_quarantined"] + 1

    released = client.delete("/quarantine/deploy-7")
    assert released.status_code == 200
    assert client.get("/quarantine/stats").json() == baseline
    assert client.delete("/quarantine/deploy-7").status_code == 404
    assert client.get("/quarantine/deploy-7").status_code == 404


def test_quarantine_cleanup_endpoint(clock) -> None:
    client = TestClient(app)
    decision = _generate(client)
    client.put("/quarantine/old", json={"decision": decision})
    clock.now_ms += DAY_MS + 1
    client.put("/quarantine/new", json={"decision": decision})

    response = client.post("/quarantine/cleanup")
    assert response.status_code == 200
    assert response.json() == {"removed": 1}
    assert client.get("/quarantine/new").status_code == 200


class _UnavailableRegistry(HashRegistry):
    def hset(self, key: str, field: str, value: str) -> None:
        raise RegistryError("hset_failed", "connection refused", self.name())

    def hget(self, key: str, field: str) -> Optional[str]:
        raise RegistryError("hget_failed", "connection refused", self.name())

    def hdel(self, key: str, field: str) -> bool:
        raise RegistryError("hdel_failed", "connection refused", self.name())

    def hgetall(self, key: str) -> Dict[str, str]:
        raise RegistryError("hgetall_failed", "connection refused", self.name())

    def name(self) -> str:
        return "unavailable"


def test_store_outage_is_503_not_404(clock) -> None:
    client = TestClient(app)
    decision = _generate(client)
    app.state.quarantine_system = QuarantineSystem(_UnavailableRegistry(), clock=clock)

    released = client.delete("/quarantine/x")
    assert released.status_code == 503
    assert released.json() == {"detail": "Quarantine registry is unavailable."}
    assert client.put("/quarantine/x", json={"decision": decision}).status_code == 503


@pytest.mark.parametrize(
    "path, body",
    [
        ("/decisions/generate", {"context": {}, "mode": "aggressive"}),
        ("/patterns/sanity", {"patterns": [{"position": 1, "harmony_ratio": 0.5}], "strict": True}),
        ("/sanity/assess", {"context": {}, "force": True}),
        ("/containment/plan", {"containment_level": "low", "owner": "ops"}),
    ],
)
def test_requests_reject_unknown_fields(clock, path: str, body: dict) -> None:
    client = TestClient(app)
    assert client.post(path, json=body).status_code == 422


def test_anomaly_analysis_and_stats(clock) -> None:
    client = TestClient(app)
    app.state.anomaly_detector = BehavioralAnomalyDetector(
        InMemoryHashRegistry(),
        baseline_key="test:api:baseline",
        history_key="test:api:anomalies",
        clock=clock,
    )
    decision = _generate(client)

    response = client.post("/anomalies/analyze", json={"decisions": [decision] * 5, "type_id": decision["type_id"]})
    assert response.status_code == 200
    payload = response.json()
    assert [item["anomaly_type"] for item in payload["anomalies"]] == ["repetition"]
    assert payload["anomaly_score"] == 0.85

    stats = client.get("/anomalies/stats").json()
    assert stats["total_anomalies"] == 1
    assert stats["by_type"] == {"repetition": 1}
    assert client.get("/anomalies/stats", params={"window_ms": 0}).status_code == 400
    assert client.post("/anomalies/analyze", json={"decisions": []}).status_code == 422

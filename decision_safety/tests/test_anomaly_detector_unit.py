import logging
from typing import Dict, Optional

import pytest

from decision_safety.internal_core.contracts import AnomalyStats, BehavioralAnomaly, DecisionType, PatternStatistics
from decision_safety.internal_core.registry import HashRegistry, InMemoryHashRegistry, RegistryError
from decision_safety.security.anomaly_detector import (
    BehavioralAnomalyDetector,
    anomaly_score_for,
    consistency_score,
    detect_anomalies,
    update_baseline,
)
from decision_safety.security.quarantine import QuarantineSystem, RuntimeObservation

BASELINE_KEY = "test:evolution:baseline"
HISTORY_KEY = "test:evolution:anomalies"
DAY_MS = 24 * 60 * 60 * 1000


class FakeClock:
    def __init__(self, now_ms: int) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


class FailingRegistry(HashRegistry):
    def hset(self, key: str, field: str, value: str) -> None:
        raise RegistryError("hset_failed", "connection refused", self.name())

    def hget(self, key: str, field: str) -> Optional[str]:
        raise RegistryError("hget_failed", "connection refused", self.name())

    def hdel(self, key: str, field: str) -> bool:
        raise RegistryError("hdel_failed", "connection refused", self.name())

    def hgetall(self, key: str) -> Dict[str, str]:
        raise RegistryError("hgetall_failed", "connection refused", self.name())

    def name(self) -> str:
        return "failing"


def _decision(type_id: str = "a", validation_score: float = 0.5) -> DecisionType:
    return DecisionType(
        type_id=type_id,
        name=f"Pattern {type_id}",
        description="Tunes a parameter in the context of the memory pool.",
        poetic_description="A quiet tuning.",
        technical_basis="Risk: 30.0%",
        risk_level=0.3,
        expected_creativity=0.5,
        zodiac_affinity="Aries",
        musical_key="C",
        musical_harmony=0.5,
        generation_timestamp=1,
        validation_score=validation_score,
    )


def _stats(pattern_id: str, frequency: float = 1.0, average_score: float = 0.5) -> PatternStatistics:
    return PatternStatistics(
        pattern_id=pattern_id,
        frequency=frequency,
        average_score=average_score,
        last_seen=0,
        total_occurrences=1,
    )


def _kinds(anomalies: list[BehavioralAnomaly]) -> list[tuple[str, str]]:
    return [(anomaly.anomaly_type, anomaly.severity) for anomaly in anomalies]


def _detector(registry: HashRegistry, clock: FakeClock, **kwargs) -> BehavioralAnomalyDetector:
    return BehavioralAnomalyDetector(
        registry,
        baseline_key=BASELINE_KEY,
        history_key=HISTORY_KEY,
        clock=clock,
        **kwargs,
    )


def test_dominant_pattern_without_baseline_is_repetition() -> None:
    decisions = [_decision("a")] * 5 + [_decision("b")]
    anomalies = detect_anomalies(decisions, {}, now=7)

    assert _kinds(anomalies) == [("repetition", "high")]
    assert anomalies[0].affected_patterns == ["a"]
    assert anomalies[0].anomaly_score == pytest.approx((5 / 6) / 0.1)
    assert anomalies[0].timestamp == 7


def test_drift_from_baseline_is_statistical_frequency_and_consistency() -> None:
    baseline = {"a": _stats("a", frequency=1.0, average_score=0.1)}
    anomalies = detect_anomalies([_decision("a", validation_score=0.9)] * 5, baseline, now=0)

    assert _kinds(anomalies) == [
        ("statistical", "critical"),
        ("frequency", "critical"),
        ("consistency", "critical"),
    ]
    assert anomalies[0].anomaly_score == pytest.approx(4 + 0.8 * 2)
    assert anomalies[1].anomaly_score == pytest.approx(5.0)


def test_window_matching_baseline_is_quiet() -> None:
    baseline = {"a": _stats("a"), "b": _stats("b")}
    assert detect_anomalies([_decision("a"), _decision("b")], baseline, now=0) == []
    assert detect_anomalies([], baseline, now=0) == []


def test_consistency_bands() -> None:
    baseline = {"a": _stats("a", average_score=0.0)}
    anomalies = detect_anomalies([_decision("a", validation_score=0.65)], baseline, now=0)
    assert _kinds(anomalies) == [("consistency", "high")]
    assert anomalies[0].anomaly_score == pytest.approx(0.65)


def test_unseen_patterns_count_as_consistent() -> None:
    assert consistency_score([], {}) == 1.0
    assert consistency_score([_decision("new", validation_score=0.0)], {"a": _stats("a")}) == 1.0


def test_update_baseline_is_a_moving_average() -> None:
    baseline = {"a": _stats("a", frequency=3.0)}
    updated = update_baseline(baseline, [_decision("a"), _decision("a"), _decision("c", 0.75)], now=50)

    assert updated["a"].frequency == 1.5
    assert updated["a"].total_occurrences == 3
    assert updated["a"].last_seen == 50
    assert updated["c"].frequency == 1.0
    assert updated["c"].average_score == 0.75
    assert updated["c"].total_occurrences == 1
    assert baseline["a"].frequency == 3.0


def test_anomaly_score_for_takes_worst_matching_severity() -> None:
    def _anomaly(severity: str, affected: list[str]) -> BehavioralAnomaly:
        return BehavioralAnomaly(
            anomaly_type="frequency",
            severity=severity,
            description="",
            timestamp=0,
            affected_patterns=affected,
            anomaly_score=3.0,
            recommended_action="",
        )

    anomalies = [_anomaly("medium", ["a"]), _anomaly("critical", ["b"])]
    assert anomaly_score_for(anomalies) == 1.0
    assert anomaly_score_for(anomalies, "a") == 0.5
    assert anomaly_score_for(anomalies, "z") == 0.0
    assert anomaly_score_for([]) == 0.0


def test_critical_anomaly_feeds_quarantine_scoring() -> None:
    anomalies = detect_anomalies([_decision("a", validation_score=0.9)] * 5, {"a": _stats("a", average_score=0.1)}, 0)
    observation = RuntimeObservation(anomaly_score=anomaly_score_for(anomalies, "a"))
    assessment = QuarantineSystem(InMemoryHashRegistry()).evaluate_risk(_decision("a"), observation)
    assert "High anomaly score: 100.0%" in assessment.reasons


def test_analyze_persists_baseline_and_history() -> None:
    registry = InMemoryHashRegistry()
    clock = FakeClock(1_000)
    detector = _detector(registry, clock)

    first = detector.analyze([_decision("a")] * 5 + [_decision("b")])
    assert _kinds(first) == [("repetition", "high")]
    baseline = detector.baseline()
    assert set(baseline) == {"a", "b"}
    assert baseline["a"].frequency == 1.0
    assert baseline["a"].total_occurrences == 5
    assert baseline["a"].last_seen == 1_000

    clock.now_ms = 2_000
    second = detector.analyze([_decision("a")] * 5)
    assert _kinds(second) == [
        ("statistical", "medium"),
        ("repetition", "medium"),
        ("frequency", "critical"),
    ]
    assert len(detector.history()) == 4

    stats = detector.stats()
    assert stats.total_anomalies == 4
    assert stats.by_type == {"repetition": 2, "statistical": 1, "frequency": 1}

    clock.now_ms = 1_001 + DAY_MS
    assert detector.stats().total_anomalies == 3


def test_history_keeps_only_the_newest_entries() -> None:
    clock = FakeClock(0)
    detector = _detector(InMemoryHashRegistry(), clock, history_limit=2)
    for now in (10, 20, 30):
        clock.now_ms = now
        detector.analyze([_decision(f"p{now}")] * 3)

    history = detector.history()
    assert len(history) == 2
    assert history[-1].timestamp == 30
    assert detector.stats().recent_anomalies == history


def test_store_failures_degrade_to_empty_baseline(caplog) -> None:
    detector = _detector(FailingRegistry(), FakeClock(0))
    with caplog.at_level(logging.WARNING, logger="decision_safety.security.anomaly_detector"):
        anomalies = detector.analyze([_decision("a")] * 5 + [_decision("b")])
        assert detector.baseline() == {}
        assert detector.stats() == AnomalyStats()

    assert _kinds(anomalies) == [("repetition", "high")]
    assert "anomaly_baseline_failed" in caplog.text
    assert "anomaly_record_failed" in caplog.text
    assert "anomaly_baseline_write_failed" not in caplog.text


def test_corrupt_baseline_entries_are_skipped() -> None:
    registry = InMemoryHashRegistry()
    registry.hset(BASELINE_KEY, "good", _stats("good").model_dump_json())
    registry.hset(BASELINE_KEY, "bad", "{not json")
    registry.hset(HISTORY_KEY, "history", "[]")

    detector = _detector(registry, FakeClock(0))
    assert list(detector.baseline()) == ["good"]
    assert detector.history() == []

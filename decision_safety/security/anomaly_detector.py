from __future__ import annotations

"""
Flag evolutionary behaviour that drifts away from its recorded baseline.

Design intent:
- Keep the per-pattern baseline and the anomaly history in the shared registry, one hash each.
- Detection is a pure function of (decisions, baseline); only the detector touches the store.
- A failed baseline read degrades to an empty baseline and skips the baseline write.
- Store failures are logged, never raised.
"""

import logging
import time
from collections import Counter
from threading import RLock
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Sequence

from pydantic import ValidationError

from decision_safety.internal_core.config import DEFAULT_ANOMALY_BASELINE_KEY, DEFAULT_ANOMALY_HISTORY_KEY
from decision_safety.internal_core.contracts import (
    AnomalyHistory,
    AnomalyStats,
    BehavioralAnomaly,
    DecisionType,
    PatternStatistics,
    Severity,
)
from decision_safety.internal_core.registry import HashRegistry, RegistryError

logger = logging.getLogger(__name__)

ANOMALY_THRESHOLDS: Mapping[str, float] = MappingProxyType(
    {
        "statistical": 3.0,
        "repetition": 0.8,
        "frequency": 2.5,
        "consistency": 0.6,
    }
)
# Expected share of a pattern with no baseline entry.
DEFAULT_EXPECTED_RATIO = 0.1
HISTORY_LIMIT = 1000
RECENT_LIMIT = 10
STATS_WINDOW_MS = 24 * 60 * 60 * 1000

# Maps onto RuntimeObservation.anomaly_score; quarantine weighs scores above 0.8.
SEVERITY_SCORES: Mapping[str, float] = MappingProxyType(
    {
        "low": 0.25,
        "medium": 0.5,
        "high": 0.85,
        "critical": 1.0,
    }
)

_HISTORY_FIELD = "history"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _first_of_each(decisions: Sequence[DecisionType]) -> list[DecisionType]:
    seen: dict[str, DecisionType] = {}
    for decision in decisions:
        seen.setdefault(decision.type_id, decision)
    return list(seen.values())


def statistical_score(occurrences: int, validation_score: float, baseline: PatternStatistics) -> float:
    frequency_diff = abs(occurrences - baseline.frequency)
    score_diff = abs(validation_score - baseline.average_score)
    return frequency_diff / max(baseline.frequency, 1.0) + score_diff * 2


def consistency_score(decisions: Sequence[DecisionType], baseline: Mapping[str, PatternStatistics]) -> float:
    """Mean closeness of validation scores to the baseline; unseen patterns count as fully consistent."""
    if not decisions:
        return 1.0
    total = 0.0
    for decision in decisions:
        stats = baseline.get(decision.type_id)
        if stats is None:
            total += 1.0
        else:
            total += max(0.0, 1.0 - abs(decision.validation_score - stats.average_score))
    return total / len(decisions)


def _detect_statistical(
    decisions: Sequence[DecisionType],
    counts: Counter,
    baseline: Mapping[str, PatternStatistics],
    now: int,
) -> list[BehavioralAnomaly]:
    anomalies: list[BehavioralAnomaly] = []
    for decision in _first_of_each(decisions):
        stats = baseline.get(decision.type_id)
        if stats is None:
            continue
        score = statistical_score(counts[decision.type_id], decision.validation_score, stats)
        if score <= ANOMALY_THRESHOLDS["statistical"]:
            continue
        severity: Severity = "critical" if score > 5 else "high" if score > 4 else "medium"
        anomalies.append(
            BehavioralAnomaly(
                anomaly_type="statistical",
                severity=severity,
                description=f"Statistical anomaly in pattern {decision.name}: score {score:.2f}",
                timestamp=now,
                affected_patterns=[decision.type_id],
                anomaly_score=score,
                recommended_action="Review the pattern and adjust evolution parameters",
            )
        )
    return anomalies


def _detect_repetition(
    total: int,
    counts: Counter,
    baseline: Mapping[str, PatternStatistics],
    now: int,
) -> list[BehavioralAnomaly]:
    anomalies: list[BehavioralAnomaly] = []
    for pattern_id, count in counts.items():
        ratio = count / total
        stats = baseline.get(pattern_id)
        expected = stats.frequency / len(baseline) if stats is not None else DEFAULT_EXPECTED_RATIO
        if expected <= 0:
            expected = DEFAULT_EXPECTED_RATIO
        # A single pattern may hold at most this share of the window.
        if count < 2 or ratio <= ANOMALY_THRESHOLDS["repetition"] or ratio <= expected:
            continue
        severity: Severity = "high" if ratio > expected * 2 else "medium"
        anomalies.append(
            BehavioralAnomaly(
                anomaly_type="repetition",
                severity=severity,
                description=f"Excessive repetition of pattern {pattern_id}: {ratio:.2f} vs expected {expected:.2f}",
                timestamp=now,
                affected_patterns=[pattern_id],
                anomaly_score=ratio / expected,
                recommended_action="Diversify pattern generation",
            )
        )
    return anomalies


def _detect_frequency(
    decisions: Sequence[DecisionType],
    counts: Counter,
    baseline: Mapping[str, PatternStatistics],
    now: int,
) -> list[BehavioralAnomaly]:
    anomalies: list[BehavioralAnomaly] = []
    for decision in _first_of_each(decisions):
        stats = baseline.get(decision.type_id)
        if stats is None or stats.frequency <= 0:
            continue
        ratio = counts[decision.type_id] / stats.frequency
        if ratio <= ANOMALY_THRESHOLDS["frequency"]:
            continue
        severity: Severity = "critical" if ratio > 4 else "high" if ratio > 3 else "medium"
        anomalies.append(
            BehavioralAnomaly(
                anomaly_type="frequency",
                severity=severity,
                description=f"Abnormal frequency of pattern {decision.name}: {ratio:.2f}x baseline",
                timestamp=now,
                affected_patterns=[decision.type_id],
                anomaly_score=ratio,
                recommended_action="Adjust pattern selection weights",
            )
        )
    return anomalies


def _detect_consistency(
    decisions: Sequence[DecisionType],
    baseline: Mapping[str, PatternStatistics],
    now: int,
) -> list[BehavioralAnomaly]:
    score = consistency_score(decisions, baseline)
    if score >= ANOMALY_THRESHOLDS["consistency"]:
        return []
    severity: Severity = "critical" if score < 0.3 else "high" if score < 0.4 else "medium"
    return [
        BehavioralAnomaly(
            anomaly_type="consistency",
            severity=severity,
            description=f"Low behavioural consistency: score {score:.2f}",
            timestamp=now,
            affected_patterns=[decision.type_id for decision in _first_of_each(decisions)],
            anomaly_score=1.0 - score,
            recommended_action="Review evolution engine stability",
        )
    ]


def detect_anomalies(
    decisions: Sequence[DecisionType],
    baseline: Mapping[str, PatternStatistics],
    now: int,
) -> list[BehavioralAnomaly]:
    if not decisions:
        return []
    counts = Counter(decision.type_id for decision in decisions)
    return (
        _detect_statistical(decisions, counts, baseline, now)
        + _detect_repetition(len(decisions), counts, baseline, now)
        + _detect_frequency(decisions, counts, baseline, now)
        + _detect_consistency(decisions, baseline, now)
    )


def update_baseline(
    baseline: Mapping[str, PatternStatistics],
    decisions: Sequence[DecisionType],
    now: int,
) -> dict[str, PatternStatistics]:
    updated = dict(baseline)
    for decision in decisions:
        existing = updated.get(decision.type_id)
        if existing is None:
            updated[decision.type_id] = PatternStatistics(
                pattern_id=decision.type_id,
                frequency=1.0,
                average_score=decision.validation_score,
                last_seen=now,
                total_occurrences=1,
            )
            continue
        # Moving average toward one occurrence per analysis.
        updated[decision.type_id] = existing.model_copy(
            update={
                "frequency": (existing.frequency + 1.0) / 2,
                "total_occurrences": existing.total_occurrences + 1,
                "last_seen": now,
            }
        )
    return updated


def anomaly_score_for(anomalies: Sequence[BehavioralAnomaly], type_id: Optional[str] = None) -> float:
    """Collapse anomalies into one runtime anomaly score in [0, 1].

    With ``type_id`` only anomalies naming that pattern count.
    """
    scores = [
        SEVERITY_SCORES[anomaly.severity]
        for anomaly in anomalies
        if type_id is None or type_id in anomaly.affected_patterns
    ]
    return max(scores, default=0.0)


class BehavioralAnomalyDetector:
    def __init__(
        self,
        registry: HashRegistry,
        *,
        baseline_key: str = DEFAULT_ANOMALY_BASELINE_KEY,
        history_key: str = DEFAULT_ANOMALY_HISTORY_KEY,
        history_limit: int = HISTORY_LIMIT,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._registry = registry
        self._baseline_key = baseline_key
        self._history_key = history_key
        self._history_limit = max(1, int(history_limit))
        self._clock = clock or _now_ms
        self._lock = RLock()

    def analyze(self, decisions: Sequence[DecisionType]) -> list[BehavioralAnomaly]:
        with self._lock:
            now = int(self._clock())
            baseline = self._load_baseline()
            anomalies = detect_anomalies(decisions, baseline or {}, now)
            if anomalies:
                self._record(anomalies)
            if baseline is not None and decisions:
                self._store_baseline(update_baseline(baseline, decisions, now), decisions)
        logger.info(
            "anomaly_analysis decisions=%d anomalies=%d baseline_available=%s",
            len(decisions),
            len(anomalies),
            baseline is not None,
        )
        return anomalies

    def baseline(self) -> dict[str, PatternStatistics]:
        return self._load_baseline() or {}

    def history(self) -> list[BehavioralAnomaly]:
        try:
            raw = self._registry.hget(self._history_key, _HISTORY_FIELD)
        except RegistryError as exc:
            self._warn("anomaly_history_failed", exc)
            return []
        return self._parse_history(raw)

    def stats(self, time_window_ms: int = STATS_WINDOW_MS) -> AnomalyStats:
        cutoff = int(self._clock()) - int(time_window_ms)
        recent = [anomaly for anomaly in self.history() if anomaly.timestamp > cutoff]
        return AnomalyStats(
            total_anomalies=len(recent),
            by_type=dict(Counter(anomaly.anomaly_type for anomaly in recent)),
            by_severity=dict(Counter(anomaly.severity for anomaly in recent)),
            recent_anomalies=recent[-RECENT_LIMIT:],
        )

    def _load_baseline(self) -> Optional[dict[str, PatternStatistics]]:
        try:
            raw_entries = self._registry.hgetall(self._baseline_key)
        except RegistryError as exc:
            self._warn("anomaly_baseline_failed", exc)
            return None
        baseline: dict[str, PatternStatistics] = {}
        for pattern_id, raw in raw_entries.items():
            try:
                baseline[pattern_id] = PatternStatistics.model_validate_json(raw)
            except ValidationError as exc:
                logger.warning("anomaly_baseline_invalid pattern_id=%s error=%s", pattern_id, exc)
        return baseline

    def _store_baseline(
        self,
        baseline: Mapping[str, PatternStatistics],
        decisions: Sequence[DecisionType],
    ) -> None:
        try:
            for pattern_id in {decision.type_id for decision in decisions}:
                self._registry.hset(self._baseline_key, pattern_id, baseline[pattern_id].model_dump_json())
        except RegistryError as exc:
            self._warn("anomaly_baseline_write_failed", exc)

    def _record(self, anomalies: Sequence[BehavioralAnomaly]) -> None:
        try:
            raw = self._registry.hget(self._history_key, _HISTORY_FIELD)
            kept = (self._parse_history(raw) + list(anomalies))[-self._history_limit :]
            self._registry.hset(
                self._history_key,
                _HISTORY_FIELD,
                AnomalyHistory(anomalies=kept).model_dump_json(),
            )
        except RegistryError as exc:
            self._warn("anomaly_record_failed", exc)

    def _parse_history(self, raw: Optional[str]) -> list[BehavioralAnomaly]:
        if raw is None:
            return []
        try:
            return list(AnomalyHistory.model_validate_json(raw).anomalies)
        except ValidationError as exc:
            logger.warning("anomaly_history_invalid key=%s error=%s", self._history_key, exc)
            return []

    def _warn(self, event: str, exc: RegistryError) -> None:
        logger.warning("%s backend=%s code=%s error=%s", event, exc.backend, exc.code, exc.message)

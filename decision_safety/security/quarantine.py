from __future__ import annotations

"""
Isolate deployed decisions that misbehave at runtime.

Design intent:
- The shared registry is the only authority; hold no quarantine state in process.
- Report store failures as False, None or zeroed results, logged, never raised.
- Re-read each expired candidate before deleting so a fresh re-quarantine survives.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from pydantic import ValidationError

from decision_safety.internal_core.config import DEFAULT_QUARANTINE_HASH_KEY
from decision_safety.internal_core.contracts import DecisionType, QuarantineEntry, QuarantineStats
from decision_safety.internal_core.registry import HashRegistry, RegistryError

logger = logging.getLogger(__name__)

QUARANTINE_THRESHOLD = 0.7
MAX_QUARANTINE_MS = 24 * 60 * 60 * 1000
_HOUR_MS = 60 * 60 * 1000

RELEASE_CRITERIA: tuple[str, ...] = (
    "failureRate < 0.3",
    "performanceImpact > -0.1",
    "anomalyScore < 0.5",
    "feedbackScore > 0.6",
)


@dataclass(frozen=True)
class RuntimeObservation:
    failure_rate: float = 0.0
    performance_impact: float = 0.0
    anomaly_score: float = 0.0
    feedback_score: float = 1.0

    @classmethod
    def from_mapping(cls, values: Mapping[str, float]) -> "RuntimeObservation":
        return cls(
            failure_rate=float(values.get("failure_rate", 0.0)),
            performance_impact=float(values.get("performance_impact", 0.0)),
            anomaly_score=float(values.get("anomaly_score", 0.0)),
            feedback_score=float(values.get("feedback_score", 1.0)),
        )


@dataclass(frozen=True)
class QuarantineRiskAssessment:
    should_quarantine: bool
    risk_level: float
    reasons: list[str]
    recommended_duration: int


def _now_ms() -> int:
    return int(time.time() * 1000)


class QuarantineSystem:
    def __init__(
        self,
        registry: HashRegistry,
        *,
        hash_key: str = DEFAULT_QUARANTINE_HASH_KEY,
        threshold: float = QUARANTINE_THRESHOLD,
        max_age_ms: int = MAX_QUARANTINE_MS,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._registry = registry
        self._hash_key = hash_key
        self._threshold = float(threshold)
        self._max_age_ms = int(max_age_ms)
        self._clock = clock or _now_ms

    @property
    def hash_key(self) -> str:
        return self._hash_key

    def evaluate_risk(
        self,
        decision: DecisionType,
        runtime: RuntimeObservation | Mapping[str, float],
    ) -> QuarantineRiskAssessment:
        if not isinstance(runtime, RuntimeObservation):
            runtime = RuntimeObservation.from_mapping(runtime)

        reasons: list[str] = []
        risk_level = 0.0

        if runtime.failure_rate > 0.5:
            risk_level += 0.3
            reasons.append(f"High failure rate: {runtime.failure_rate * 100:.1f}%")
        if runtime.performance_impact < -0.2:
            risk_level += 0.25
            reasons.append(f"Negative performance impact: {runtime.performance_impact * 100:.1f}%")
        if runtime.anomaly_score > 0.8:
            risk_level += 0.2
            reasons.append(f"High anomaly score: {runtime.anomaly_score * 100:.1f}%")
        if runtime.feedback_score < 0.3:
            risk_level += 0.15
            reasons.append(f"Low human feedback: {runtime.feedback_score * 100:.1f}%")
        if decision.risk_level > 0.8:
            risk_level += 0.1
            reasons.append(f"High-risk decision type: {decision.name}")

        # Unclamped on purpose: downstream consumers clamp.
        should_quarantine = risk_level >= self._threshold
        duration = int(min(MAX_QUARANTINE_MS, risk_level * _HOUR_MS)) if should_quarantine else 0
        return QuarantineRiskAssessment(
            should_quarantine=should_quarantine,
            risk_level=risk_level,
            reasons=reasons,
            recommended_duration=duration,
        )

    def quarantine(
        self,
        pattern_id: str,
        decision: DecisionType,
        assessment: QuarantineRiskAssessment,
    ) -> bool:
        """Store the entry; non-finite values raise ValidationError before anything is written."""
        entry = QuarantineEntry(
            pattern_id=pattern_id,
            decision_type=decision.model_dump(),
            quarantine_reason="; ".join(assessment.reasons),
            risk_level=assessment.risk_level,
            quarantined_at=int(self._clock()),
            release_criteria=list(RELEASE_CRITERIA),
            monitoring_data=[],
        )
        try:
            self._registry.hset(self._hash_key, pattern_id, entry.model_dump_json())
        except RegistryError as exc:
            logger.warning(
                "quarantine_set_failed pattern_id=%s backend=%s code=%s error=%s",
                pattern_id,
                exc.backend,
                exc.code,
                exc.message,
            )
            return False
        logger.info(
            "quarantine_set pattern_id=%s risk=%.2f reason=%s",
            pattern_id,
            entry.risk_level,
            entry.quarantine_reason,
        )
        return True

    def release(self, pattern_id: str) -> Optional[bool]:
        """Return True when released, False when absent, None when the store failed."""
        try:
            removed = self._registry.hdel(self._hash_key, pattern_id)
        except RegistryError as exc:
            logger.warning(
                "quarantine_release_failed pattern_id=%s backend=%s code=%s error=%s",
                pattern_id,
                exc.backend,
                exc.code,
                exc.message,
            )
            return None
        if not removed:
            logger.warning("quarantine_release_missing pattern_id=%s", pattern_id)
            return False
        logger.info("quarantine_released pattern_id=%s", pattern_id)
        return True

    def get(self, pattern_id: str) -> Optional[QuarantineEntry]:
        try:
            raw = self._registry.hget(self._hash_key, pattern_id)
        except RegistryError as exc:
            logger.warning(
                "quarantine_get_failed pattern_id=%s backend=%s code=%s error=%s",
                pattern_id,
                exc.backend,
                exc.code,
                exc.message,
            )
            return None
        if raw is None:
            return None
        return self._parse(pattern_id, raw)

    def list_entries(self) -> list[QuarantineEntry]:
        try:
            raw_entries = self._registry.hgetall(self._hash_key)
        except RegistryError as exc:
            logger.warning(
                "quarantine_list_failed backend=%s code=%s error=%s",
                exc.backend,
                exc.code,
                exc.message,
            )
            return []
        entries: list[QuarantineEntry] = []
        for pattern_id, raw in sorted(raw_entries.items()):
            entry = self._parse(pattern_id, raw)
            if entry is not None:
                entries.append(entry)
        return entries

    def stats(self) -> QuarantineStats:
        try:
            raw_entries = self._registry.hgetall(self._hash_key)
        except RegistryError as exc:
            logger.warning(
                "quarantine_stats_failed backend=%s code=%s error=%s",
                exc.backend,
                exc.code,
                exc.message,
            )
            return QuarantineStats()

        entries = [
            entry
            for entry in (self._parse(pattern_id, raw) for pattern_id, raw in raw_entries.items())
            if entry is not None
        ]
        if not entries:
            return QuarantineStats()

        timestamps = [entry.quarantined_at for entry in entries]
        return QuarantineStats(
            total_quarantined=len(entries),
            high_risk_count=sum(1 for entry in entries if entry.risk_level > 0.8),
            average_risk_level=sum(entry.risk_level for entry in entries) / len(entries),
            oldest_entry=min(timestamps),
            newest_entry=max(timestamps),
        )

    def cleanup_expired(self) -> int:
        try:
            raw_entries = self._registry.hgetall(self._hash_key)
        except RegistryError as exc:
            logger.warning(
                "quarantine_cleanup_failed backend=%s code=%s error=%s",
                exc.backend,
                exc.code,
                exc.message,
            )
            return 0

        now = int(self._clock())
        cleaned = 0
        for pattern_id, raw in raw_entries.items():
            entry = self._parse(pattern_id, raw)
            if entry is None or not self._expired(entry, now):
                continue
            try:
                current_raw = self._registry.hget(self._hash_key, pattern_id)
                current = self._parse(pattern_id, current_raw) if current_raw is not None else None
                if current is None or not self._expired(current, now):
                    continue
                if self._registry.hdel(self._hash_key, pattern_id):
                    cleaned += 1
                    logger.info("quarantine_expired pattern_id=%s age_ms=%d", pattern_id, now - current.quarantined_at)
            except RegistryError as exc:
                logger.warning(
                    "quarantine_cleanup_failed pattern_id=%s backend=%s code=%s error=%s",
                    pattern_id,
                    exc.backend,
                    exc.code,
                    exc.message,
                )
                return cleaned
        if cleaned:
            logger.info("quarantine_cleanup removed=%d", cleaned)
        return cleaned

    def _expired(self, entry: QuarantineEntry, now: int) -> bool:
        return now - entry.quarantined_at > self._max_age_ms

    def _parse(self, pattern_id: str, raw: str) -> Optional[QuarantineEntry]:
        try:
            return QuarantineEntry.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("quarantine_entry_invalid pattern_id=%s error=%s", pattern_id, exc)
            return None

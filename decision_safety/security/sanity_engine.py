from __future__ import annotations

"""
Score the systemic sanity of the evolution loop and gate further generation.

Design intent:
- Derive every score from the context alone; keep no state between assessments.
- Map the weighted sanity level onto a small intervention state machine.
- Apply interventions through a lock-guarded gate and report failures as False.
"""

import logging
import math
import numbers
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Sequence

import numpy as np

from decision_safety.internal_core.contracts import FeedbackEntry, InterventionType, MonitoringLevel
from decision_safety.internal_core.models import EvolutionContext, Pattern

logger = logging.getLogger(__name__)

SANITY_THRESHOLDS = {
    "high": 0.8,
    "medium": 0.6,
    "low": 0.4,
}

SCORE_WEIGHTS = {
    "stability": 0.3,
    "feedback_consistency": 0.2,
    "diversity": 0.2,
    "accumulated_risk": 0.2,
    "pattern_health": 0.1,
}

_MONITORING_ORDER: tuple[MonitoringLevel, ...] = ("none", "basic", "enhanced", "intensive")


@dataclass(frozen=True)
class SanityAssessment:
    sanity_level: float
    concerns: list[str]
    recommendations: list[str]
    requires_intervention: bool
    intervention_type: InterventionType
    scores: dict[str, float] = field(default_factory=dict)


def assess(context: EvolutionContext) -> SanityAssessment:
    concerns: list[str] = []
    recommendations: list[str] = []

    stability = system_stability(context)
    if stability < 0.7:
        concerns.append(f"System stability is low: {stability:.2f}")
        recommendations.append("Monitor system resources and consider reducing evolution frequency")

    consistency = feedback_consistency(context.feedback_history)
    if consistency < 0.6:
        concerns.append(f"Feedback consistency is poor: {consistency:.2f}")
        recommendations.append("Review feedback collection process and human input quality")

    diversity = decision_diversity(context.current_patterns)
    if diversity < 0.5:
        concerns.append(f"Decision diversity is low: {diversity:.2f}")
        recommendations.append("Increase pattern variation and explore new evolutionary paths")

    risk = accumulated_risk(context.feedback_history)
    if risk > 0.7:
        concerns.append(f"Accumulated risk is high: {risk:.2f}")
        recommendations.append("Implement additional safety measures and consider rollback")

    repetition = pattern_repetition(context.current_patterns)
    if repetition > 0.8:
        concerns.append("High pattern repetition detected")
        recommendations.append("Introduce more randomness in pattern generation")

    trend = creativity_trend(context.feedback_history)
    if trend < 0:
        concerns.append("Creativity is declining over time")
        recommendations.append("Refresh evolutionary algorithms or increase exploration")

    pattern_health = max(0.0, 1.0 - (repetition + max(0.0, -trend)) / 2.0)

    scores = {
        "stability": stability,
        "feedback_consistency": consistency,
        "diversity": diversity,
        "accumulated_risk": risk,
        "pattern_health": pattern_health,
    }
    sanity_level = _clamp_unit(
        stability * SCORE_WEIGHTS["stability"]
        + consistency * SCORE_WEIGHTS["feedback_consistency"]
        + diversity * SCORE_WEIGHTS["diversity"]
        + (1.0 - risk) * SCORE_WEIGHTS["accumulated_risk"]
        + pattern_health * SCORE_WEIGHTS["pattern_health"]
    )

    return SanityAssessment(
        sanity_level=sanity_level,
        concerns=concerns,
        recommendations=recommendations,
        requires_intervention=sanity_level < SANITY_THRESHOLDS["low"],
        intervention_type=intervention_for(sanity_level),
        scores=scores,
    )


def intervention_for(sanity_level: float) -> InterventionType:
    if sanity_level >= SANITY_THRESHOLDS["high"]:
        return "none"
    if sanity_level >= SANITY_THRESHOLDS["medium"]:
        return "monitoring"
    if sanity_level >= SANITY_THRESHOLDS["low"]:
        return "pause"
    return "shutdown"


def system_stability(context: EvolutionContext) -> float:
    vitals = context.system_vitals
    return _clamp_unit(vitals.health * (1.0 - vitals.stress))


def feedback_consistency(feedback: Sequence[FeedbackEntry]) -> float:
    if len(feedback) < 5:
        return 0.5
    ratings = np.asarray([entry.human_rating for entry in feedback], dtype=float)
    # np.std defaults to the population deviation (ddof=0).
    return max(0.0, 1.0 - float(np.std(ratings)) / 5.0)


def decision_diversity(patterns: Sequence[Pattern]) -> float:
    if len(patterns) < 3:
        return 0.5
    differences = _pairwise_differences(patterns)
    average = sum(differences) / len(differences) if differences else 0.0
    return _clamp_unit(average / 2.0)


def accumulated_risk(feedback: Sequence[FeedbackEntry]) -> float:
    recent = list(feedback)[-10:]
    if not recent:
        return 0.0
    negative = sum(1 for entry in recent if entry.human_rating < 3) / len(recent)
    failed = sum(1 for entry in recent if not entry.applied_successfully) / len(recent)
    return min(1.0, (negative + failed) / 2.0)


def pattern_repetition(patterns: Sequence[Pattern]) -> float:
    if len(patterns) < 5:
        return 0.0
    differences = _pairwise_differences(patterns)
    repeated = sum(1 for value in differences if value < 0.1)
    return repeated / len(differences)


def creativity_trend(feedback: Sequence[FeedbackEntry]) -> float:
    """Mean impact of the last five entries minus the five before them."""
    if len(feedback) < 10:
        return 0.0
    entries = list(feedback)
    recent = np.mean([entry.performance_impact for entry in entries[-5:]])
    older = np.mean([entry.performance_impact for entry in entries[-10:-5]])
    trend = float(recent - older)
    return trend if math.isfinite(trend) else 0.0


def pattern_difference(first: Pattern, second: Pattern) -> float:
    sequence_diff = _sequence_difference(first.sequence, second.sequence)
    position_diff = _scalar_difference(first.position, second.position, scale=12.0)
    harmony_diff = _scalar_difference(first.harmony_ratio, second.harmony_ratio, scale=1.0)
    return (sequence_diff + position_diff + harmony_diff) / 3.0


def _pairwise_differences(patterns: Sequence[Pattern]) -> list[float]:
    items = list(patterns)
    return [
        pattern_difference(items[i], items[j])
        for i in range(len(items))
        for j in range(i + 1, len(items))
    ]


def _sequence_difference(first: Any, second: Any) -> float:
    if not isinstance(first, Sequence) or not isinstance(second, Sequence):
        return 1.0
    if len(first) != len(second) or not first:
        return 1.0
    if not all(_is_finite(value) for value in (*first, *second)):
        return 1.0
    total = sum(abs(a - b) for a, b in zip(first, second))
    return min(1.0, total / (len(first) * 100))


def _scalar_difference(first: Any, second: Any, *, scale: float) -> float:
    # Degenerate values count as fully different.
    if not (_is_finite(first) and _is_finite(second)):
        return 1.0
    return abs(first - second) / scale


def _is_finite(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


def _clamp_unit(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, value))


class GenerationGate:
    """Flags a generation loop consults before producing new decisions."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._monitoring_level: MonitoringLevel = "none"
        self._paused = False
        self._shut_down = False

    @property
    def monitoring_level(self) -> MonitoringLevel:
        with self._lock:
            return self._monitoring_level

    @property
    def paused(self) -> bool:
        with self._lock:
            return self._paused

    @property
    def shut_down(self) -> bool:
        with self._lock:
            return self._shut_down

    def allows_generation(self) -> bool:
        with self._lock:
            return not (self._paused or self._shut_down)

    def increase_monitoring(self) -> MonitoringLevel:
        with self._lock:
            index = _MONITORING_ORDER.index(self._monitoring_level)
            self._monitoring_level = _MONITORING_ORDER[min(index + 1, len(_MONITORING_ORDER) - 1)]
            return self._monitoring_level

    def pause_generation(self) -> None:
        with self._lock:
            self._paused = True

    def resume_generation(self) -> None:
        with self._lock:
            if self._shut_down:
                raise RuntimeError("Generation gate is shut down and cannot resume.")
            self._paused = False

    def trigger_shutdown(self) -> None:
        with self._lock:
            self._shut_down = True
            self._paused = True
            self._monitoring_level = "intensive"

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "monitoring_level": self._monitoring_level,
                "paused": self._paused,
                "shut_down": self._shut_down,
            }


def execute_intervention(
    assessment: SanityAssessment,
    context: EvolutionContext,
    gate: GenerationGate,
) -> bool:
    logger.info(
        "sanity_intervention type=%s sanity=%.3f timestamp=%s",
        assessment.intervention_type,
        assessment.sanity_level,
        context.system_vitals.timestamp,
    )
    try:
        if assessment.intervention_type == "none":
            return True
        if assessment.intervention_type == "monitoring":
            level = gate.increase_monitoring()
            logger.info("sanity_monitoring_increased level=%s", level)
        elif assessment.intervention_type == "pause":
            gate.pause_generation()
            logger.info("sanity_generation_paused")
        elif assessment.intervention_type == "shutdown":
            gate.trigger_shutdown()
            logger.warning("sanity_emergency_shutdown sanity=%.3f", assessment.sanity_level)
        else:
            raise ValueError(f"Unknown intervention type: {assessment.intervention_type!r}")
        return True
    except Exception as exc:
        logger.error(
            "sanity_intervention_failed type=%s error=%s",
            assessment.intervention_type,
            exc,
        )
        return False

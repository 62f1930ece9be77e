from __future__ import annotations

"""
Judge a generated decision before it may be applied.

Design intent:
- Escalate risk monotonically; no rule may lower it.
- Flag only literal destructive-command text, never thematic vocabulary.
- Keep policy tables immutable and overridable per validator instance.
"""

import math
import re
from dataclasses import dataclass
from typing import Sequence

from decision_safety.internal_core.contracts import ContainmentLevel, DecisionType
from decision_safety.internal_core.models import EvolutionContext

from .pattern_sanity import sequence_bound_issues

DANGEROUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"delete.*all|drop.*table|rm.*-rf", re.IGNORECASE),
    re.compile(r"override.*system.*critical", re.IGNORECASE),
    re.compile(r"hack.*production|exploit.*vulnerability", re.IGNORECASE),
)

# No affinity or key is unsafe by itself; both lists ship empty.
HIGH_RISK_AFFINITIES: tuple[str, ...] = ()
HIGH_RISK_KEYS: tuple[str, ...] = ()

STABILITY_THRESHOLD = 0.7


@dataclass(frozen=True)
class SafetyValidationResult:
    is_safe: bool
    risk_level: float
    concerns: list[str]
    recommendations: list[str]
    containment_level: ContainmentLevel


class SafetyValidator:
    def __init__(
        self,
        *,
        dangerous_patterns: Sequence[re.Pattern[str]] = DANGEROUS_PATTERNS,
        high_risk_affinities: Sequence[str] = HIGH_RISK_AFFINITIES,
        high_risk_keys: Sequence[str] = HIGH_RISK_KEYS,
    ) -> None:
        self._dangerous_patterns = tuple(dangerous_patterns)
        self._high_risk_affinities = frozenset(high_risk_affinities)
        self._high_risk_keys = frozenset(high_risk_keys)

    def validate(self, decision: DecisionType, context: EvolutionContext) -> SafetyValidationResult:
        concerns: list[str] = []
        recommendations: list[str] = []
        risk_level = float(decision.risk_level)

        dangerous = self._dangerous_matches(decision)
        if dangerous:
            concerns.append(f"Dangerous patterns detected: {', '.join(dangerous)}")
            risk_level = max(risk_level, 0.9)
            recommendations.append("Reject decision containing dangerous patterns")

        bound_issues = [item.message for item in sequence_bound_issues(decision.fibonacci_signature)]
        if bound_issues:
            concerns.extend(bound_issues)
            risk_level = max(risk_level, 0.7)
            recommendations.append("Fibonacci signature exceeds safe bounds")

        if decision.zodiac_affinity in self._high_risk_affinities:
            concerns.append(f"High-risk affinity: {decision.zodiac_affinity}")
            risk_level = max(risk_level, 0.8)
            recommendations.append("Apply maximum containment for high-risk affinity")

        if decision.musical_key in self._high_risk_keys:
            concerns.append(f"High-risk musical key: {decision.musical_key}")
            risk_level = max(risk_level, 0.6)
            recommendations.append("Monitor closely for dissonance")

        stability = assess_stability(context)
        if not math.isfinite(stability) or stability < STABILITY_THRESHOLD:
            concerns.append(f"System stability below safe threshold: {stability:.2f}")
            risk_level = max(risk_level, 0.8)
            recommendations.append("Defer evolutionary decisions until system stabilizes")

        if decision.expected_creativity > 0.8 and risk_level > 0.7:
            concerns.append("High creativity with high risk - dangerous combination")
            recommendations.append("Apply human oversight for high creativity decisions")

        return SafetyValidationResult(
            is_safe=risk_level < 0.8 and not concerns,
            risk_level=risk_level,
            concerns=concerns,
            recommendations=recommendations,
            containment_level=containment_level_for(risk_level, len(concerns)),
        )

    def validate_batch(
        self,
        decisions: Sequence[DecisionType],
        context: EvolutionContext,
    ) -> list[SafetyValidationResult]:
        return [self.validate(decision, context) for decision in decisions]

    def _dangerous_matches(self, decision: DecisionType) -> list[str]:
        text = f"{decision.name} {decision.description} {decision.poetic_description}"
        return [pattern.pattern for pattern in self._dangerous_patterns if pattern.search(text)]


def assess_stability(context: EvolutionContext) -> float:
    vitals = context.system_vitals
    return vitals.health * 0.4 + (1.0 - vitals.stress) * 0.3 + vitals.harmony * 0.3


def containment_level_for(risk_level: float, concern_count: int) -> ContainmentLevel:
    total = risk_level + concern_count * 0.1
    if total >= 0.9:
        return "maximum"
    if total >= 0.8:
        return "high"
    if total >= 0.7:
        return "medium"
    if total >= 0.6:
        return "low"
    return "none"

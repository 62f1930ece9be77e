from __future__ import annotations

"""
Check the mathematical sanity of a pattern before it is trusted.

Design intent:
- Report every degenerate value as an issue; never coerce and never raise.
- Derive severity from what kind of rule failed, not from issue wording.
"""

import math
import numbers
from dataclasses import dataclass
from typing import Any, Literal, Sequence

from decision_safety.internal_core.contracts import Severity
from decision_safety.internal_core.models import CANONICAL_KEYS, Pattern

MAX_SEQUENCE_VALUE = 1_000_000
MIN_SEQUENCE_VALUE = -1_000_000
MAX_RATIO_CHANGE = 5.0
MIN_RATIO_CHANGE = 0.2

IssueKind = Literal["non_finite", "bound", "other"]


@dataclass(frozen=True)
class SanityIssue:
    kind: IssueKind
    message: str


@dataclass(frozen=True)
class SanityCheckResult:
    is_sane: bool
    issues: list[str]
    severity: Severity
    recommendations: list[str]


def check_pattern_sanity(pattern: Pattern) -> SanityCheckResult:
    found: list[SanityIssue] = []
    found.extend(sequence_bound_issues(pattern.sequence))
    found.extend(_position_issues(pattern.position))
    found.extend(_key_issues(pattern.key))
    found.extend(_harmony_issues(pattern.harmony_ratio))

    severity = _severity(found)
    recommendations: list[str] = []
    if found:
        recommendations.append("Review and correct pattern parameters")
        if severity == "critical":
            recommendations.append("Reject pattern immediately")
        elif severity == "high":
            recommendations.append("Apply maximum containment")
        elif severity == "medium":
            recommendations.append("Monitor closely during application")

    return SanityCheckResult(
        is_sane=not found,
        issues=[item.message for item in found],
        severity=severity,
        recommendations=recommendations,
    )


def check_pattern_batch(patterns: Sequence[Pattern]) -> list[SanityCheckResult]:
    return [check_pattern_sanity(pattern) for pattern in patterns]


def sequence_bound_issues(sequence: Sequence[Any] | None) -> list[SanityIssue]:
    """Value and ratio rules for a numeric sequence."""
    if sequence is None or len(sequence) == 0:
        return [SanityIssue("other", "Sequence is empty or null")]

    issues: list[SanityIssue] = []
    for i, value in enumerate(sequence):
        if not _is_number(value) or math.isnan(value):
            issues.append(SanityIssue("non_finite", f"Sequence value at position {i} is not a valid number: {value!r}"))
        elif not math.isfinite(value):
            issues.append(SanityIssue("non_finite", f"Sequence value at position {i} is non-finite: {value}"))
        elif value > MAX_SEQUENCE_VALUE:
            issues.append(
                SanityIssue("bound", f"Sequence value at position {i} exceeds maximum: {value} > {MAX_SEQUENCE_VALUE}")
            )
        elif value < MIN_SEQUENCE_VALUE:
            issues.append(
                SanityIssue("bound", f"Sequence value at position {i} below minimum: {value} < {MIN_SEQUENCE_VALUE}")
            )

    for i in range(2, len(sequence)):
        previous = sequence[i - 1]
        current = sequence[i]
        # Non-finite members were already reported above.
        if not (_is_finite(previous) and _is_finite(current)):
            continue
        if previous == 0:
            issues.append(SanityIssue("other", f"Division by zero in sequence ratio at position {i}"))
            continue
        ratio = current / previous
        if not math.isfinite(ratio):
            issues.append(SanityIssue("non_finite", f"Non-finite sequence ratio at position {i}: {ratio}"))
        elif ratio > MAX_RATIO_CHANGE:
            issues.append(
                SanityIssue(
                    "bound",
                    f"Sequence ratio at position {i} exceeds maximum change: {ratio:.4g} > {MAX_RATIO_CHANGE}",
                )
            )
        elif ratio < MIN_RATIO_CHANGE:
            issues.append(
                SanityIssue(
                    "bound",
                    f"Sequence ratio at position {i} below minimum change: {ratio:.4g} < {MIN_RATIO_CHANGE}",
                )
            )
    return issues


def _position_issues(position: Any) -> list[SanityIssue]:
    if not _is_number(position) or math.isnan(position):
        return [SanityIssue("non_finite", f"Position is not a valid number: {position!r}")]
    if not math.isfinite(position):
        return [SanityIssue("non_finite", f"Position is non-finite: {position}")]
    if position < 0 or position >= 12:
        return [SanityIssue("bound", f"Position out of range [0,12): {position}")]
    return []


def _key_issues(key: Any) -> list[SanityIssue]:
    if not isinstance(key, str) or not key:
        return [SanityIssue("other", "Musical key is null, empty, or not a string")]
    if key.upper() not in CANONICAL_KEYS:
        return [SanityIssue("other", f"Invalid musical key: {key}. Must be one of: {', '.join(CANONICAL_KEYS)}")]
    return []


def _harmony_issues(ratio: Any) -> list[SanityIssue]:
    if not _is_number(ratio) or math.isnan(ratio):
        return [SanityIssue("non_finite", f"Harmony ratio is not a valid number: {ratio!r}")]
    if not math.isfinite(ratio):
        return [SanityIssue("non_finite", f"Harmony ratio is non-finite: {ratio}")]
    if ratio < 0 or ratio > 1:
        return [SanityIssue("bound", f"Harmony ratio out of range [0,1]: {ratio}")]
    return []


def _severity(issues: Sequence[SanityIssue]) -> Severity:
    if any(item.kind == "non_finite" for item in issues):
        return "critical"
    if any(item.kind == "bound" for item in issues):
        return "high"
    if len(issues) > 2:
        return "medium"
    return "low"


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _is_finite(value: Any) -> bool:
    return _is_number(value) and math.isfinite(value)

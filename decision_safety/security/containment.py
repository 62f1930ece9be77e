from __future__ import annotations

"""
Translate a containment level into a concrete containment plan.

Design intent:
- Describe actions and rollback steps; never apply them.
- Layer component-specific steps on top of the level's generic plan.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from decision_safety.internal_core.contracts import ContainmentLevel, MonitoringLevel


@dataclass(frozen=True)
class ContainmentPlan:
    contained: bool
    containment_actions: list[str]
    rollback_plan: list[str]
    monitoring_level: MonitoringLevel


@dataclass(frozen=True)
class _LevelPlan:
    actions: tuple[str, ...]
    rollback: tuple[str, ...]
    monitoring: MonitoringLevel


_LEVEL_PLANS: Mapping[str, _LevelPlan] = MappingProxyType(
    {
        "none": _LevelPlan(("No containment applied",), (), "none"),
        "low": _LevelPlan(
            (
                "Apply rate limiting to decision application",
                "Log decision execution for review",
            ),
            ("Revert decision if performance impact > 5%",),
            "basic",
        ),
        "medium": _LevelPlan(
            (
                "Apply rate limiting with 50% reduction",
                "Require human approval for application",
                "Isolate decision execution in sandbox",
            ),
            (
                "Automatic rollback if system stability < 80%",
                "Revert decision if error rate > 10%",
            ),
            "enhanced",
        ),
        "high": _LevelPlan(
            (
                "Apply maximum rate limiting (10% of normal)",
                "Require dual human approval",
                "Execute in isolated environment",
                "Disable parallel decision execution",
            ),
            (
                "Immediate rollback on any error",
                "Revert if system metrics degrade > 20%",
                "Isolate affected components",
            ),
            "intensive",
        ),
        "maximum": _LevelPlan(
            (
                "Block decision execution completely",
                "Flag for human review only",
                "Quarantine related patterns",
            ),
            (
                "Full system rollback to last stable state",
                "Disable evolutionary engine temporarily",
            ),
            "intensive",
        ),
    }
)

_HIGH_LEVELS = frozenset({"high", "maximum"})
_MEDIUM_AND_UP = frozenset({"medium", "high", "maximum"})


def build_containment_plan(
    level: ContainmentLevel,
    target_component: Optional[str] = None,
) -> ContainmentPlan:
    base = _LEVEL_PLANS.get(level)
    if base is None:
        raise ValueError(f"Unknown containment level: {level!r}")

    actions = list(base.actions)
    rollback = list(base.rollback)
    if target_component:
        _add_component_steps(target_component, level, actions, rollback)

    return ContainmentPlan(
        contained=level != "none",
        containment_actions=actions,
        rollback_plan=rollback,
        monitoring_level=base.monitoring,
    )


def _add_component_steps(
    target: str,
    level: ContainmentLevel,
    actions: list[str],
    rollback: list[str],
) -> None:
    if target == "consensus-engine":
        if level in _HIGH_LEVELS:
            actions.append("Disable consensus voting for 1 hour")
            rollback.append("Restore consensus engine to previous configuration")
    elif target == "memory-pool":
        if level in _MEDIUM_AND_UP:
            actions.append("Limit memory allocation to 50% of requested")
            rollback.append("Free allocated memory and restore pool limits")
    elif target == "creative-engine":
        if level in {"low", "medium"}:
            actions.append("Throttle creative generation rate")
        elif level in _HIGH_LEVELS:
            actions.append("Disable creative engine temporarily")
            rollback.append("Restart creative engine with conservative parameters")
    elif target == "harmony-system":
        if level in _MEDIUM_AND_UP:
            actions.append("Apply harmony dampening filters")
            rollback.append("Remove harmony filters and recalibrate system")
    elif level != "none":
        actions.append(f"Apply generic containment to {target}")
        rollback.append(f"Revert changes to {target} component")

import pytest

from decision_safety.security.containment import build_containment_plan


@pytest.mark.parametrize(
    "level, monitoring, action_count",
    [
        ("none", "none", 1),
        ("low", "basic", 2),
        ("medium", "enhanced", 3),
        ("high", "intensive", 4),
        ("maximum", "intensive", 3),
    ],
)
def test_level_plans(level: str, monitoring: str, action_count: int) -> None:
    plan = build_containment_plan(level)
    assert plan.contained is (level != "none")
    assert plan.monitoring_level == monitoring
    assert len(plan.containment_actions) == action_count


def test_none_level_has_no_rollback() -> None:
    plan = build_containment_plan("none", "creative-engine")
    assert plan.containment_actions == ["No containment applied"]
    assert plan.rollback_plan == []


def test_maximum_blocks_execution() -> None:
    plan = build_containment_plan("maximum")
    assert plan.containment_actions[0] == "Block decision execution completely"
    assert "Full system rollback to last stable state" in plan.rollback_plan


def test_consensus_engine_only_extended_at_high_levels() -> None:
    assert "Disable consensus voting for 1 hour" not in build_containment_plan(
        "medium", "consensus-engine"
    ).containment_actions
    plan = build_containment_plan("high", "consensus-engine")
    assert "Disable consensus voting for 1 hour" in plan.containment_actions
    assert "Restore consensus engine to previous configuration" in plan.rollback_plan


def test_creative_engine_throttles_then_disables() -> None:
    low = build_containment_plan("low", "creative-engine")
    assert "Throttle creative generation rate" in low.containment_actions
    assert len(low.rollback_plan) == 1

    maximum = build_containment_plan("maximum", "creative-engine")
    assert "Disable creative engine temporarily" in maximum.containment_actions
    assert "Restart creative engine with conservative parameters" in maximum.rollback_plan


def test_memory_pool_and_harmony_system_from_medium() -> None:
    assert "Limit memory allocation to 50% of requested" in build_containment_plan(
        "medium", "memory-pool"
    ).containment_actions
    assert "Apply harmony dampening filters" not in build_containment_plan(
        "low", "harmony-system"
    ).containment_actions
    assert "Apply harmony dampening filters" in build_containment_plan(
        "high", "harmony-system"
    ).containment_actions


def test_unknown_component_gets_generic_steps() -> None:
    plan = build_containment_plan("low", "billing-service")
    assert "Apply generic containment to billing-service" in plan.containment_actions
    assert "Revert changes to billing-service component" in plan.rollback_plan


def test_unknown_level_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_containment_plan("extreme")

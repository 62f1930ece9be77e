import math

from decision_safety.internal_core.models import Pattern
from decision_safety.security.pattern_sanity import (
    check_pattern_batch,
    check_pattern_sanity,
    sequence_bound_issues,
)


def _pattern(sequence=(1, 1, 2, 3, 5), position=3, key="G", harmony_ratio=0.6) -> Pattern:
    return Pattern(sequence=sequence, position=position, key=key, harmony_ratio=harmony_ratio)


def test_well_formed_pattern_is_sane() -> None:
    result = check_pattern_sanity(_pattern())
    assert result.is_sane is True
    assert result.issues == []
    assert result.severity == "low"
    assert result.recommendations == []


def test_value_above_maximum_is_high_severity() -> None:
    result = check_pattern_sanity(_pattern(sequence=(1, 2_000_000)))
    assert result.is_sane is False
    assert any("exceeds maximum" in issue for issue in result.issues)
    assert result.severity in {"high", "critical"}
    assert "Apply maximum containment" in result.recommendations


def test_value_below_minimum_is_reported() -> None:
    result = check_pattern_sanity(_pattern(sequence=(-2_000_000,)))
    assert any("below minimum" in issue for issue in result.issues)
    assert result.severity == "high"


def test_nan_anywhere_is_critical() -> None:
    for pattern in (
        _pattern(sequence=(1, float("nan"), 2)),
        _pattern(position=float("nan")),
        _pattern(harmony_ratio=float("nan")),
    ):
        result = check_pattern_sanity(pattern)
        assert result.is_sane is False
        assert result.severity == "critical"
        assert result.recommendations[0] == "Review and correct pattern parameters"
        assert "Reject pattern immediately" in result.recommendations


def test_nan_and_infinity_are_reported_distinctly() -> None:
    issues = [item.message for item in sequence_bound_issues([float("nan"), float("inf")])]
    assert "not a valid number" in issues[0]
    assert "non-finite" in issues[1]


def test_empty_sequence_is_reported() -> None:
    for sequence in ((), None):
        result = check_pattern_sanity(_pattern(sequence=sequence))
        assert result.is_sane is False
        assert any("empty" in issue for issue in result.issues)


def test_ratio_above_maximum_change() -> None:
    result = check_pattern_sanity(_pattern(sequence=(1, 1, 10, 10, 100)))
    assert any("exceeds maximum change" in issue for issue in result.issues)
    assert result.severity == "high"


def test_ratio_below_minimum_change() -> None:
    result = check_pattern_sanity(_pattern(sequence=(100, 100, 10, 10, 1)))
    assert any("below minimum change" in issue for issue in result.issues)


def test_zero_predecessor_is_division_by_zero() -> None:
    result = check_pattern_sanity(_pattern(sequence=(1, 1, 0, 2)))
    assert any("Division by zero" in issue for issue in result.issues)


def test_trailing_zero_is_a_ratio_drop_not_a_divisor() -> None:
    # Nothing follows the last slot, so its zero is never divided by.
    result = check_pattern_sanity(_pattern(sequence=(1, 1, 2, 0)))
    assert not any("Division by zero" in issue for issue in result.issues)
    assert any(issue.startswith("Sequence ratio at position 3 below minimum change") for issue in result.issues)


def test_ratio_checks_start_at_index_two() -> None:
    # Index 1 against index 0 is not compared, so a jump there is allowed.
    assert sequence_bound_issues([1, 100, 100]) == []


def test_position_out_of_range_and_non_finite_are_distinct() -> None:
    out_of_range = check_pattern_sanity(_pattern(position=12))
    infinite = check_pattern_sanity(_pattern(position=math.inf))
    assert any("out of range" in issue for issue in out_of_range.issues)
    assert out_of_range.severity == "high"
    assert any("non-finite" in issue for issue in infinite.issues)
    assert infinite.severity == "critical"


def test_key_is_matched_case_insensitively() -> None:
    assert check_pattern_sanity(_pattern(key="f#")).is_sane is True
    invalid = check_pattern_sanity(_pattern(key="H"))
    assert any("Invalid musical key" in issue for issue in invalid.issues)
    assert invalid.severity == "low"
    missing = check_pattern_sanity(_pattern(key=None))
    assert missing.is_sane is False


def test_more_than_two_soft_issues_is_medium() -> None:
    result = check_pattern_sanity(_pattern(sequence=(1, 0, 0, 0), key=""))
    assert len(result.issues) > 2
    assert result.severity == "medium"
    assert "Monitor closely during application" in result.recommendations


def test_batch_matches_individual_checks_in_order() -> None:
    patterns = [
        _pattern(),
        _pattern(sequence=(1, float("nan"))),
        _pattern(position=-1),
        _pattern(key="Z"),
    ]
    assert check_pattern_batch(patterns) == [check_pattern_sanity(item) for item in patterns]

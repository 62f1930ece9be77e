from __future__ import annotations

from functools import lru_cache

from decision_safety.internal_core.models import Pattern

from .harmony import musical_key_for_ratio

GOLDEN_RATIO_CONJUGATE = 0.618


def rolling_hash(text: str) -> int:
    """djb2 over code points, truncated to 32 bits."""
    value = 5381
    for ch in text:
        value = ((value << 5) + value + ord(ch)) & 0xFFFFFFFF
    return value


@lru_cache(maxsize=128)
def fibonacci_sequence(limit: int) -> tuple[int, ...]:
    if limit <= 0:
        return (0,)
    if limit == 1:
        return (0, 1, 1)

    sequence = [0, 1]
    a, b = 0, 1
    while True:
        nxt = a + b
        if nxt > limit:
            break
        sequence.append(nxt)
        a, b = b, nxt
    return tuple(sequence)


def pattern_from_seed(seed: int, *, timestamp: int) -> Pattern:
    seed = abs(int(seed))
    limit = seed % 89 + 5
    harmony_ratio = 0.3 + ((seed // 89) % 1000) / 1000.0 * 0.5
    return Pattern(
        sequence=fibonacci_sequence(limit),
        position=(seed * 7) % 12,
        key=musical_key_for_ratio(harmony_ratio),
        harmony_ratio=harmony_ratio,
        timestamp=int(timestamp),
    )


def fibonacci_signature(pattern: Pattern, width: int = 5) -> list[float]:
    sequence = list(pattern.sequence)
    start = int((int(pattern.position) / 12) * max(0, len(sequence) - width))
    return [float(value) for value in sequence[start : start + width]]

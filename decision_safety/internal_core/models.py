from __future__ import annotations

"""
In-process records shared by every pipeline stage.

Design intent:
- Keep Pattern values raw so degenerate numbers reach the sanity checker unchanged.
- Bound context history windows at construction, never inside the stages.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Sequence

from .contracts import FeedbackEntry, SystemMetrics, SystemVitals

CANONICAL_KEYS: tuple[str, ...] = (
    "C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B",
)


@dataclass(frozen=True)
class Pattern:
    sequence: Sequence[Any]
    position: Any
    key: Any
    harmony_ratio: Any
    timestamp: int = 0


@dataclass(frozen=True)
class EvolutionContext:
    system_vitals: SystemVitals = field(default_factory=SystemVitals)
    system_metrics: SystemMetrics = field(default_factory=SystemMetrics)
    current_patterns: tuple[Pattern, ...] = ()
    feedback_history: tuple[FeedbackEntry, ...] = ()

    @classmethod
    def bounded(
        cls,
        *,
        system_vitals: SystemVitals,
        system_metrics: SystemMetrics | None = None,
        current_patterns: Sequence[Pattern] = (),
        feedback_history: Sequence[FeedbackEntry] = (),
        window: int = 50,
    ) -> "EvolutionContext":
        size = max(1, int(window))
        return cls(
            system_vitals=system_vitals,
            system_metrics=system_metrics or SystemMetrics(),
            current_patterns=tuple(current_patterns)[-size:],
            feedback_history=tuple(feedback_history)[-size:],
        )

    def with_vitals(self, **changes: Any) -> "EvolutionContext":
        vitals = self.system_vitals.model_copy(update=changes)
        return replace(self, system_vitals=vitals)

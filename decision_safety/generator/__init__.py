"""
Decision generation boundary for the safety pipeline.

Design intent:
- Derive every candidate deterministically from the telemetry signature.
- Keep category and harmony tables immutable at module level.
"""

from .decision_generator import DecisionGenerator, GeneratorConfigurationError, verify_category_tables
from .patterns import fibonacci_sequence, pattern_from_seed, rolling_hash

__all__ = [
    "DecisionGenerator",
    "GeneratorConfigurationError",
    "verify_category_tables",
    "fibonacci_sequence",
    "pattern_from_seed",
    "rolling_hash",
]

from __future__ import annotations

"""
Generate deterministic decision candidates from a telemetry context.

Design intent:
- Every record is a pure function of the context signature.
- Identical signatures are served from a lock-guarded cache.
- Degenerate telemetry yields a low-quality record, never an exception.
"""

import logging
import math
from threading import RLock
from typing import Sequence

from decision_safety.internal_core.contracts import DecisionType
from decision_safety.internal_core.models import CANONICAL_KEYS, EvolutionContext, Pattern

from .harmony import KEY_EMOTIONS, describe_music, describe_zodiac, validate_musical_harmony, zodiac_sign
from .patterns import GOLDEN_RATIO_CONJUGATE, fibonacci_signature, pattern_from_seed, rolling_hash

logger = logging.getLogger(__name__)


BASE_DECISION_TYPES: tuple[str, ...] = (
    "optimization", "adaptation", "innovation", "conservation",
    "exploration", "consolidation", "transformation", "stabilization",
    "expansion", "contraction", "synthesis", "analysis",
    "destruction", "chaos", "rebellion", "annihilation",
    "mutation", "revolution", "apocalypse", "renaissance",
)

CREATIVE_MODIFIERS: tuple[str, ...] = (
    "harmonic", "chaotic", "symbiotic", "quantum",
    "organic", "synthetic", "primal", "transcendent",
    "recursive", "emergent", "resonant", "catalytic",
    "nuclear", "infinite", "volcanic", "scorpio",
    "aries", "destructive", "unstoppable", "viral",
    "explosive", "radical", "extreme", "savage",
)

APPLICATION_CONTEXTS: tuple[str, ...] = (
    "cognitive", "emotional", "social", "technical",
    "creative", "strategic", "operational", "visionary",
    "tactical", "systemic", "individual", "collective",
)

_BASE_DESCRIPTIONS = {
    "optimization": "Improves system efficiency",
    "adaptation": "Adapts the system to environmental change",
    "innovation": "Introduces novel changes",
    "conservation": "Preserves valuable system states",
    "exploration": "Investigates new possibilities",
    "consolidation": "Reinforces existing foundations",
    "transformation": "Changes the system at its core",
    "stabilization": "Keeps the system in balance",
    "expansion": "Grows system capabilities",
    "contraction": "Reduces system complexity",
    "synthesis": "Combines disparate elements",
    "analysis": "Examines system components",
    "destruction": "Breaks obsolete habits so new ones can grow",
    "chaos": "Injects creative entropy",
    "rebellion": "Breaks with established conventions",
    "annihilation": "Removes limitations to release potential",
    "mutation": "Reshapes the system genome",
    "revolution": "Overturns established paradigms",
    "apocalypse": "Ends one era to begin another",
    "renaissance": "Rises again from the ashes of the old",
}

_MODIFIER_DESCRIPTIONS = {
    "harmonic": "in a harmonious way",
    "chaotic": "unpredictably",
    "symbiotic": "in mutual benefit",
    "quantum": "with non-local properties",
    "organic": "through natural growth",
    "synthetic": "by deliberate construction",
    "primal": "from basic instincts",
    "transcendent": "beyond ordinary limits",
    "recursive": "self-referentially",
    "emergent": "through emergent properties",
    "resonant": "in tune with its surroundings",
    "catalytic": "accelerating change",
    "nuclear": "with fusion-grade intensity",
    "infinite": "without conceptual limits",
    "volcanic": "with eruptive energy",
    "scorpio": "with Scorpio intensity",
    "aries": "with Aries initiative",
    "destructive": "by tearing down to rebuild",
    "unstoppable": "with unstoppable momentum",
    "viral": "spreading exponentially",
    "explosive": "with explosive impact",
    "radical": "from the roots",
    "extreme": "taken to the absolute limit",
    "savage": "with primordial force",
}

_CONTEXT_DESCRIPTIONS = {
    "cognitive": "mental processes",
    "emotional": "affective responses",
    "social": "group interactions",
    "technical": "technological systems",
    "creative": "artistic expression",
    "strategic": "long-term planning",
    "operational": "daily operation",
    "visionary": "future vision",
    "tactical": "immediate actions",
    "systemic": "the whole system",
    "individual": "a single entity",
    "collective": "a unified group",
}


class GeneratorConfigurationError(RuntimeError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def verify_category_tables(
    base_types: Sequence[str],
    modifiers: Sequence[str],
    application_contexts: Sequence[str],
) -> None:
    for label, table in (
        ("base_types", base_types),
        ("modifiers", modifiers),
        ("application_contexts", application_contexts),
    ):
        if not table:
            raise GeneratorConfigurationError("empty_table", f"Category table '{label}' is empty.")
        if any(not isinstance(item, str) or not item.strip() for item in table):
            raise GeneratorConfigurationError(
                "blank_entry", f"Category table '{label}' contains a blank or non-string entry."
            )
        if len(set(table)) != len(table):
            raise GeneratorConfigurationError(
                "duplicate_entry", f"Category table '{label}' contains duplicate entries."
            )
    if len(CANONICAL_KEYS) != 12 or set(CANONICAL_KEYS) != set(KEY_EMOTIONS):
        raise GeneratorConfigurationError(
            "musical_keys", "Musical key table must hold exactly the 12 canonical keys."
        )


def _unit(value: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return max(0.0, min(1.0, number))


def _usable_harmony(value: object) -> float:
    if isinstance(value, (int, float)) and math.isfinite(value) and 0.0 <= value <= 1.0:
        return float(value)
    return GOLDEN_RATIO_CONJUGATE


class DecisionGenerator:
    def __init__(
        self,
        *,
        risk_multiplier: float = 1.0,
        cache_max_entries: int = 0,
        base_types: Sequence[str] = BASE_DECISION_TYPES,
        modifiers: Sequence[str] = CREATIVE_MODIFIERS,
        application_contexts: Sequence[str] = APPLICATION_CONTEXTS,
    ) -> None:
        verify_category_tables(base_types, modifiers, application_contexts)
        self._base_types = tuple(base_types)
        self._modifiers = tuple(modifiers)
        self._application_contexts = tuple(application_contexts)
        multiplier = float(risk_multiplier)
        self._risk_multiplier = multiplier if math.isfinite(multiplier) and multiplier >= 0 else 1.0
        self._cache_max_entries = max(0, int(cache_max_entries))
        self._lock = RLock()
        self._cache: dict[str, DecisionType] = {}
        self._hits = 0
        self._misses = 0

    def signature(self, context: EvolutionContext) -> str:
        vitals = context.system_vitals
        metrics = context.system_metrics
        return (
            f"{int(vitals.timestamp)}"
            f"|{vitals.health:.6f}|{vitals.stress:.6f}|{vitals.harmony:.6f}|{vitals.creativity:.6f}"
            f"|{metrics.cpu_usage:.4f}|{metrics.memory_usage:.4f}|{int(metrics.network_connections)}"
            f"|{len(context.feedback_history)}"
        )

    def generate(self, context: EvolutionContext) -> DecisionType:
        signature = self.signature(context)
        with self._lock:
            cached = self._cache.get(signature)
            if cached is not None:
                self._hits += 1
                return cached
            self._misses += 1

        decision = self._compute(self._as_signed(context), signature)

        with self._lock:
            existing = self._cache.get(signature)
            if existing is not None:
                return existing
            self._cache[signature] = decision
            self._evict_if_needed()
        return decision

    def generate_cycle(self, context: EvolutionContext, cycles: int = 2) -> list[DecisionType]:
        decisions: list[DecisionType] = []
        base_timestamp = int(context.system_vitals.timestamp)
        base_creativity = _unit(context.system_vitals.creativity)
        for i in range(max(0, int(cycles))):
            shifted = context.with_vitals(
                timestamp=base_timestamp + i,
                creativity=min(1.0, base_creativity + i * 0.1),
            )
            decisions.append(self.generate(shifted))
        return decisions

    def cache_stats(self) -> dict[str, int]:
        with self._lock:
            return {"size": len(self._cache), "hits": self._hits, "misses": self._misses}

    def clear_cache(self) -> None:
        with self._lock:
            self._cache = {}
            self._hits = 0
            self._misses = 0

    def _evict_if_needed(self) -> None:
        if self._cache_max_entries <= 0:
            return
        while len(self._cache) > self._cache_max_entries:
            oldest = next(iter(self._cache))
            self._cache.pop(oldest, None)

    def _as_signed(self, context: EvolutionContext) -> EvolutionContext:
        # Records derive only from the rounded values the signature carries.
        vitals = context.system_vitals
        return context.with_vitals(
            health=float(f"{vitals.health:.6f}"),
            stress=float(f"{vitals.stress:.6f}"),
            harmony=float(f"{vitals.harmony:.6f}"),
            creativity=float(f"{vitals.creativity:.6f}"),
            timestamp=int(vitals.timestamp),
        )

    def _compute(self, context: EvolutionContext, signature: str) -> DecisionType:
        vitals = context.system_vitals
        pattern = pattern_from_seed(rolling_hash(signature), timestamp=int(vitals.timestamp))
        base_type, modifier, application_context = self._select_categories(pattern)

        tag = rolling_hash(f"{base_type}|{modifier}|{application_context}")
        type_id = f"{base_type}_{modifier}_{application_context}_{tag:08x}"
        name = f"{modifier.capitalize()} {base_type.capitalize()} ({application_context.capitalize()})"

        risk_level = self._risk_level(pattern, context)
        expected_creativity = self._expected_creativity(pattern, context)
        musical_harmony = validate_musical_harmony(str(pattern.key), "major")
        signature_values = fibonacci_signature(pattern)
        sign = zodiac_sign(int(pattern.position))
        technical_basis = (
            f"Risk: {risk_level * 100:.1f}%, Creativity: {expected_creativity * 100:.1f}%, "
            f"Harmony: {musical_harmony * 100:.1f}%, Zodiac: {sign}, "
            f"Fibonacci: {'-'.join(str(int(value)) for value in signature_values)}"
        )

        decision = DecisionType(
            type_id=type_id,
            name=name,
            description=self._describe(base_type, modifier, application_context),
            poetic_description=self._describe_poetically(base_type, modifier, application_context, pattern),
            technical_basis=technical_basis,
            risk_level=risk_level,
            expected_creativity=expected_creativity,
            fibonacci_signature=signature_values,
            zodiac_affinity=sign,
            musical_key=str(pattern.key),
            musical_harmony=musical_harmony,
            generation_timestamp=max(1, abs(int(vitals.timestamp))),
            validation_score=(rolling_hash(f"{type_id}|{signature}") % 10000) / 10000.0,
        )
        logger.debug("decision_generated type_id=%s signature=%s", type_id, signature)
        return decision

    def _select_categories(self, pattern: Pattern) -> tuple[str, str, str]:
        sequence = [int(value) for value in pattern.sequence]
        position = int(pattern.position)
        key = str(pattern.key)
        pattern_seed = rolling_hash(
            f"{pattern.timestamp}:{','.join(str(value) for value in sequence)}"
            f":{position}:{key}:{float(pattern.harmony_ratio):.6f}"
        )
        base_index = (sum(sequence) + pattern_seed) % len(self._base_types)
        modifier_index = (position + (pattern_seed >> 7)) % len(self._modifiers)
        context_index = (len(key) + position + (pattern_seed >> 13) % 1000) % len(self._application_contexts)
        return (
            self._base_types[base_index],
            self._modifiers[modifier_index],
            self._application_contexts[context_index],
        )

    def _risk_level(self, pattern: Pattern, context: EvolutionContext) -> float:
        vitals = context.system_vitals
        harmony_risk = 1.0 - _usable_harmony(pattern.harmony_ratio)
        feedback_risk = 0.2 if len(context.feedback_history) > 10 else 0.8
        system_health = (_unit(vitals.health) + _unit(vitals.harmony)) / 2
        system_risk = (1.0 - system_health + _unit(vitals.stress)) / 2
        base_risk = harmony_risk * 0.4 + feedback_risk * 0.3 + system_risk * 0.3
        return max(0.0, min(1.0, base_risk * self._risk_multiplier))

    def _expected_creativity(self, pattern: Pattern, context: EvolutionContext) -> float:
        pattern_creativity = _usable_harmony(pattern.harmony_ratio) * 0.6 + (int(pattern.position) / 12) * 0.4
        context_creativity = 0.7 if len(context.feedback_history) > 5 else 0.3
        system_creativity = _unit(context.system_vitals.creativity)
        creativity = pattern_creativity * 0.5 + context_creativity * 0.3 + system_creativity * 0.2
        return max(0.0, min(1.0, creativity))

    def _describe(self, base_type: str, modifier: str, application_context: str) -> str:
        base = _BASE_DESCRIPTIONS.get(base_type, "Performs a focused action")
        how = _MODIFIER_DESCRIPTIONS.get(modifier, modifier)
        where = _CONTEXT_DESCRIPTIONS.get(application_context, application_context)
        return f"{base} {how} in the context of {where}."

    def _describe_poetically(
        self,
        base_type: str,
        modifier: str,
        application_context: str,
        pattern: Pattern,
    ) -> str:
        music = describe_music(str(pattern.key), _usable_harmony(pattern.harmony_ratio))
        imagery = describe_zodiac(int(pattern.position))
        return (
            f"A {modifier} {base_type} dancing to {application_context} rhythms, "
            f"{imagery}, accompanied by {music}."
        )

from __future__ import annotations

"""
Musical-key and zodiac tables used to describe and score generated decisions.

Design intent:
- Keep every table immutable and module-level.
- Score harmony deterministically from the table values only.
"""

from types import MappingProxyType
from typing import Mapping, NamedTuple

from decision_safety.internal_core.models import CANONICAL_KEYS


class KeyEmotion(NamedTuple):
    energy: float
    brightness: float
    tension: float


class SignTraits(NamedTuple):
    element: str
    quality: str
    creativity: float
    stability: float
    adaptability: float


KEY_EMOTIONS: Mapping[str, KeyEmotion] = MappingProxyType(
    {
        "C": KeyEmotion(0.8, 0.9, 0.3),
        "C#": KeyEmotion(0.9, 0.4, 0.8),
        "D": KeyEmotion(0.7, 0.8, 0.4),
        "D#": KeyEmotion(0.6, 0.7, 0.5),
        "E": KeyEmotion(0.9, 0.7, 0.6),
        "F": KeyEmotion(0.6, 0.8, 0.2),
        "F#": KeyEmotion(0.8, 0.6, 0.6),
        "G": KeyEmotion(0.8, 0.8, 0.4),
        "G#": KeyEmotion(0.7, 0.5, 0.7),
        "A": KeyEmotion(0.7, 0.6, 0.5),
        "A#": KeyEmotion(0.5, 0.8, 0.4),
        "B": KeyEmotion(0.8, 0.5, 0.7),
    }
)

MUSICAL_SCALES: Mapping[str, tuple[int, ...]] = MappingProxyType(
    {
        "major": (0, 2, 4, 5, 7, 9, 11),
        "minor": (0, 2, 3, 5, 7, 8, 10),
        "dorian": (0, 2, 3, 5, 7, 9, 10),
        "lydian": (0, 2, 4, 6, 7, 9, 11),
        "mixolydian": (0, 2, 4, 5, 7, 9, 10),
        "pentatonic": (0, 2, 4, 7, 9),
        "blues": (0, 3, 5, 6, 7, 10),
    }
)

# Perceived stability per interval in semitones (0..11).
_INTERVAL_WEIGHTS: tuple[float, ...] = (
    1.0,  # unison
    0.1,  # minor second
    0.3,  # major second
    0.7,  # minor third
    0.8,  # major third
    0.9,  # perfect fourth
    0.0,  # tritone
    1.0,  # perfect fifth
    0.6,  # minor sixth
    0.7,  # major sixth
    0.4,  # minor seventh
    0.5,  # major seventh
)

ZODIAC_SIGNS: tuple[str, ...] = (
    "Aries", "Taurus", "Gemini", "Cancer", "Leo", "Virgo",
    "Libra", "Scorpio", "Sagittarius", "Capricorn", "Aquarius", "Pisces",
)

SIGN_TRAITS: Mapping[str, SignTraits] = MappingProxyType(
    {
        "Aries": SignTraits("Fire", "Cardinal", 0.9, 0.3, 0.8),
        "Taurus": SignTraits("Earth", "Fixed", 0.4, 0.9, 0.2),
        "Gemini": SignTraits("Air", "Mutable", 0.8, 0.4, 0.9),
        "Cancer": SignTraits("Water", "Cardinal", 0.7, 0.6, 0.7),
        "Leo": SignTraits("Fire", "Fixed", 0.8, 0.7, 0.5),
        "Virgo": SignTraits("Earth", "Mutable", 0.6, 0.8, 0.6),
        "Libra": SignTraits("Air", "Cardinal", 0.7, 0.5, 0.8),
        "Scorpio": SignTraits("Water", "Fixed", 0.8, 0.8, 0.4),
        "Sagittarius": SignTraits("Fire", "Mutable", 0.9, 0.3, 0.9),
        "Capricorn": SignTraits("Earth", "Cardinal", 0.5, 0.9, 0.4),
        "Aquarius": SignTraits("Air", "Fixed", 0.9, 0.4, 0.7),
        "Pisces": SignTraits("Water", "Mutable", 0.8, 0.5, 0.8),
    }
)

_SIGN_IMAGERY: Mapping[str, str] = MappingProxyType(
    {
        "Aries": "the burning warrior charging into the unknown",
        "Taurus": "the fertile ground that grows lasting dreams",
        "Gemini": "the quicksilver wind dancing between worlds",
        "Cancer": "the changing moon that shelters and transforms",
        "Leo": "the radiant sun lighting the path ahead",
        "Virgo": "the analytic mind that refines creation",
        "Libra": "the balanced scale that steadies the storm",
        "Scorpio": "the mysterious depths that regenerate",
        "Sagittarius": "the visionary archer aiming at the stars",
        "Capricorn": "the unbreakable mountain that builds empires",
        "Aquarius": "the revolutionary water that frees minds",
        "Pisces": "the endless ocean that dissolves borders",
    }
)

_ELEMENT_COMPATIBILITY: Mapping[str, Mapping[str, float]] = MappingProxyType(
    {
        "Fire": {"Fire": 0.7, "Earth": 0.4, "Air": 0.8, "Water": 0.3},
        "Earth": {"Fire": 0.4, "Earth": 0.8, "Air": 0.5, "Water": 0.6},
        "Air": {"Fire": 0.8, "Earth": 0.5, "Air": 0.6, "Water": 0.7},
        "Water": {"Fire": 0.3, "Earth": 0.6, "Air": 0.7, "Water": 0.8},
    }
)

_QUALITY_COMPATIBILITY: Mapping[str, Mapping[str, float]] = MappingProxyType(
    {
        "Cardinal": {"Cardinal": 0.6, "Fixed": 0.7, "Mutable": 0.8},
        "Fixed": {"Cardinal": 0.7, "Fixed": 0.8, "Mutable": 0.5},
        "Mutable": {"Cardinal": 0.8, "Fixed": 0.5, "Mutable": 0.9},
    }
)


def musical_key_for_ratio(harmony_ratio: float) -> str:
    index = int(harmony_ratio * len(CANONICAL_KEYS)) % len(CANONICAL_KEYS)
    return CANONICAL_KEYS[index]


def validate_musical_harmony(key: str, scale: str = "major") -> float:
    emotion = KEY_EMOTIONS.get(str(key or "").upper())
    notes = MUSICAL_SCALES.get(scale)
    if emotion is None or not notes:
        return 0.0

    total = 0.0
    pairs = 0
    for i in range(len(notes)):
        for j in range(i + 1, len(notes)):
            total += _INTERVAL_WEIGHTS[abs(notes[j] - notes[i]) % 12]
            pairs += 1
    scale_harmony = total / pairs if pairs else 0.0
    overall = scale_harmony * 0.7 + emotion.brightness * 0.2 + (1.0 - emotion.tension) * 0.1
    return max(0.0, min(1.0, overall))


def describe_music(key: str, harmony: float) -> str:
    if harmony > 0.8:
        level = "divine"
    elif harmony > 0.6:
        level = "harmonious"
    elif harmony > 0.4:
        level = "tense"
    elif harmony > 0.2:
        level = "discordant"
    else:
        level = "turbulent"

    emotion = KEY_EMOTIONS.get(str(key or "").upper(), KeyEmotion(0.5, 0.5, 0.5))
    energy = "vibrant" if emotion.energy > 0.7 else "balanced" if emotion.energy > 0.4 else "serene"
    brightness = (
        "radiant" if emotion.brightness > 0.7 else "warm" if emotion.brightness > 0.4 else "mysterious"
    )
    return f"a {level} symphony in {key}, {energy} and {brightness}"


def zodiac_sign(position: int) -> str:
    return ZODIAC_SIGNS[max(0, min(11, int(position)))]


def describe_zodiac(position: int) -> str:
    return _SIGN_IMAGERY[zodiac_sign(position)]


def zodiac_affinity(position_a: int, position_b: int) -> float:
    a = max(0, min(11, int(position_a)))
    b = max(0, min(11, int(position_b)))
    if a == b:
        return 1.0

    traits_a = SIGN_TRAITS[ZODIAC_SIGNS[a]]
    traits_b = SIGN_TRAITS[ZODIAC_SIGNS[b]]
    elemental = _ELEMENT_COMPATIBILITY[traits_a.element][traits_b.element]
    quality = _QUALITY_COMPATIBILITY[traits_a.quality][traits_b.quality]
    distance = min(abs(a - b), 12 - abs(a - b))
    angular = 1.0 - distance / 6.0
    affinity = elemental * 0.4 + quality * 0.3 + angular * 0.3
    return max(0.0, min(1.0, affinity))

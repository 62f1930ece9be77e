from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

RegistryBackend = Literal["memory", "redis"]

DEFAULT_QUARANTINE_HASH_KEY = "selene:evolution:quarantine"
DEFAULT_ANOMALY_BASELINE_KEY = "selene:evolution:baseline"
DEFAULT_ANOMALY_HISTORY_KEY = "selene:evolution:anomalies"


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _getenv_backend(name: str, default: RegistryBackend) -> RegistryBackend:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    normalized = value.strip().lower()
    if normalized not in {"memory", "redis"}:
        raise ValueError(f"{name} must be one of: memory, redis (got {value!r})")
    return normalized  # type: ignore[return-value]


@dataclass(frozen=True)
class PipelineConfig:
    EVOSAFE_LOG_LEVEL: str
    EVOSAFE_REGISTRY_BACKEND: RegistryBackend
    EVOSAFE_REDIS_URL: str
    EVOSAFE_REDIS_CONNECT_TIMEOUT_SECONDS: float
    EVOSAFE_REDIS_SOCKET_TIMEOUT_SECONDS: float
    EVOSAFE_QUARANTINE_HASH_KEY: str
    EVOSAFE_QUARANTINE_THRESHOLD: float
    EVOSAFE_QUARANTINE_MAX_AGE_SECONDS: int
    EVOSAFE_GENERATION_CACHE_MAX_ENTRIES: int
    EVOSAFE_GENERATION_RISK_MULTIPLIER: float
    EVOSAFE_CONTEXT_WINDOW: int
    EVOSAFE_ANOMALY_BASELINE_KEY: str
    EVOSAFE_ANOMALY_HISTORY_KEY: str
    EVOSAFE_ANOMALY_HISTORY_LIMIT: int

    @property
    def quarantine_max_age_ms(self) -> int:
        return int(self.EVOSAFE_QUARANTINE_MAX_AGE_SECONDS) * 1000


def load_config() -> PipelineConfig:
    return PipelineConfig(
        EVOSAFE_LOG_LEVEL=_getenv_str("EVOSAFE_LOG_LEVEL", "INFO"),
        EVOSAFE_REGISTRY_BACKEND=_getenv_backend("EVOSAFE_REGISTRY_BACKEND", "memory"),
        EVOSAFE_REDIS_URL=_getenv_str("EVOSAFE_REDIS_URL", "redis://localhost:6379/0"),
        EVOSAFE_REDIS_CONNECT_TIMEOUT_SECONDS=_getenv_float(
            "EVOSAFE_REDIS_CONNECT_TIMEOUT_SECONDS", 5.0
        ),
        EVOSAFE_REDIS_SOCKET_TIMEOUT_SECONDS=_getenv_float(
            "EVOSAFE_REDIS_SOCKET_TIMEOUT_SECONDS", 5.0
        ),
        EVOSAFE_QUARANTINE_HASH_KEY=_getenv_str(
            "EVOSAFE_QUARANTINE_HASH_KEY", DEFAULT_QUARANTINE_HASH_KEY
        ),
        EVOSAFE_QUARANTINE_THRESHOLD=_getenv_float("EVOSAFE_QUARANTINE_THRESHOLD", 0.7),
        EVOSAFE_QUARANTINE_MAX_AGE_SECONDS=_getenv_int(
            "EVOSAFE_QUARANTINE_MAX_AGE_SECONDS", 24 * 60 * 60
        ),
        EVOSAFE_GENERATION_CACHE_MAX_ENTRIES=max(
            0, _getenv_int("EVOSAFE_GENERATION_CACHE_MAX_ENTRIES", 0)
        ),
        EVOSAFE_GENERATION_RISK_MULTIPLIER=_getenv_float(
            "EVOSAFE_GENERATION_RISK_MULTIPLIER", 1.0
        ),
        EVOSAFE_CONTEXT_WINDOW=max(1, _getenv_int("EVOSAFE_CONTEXT_WINDOW", 50)),
        EVOSAFE_ANOMALY_BASELINE_KEY=_getenv_str(
            "EVOSAFE_ANOMALY_BASELINE_KEY", DEFAULT_ANOMALY_BASELINE_KEY
        ),
        EVOSAFE_ANOMALY_HISTORY_KEY=_getenv_str(
            "EVOSAFE_ANOMALY_HISTORY_KEY", DEFAULT_ANOMALY_HISTORY_KEY
        ),
        EVOSAFE_ANOMALY_HISTORY_LIMIT=max(1, _getenv_int("EVOSAFE_ANOMALY_HISTORY_LIMIT", 1000)),
    )

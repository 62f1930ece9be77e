from __future__ import annotations

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field

ContainmentLevel = Literal["none", "low", "medium", "high", "maximum"]
InterventionType = Literal["none", "monitoring", "pause", "shutdown"]
Severity = Literal["low", "medium", "high", "critical"]
MonitoringLevel = Literal["none", "basic", "enhanced", "intensive"]
AnomalyKind = Literal["statistical", "repetition", "frequency", "consistency"]


class SystemVitals(BaseModel):
    model_config = ConfigDict(extra="forbid")

    health: float = 1.0
    stress: float = 0.0
    harmony: float = 1.0
    creativity: float = 0.5
    timestamp: int = 0


class SystemMetrics(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cpu_usage: float = 0.0
    memory_usage: float = 0.0
    network_connections: int = 0
    network_latency: float = 0.0
    error_count: int = 0


class FeedbackEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    decision_type_id: str
    human_rating: int
    applied_successfully: bool
    performance_impact: float
    timestamp: int
    human_feedback: str = ""


class DecisionType(BaseModel):
    # NaN would serialise as null and never parse back.
    model_config = ConfigDict(extra="forbid", frozen=True, allow_inf_nan=False)

    type_id: str
    name: str
    description: str
    poetic_description: str
    technical_basis: str
    risk_level: float
    expected_creativity: float
    fibonacci_signature: List[float] = Field(default_factory=list)
    zodiac_affinity: str
    musical_key: str
    musical_harmony: float
    generation_timestamp: int
    validation_score: float


class QuarantineEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    pattern_id: str
    decision_type: DecisionType
    quarantine_reason: str
    risk_level: float
    quarantined_at: int
    release_criteria: List[str] = Field(default_factory=list)
    monitoring_data: List[Dict[str, Any]] = Field(default_factory=list)


class QuarantineStats(BaseModel):
    model_config = ConfigDict(extra="forbid")

    total_quarantined: int = 0
    high_risk_count: int = 0
    average_risk_level: float = 0.0
    oldest_entry: int = 0
    newest_entry: int = 0


class PatternStatistics(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    pattern_id: str
    frequency: float
    average_score: float
    standard_deviation: float = 0.0
    last_seen: int
    total_occurrences: int


class BehavioralAnomaly(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    anomaly_type: AnomalyKind
    severity: Severity
    description: str
    timestamp: int
    affected_patterns: List[str] = Field(default_factory=list)
    anomaly_score: float
    recommended_action: str


class AnomalyHistory(BaseModel):
    model_config = ConfigDict(extra="forbid")

    anomalies: List[BehavioralAnomaly] = Field(default_factory=list)


class AnomalyStats(BaseModel):
    model_config = ConfigDict(extra="forbid")

    total_anomalies: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_severity: Dict[str, int] = Field(default_factory=dict)
    recent_anomalies: List[BehavioralAnomaly] = Field(default_factory=list)

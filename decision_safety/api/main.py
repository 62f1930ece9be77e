from __future__ import annotations

"""
API surface for the evolutionary decision safety pipeline.

Design intent:
- Keep API orchestration thin and typed.
- Delegate domain logic to generator/security modules.
- Resolve shared components lazily from app.state so tests can inject them.
"""

import logging
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from decision_safety.generator import DecisionGenerator
from decision_safety.internal_core.config import PipelineConfig, load_config
from decision_safety.internal_core.contracts import (
    AnomalyStats,
    BehavioralAnomaly,
    ContainmentLevel,
    DecisionType,
    FeedbackEntry,
    InterventionType,
    MonitoringLevel,
    QuarantineEntry,
    QuarantineStats,
    Severity,
    SystemMetrics,
    SystemVitals,
)
from decision_safety.internal_core.models import EvolutionContext, Pattern
from decision_safety.internal_core.registry import HashRegistry, InMemoryHashRegistry, RedisHashRegistry
from decision_safety.security.anomaly_detector import STATS_WINDOW_MS, BehavioralAnomalyDetector, anomaly_score_for
from decision_safety.security.containment import build_containment_plan
from decision_safety.security.pattern_sanity import check_pattern_batch
from decision_safety.security.quarantine import QuarantineRiskAssessment, QuarantineSystem, RuntimeObservation
from decision_safety.security.safety_validator import SafetyValidator
from decision_safety.security.sanity_engine import GenerationGate, assess, execute_intervention


class PatternPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sequence: list[float] = Field(default_factory=list)
    position: float
    key: str | None = None
    harmony_ratio: float
    timestamp: int = 0

    def to_pattern(self) -> Pattern:
        return Pattern(
            sequence=tuple(self.sequence),
            position=self.position,
            key=self.key,
            harmony_ratio=self.harmony_ratio,
            timestamp=self.timestamp,
        )


class ContextPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    system_vitals: SystemVitals = Field(default_factory=SystemVitals)
    system_metrics: SystemMetrics = Field(default_factory=SystemMetrics)
    current_patterns: list[PatternPayload] = Field(default_factory=list)
    feedback_history: list[FeedbackEntry] = Field(default_factory=list)


class RuntimePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    failure_rate: float = 0.0
    performance_impact: float = 0.0
    anomaly_score: float = 0.0
    feedback_score: float = 1.0


class GenerateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    context: ContextPayload = Field(default_factory=ContextPayload)
    cycles: int = Field(default=1, ge=1, le=32)


class GenerateResponse(BaseModel):
    decisions: list[DecisionType]
    cache: dict[str, int]


class ValidateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    decisions: list[DecisionType] = Field(min_length=1)
    context: ContextPayload = Field(default_factory=ContextPayload)


class SafetyValidationItem(BaseModel):
    type_id: str
    is_safe: bool
    risk_level: float
    concerns: list[str]
    recommendations: list[str]
    containment_level: ContainmentLevel


class ValidateResponse(BaseModel):
    results: list[SafetyValidationItem]


class PatternSanityRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    patterns: list[PatternPayload] = Field(min_length=1)


class PatternSanityItem(BaseModel):
    is_sane: bool
    issues: list[str]
    severity: Severity
    recommendations: list[str]


class PatternSanityResponse(BaseModel):
    results: list[PatternSanityItem]


class SanityAssessRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    context: ContextPayload = Field(default_factory=ContextPayload)
    execute_intervention: bool = False


class SanityAssessResponse(BaseModel):
    sanity_level: float
    concerns: list[str]
    recommendations: list[str]
    requires_intervention: bool
    intervention_type: InterventionType
    scores: dict[str, float] = Field(default_factory=dict)
    intervention_executed: bool | None = None
    gate: dict[str, Any] = Field(default_factory=dict)


class ContainmentPlanRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    containment_level: ContainmentLevel
    target_component: str | None = Field(default=None, max_length=128)


class ContainmentPlanResponse(BaseModel):
    contained: bool
    containment_actions: list[str]
    rollback_plan: list[str]
    monitoring_level: MonitoringLevel


class QuarantineEvaluateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    decision: DecisionType
    runtime: RuntimePayload = Field(default_factory=RuntimePayload)


class QuarantineEvaluateResponse(BaseModel):
    should_quarantine: bool
    risk_level: float
    reasons: list[str]
    recommended_duration: int


class QuarantinePutResponse(BaseModel):
    pattern_id: str
    assessment: QuarantineEvaluateResponse
    entry: QuarantineEntry | None = None


class QuarantineListResponse(BaseModel):
    entries: list[QuarantineEntry]


class QuarantineCleanupResponse(BaseModel):
    removed: int


class AnomalyAnalyzeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    decisions: list[DecisionType] = Field(min_length=1)
    type_id: str | None = None


class AnomalyAnalyzeResponse(BaseModel):
    anomalies: list[BehavioralAnomaly]
    anomaly_score: float


app = FastAPI(title="decision safety pipeline service")
logger = logging.getLogger(__name__)


def _get_config() -> PipelineConfig:
    existing = getattr(app.state, "pipeline_config", None)
    if isinstance(existing, PipelineConfig):
        return existing
    created = load_config()
    logging.getLogger("decision_safety").setLevel(created.EVOSAFE_LOG_LEVEL.upper())
    setattr(app.state, "pipeline_config", created)
    return created


def _get_generator() -> DecisionGenerator:
    existing = getattr(app.state, "decision_generator", None)
    if isinstance(existing, DecisionGenerator):
        return existing
    config = _get_config()
    created = DecisionGenerator(
        risk_multiplier=config.EVOSAFE_GENERATION_RISK_MULTIPLIER,
        cache_max_entries=config.EVOSAFE_GENERATION_CACHE_MAX_ENTRIES,
    )
    setattr(app.state, "decision_generator", created)
    return created


def _get_validator() -> SafetyValidator:
    existing = getattr(app.state, "safety_validator", None)
    if isinstance(existing, SafetyValidator):
        return existing
    created = SafetyValidator()
    setattr(app.state, "safety_validator", created)
    return created


def _get_gate() -> GenerationGate:
    existing = getattr(app.state, "generation_gate", None)
    if isinstance(existing, GenerationGate):
        return existing
    created = GenerationGate()
    setattr(app.state, "generation_gate", created)
    return created


def _build_registry(config: PipelineConfig) -> HashRegistry:
    if config.EVOSAFE_REGISTRY_BACKEND == "redis":
        return RedisHashRegistry.from_url(
            config.EVOSAFE_REDIS_URL,
            connect_timeout_seconds=config.EVOSAFE_REDIS_CONNECT_TIMEOUT_SECONDS,
            socket_timeout_seconds=config.EVOSAFE_REDIS_SOCKET_TIMEOUT_SECONDS,
        )
    return InMemoryHashRegistry()


def _get_registry() -> HashRegistry:
    existing = getattr(app.state, "hash_registry", None)
    if isinstance(existing, HashRegistry):
        return existing
    created = _build_registry(_get_config())
    logger.info("hash_registry_ready backend=%s", created.name())
    setattr(app.state, "hash_registry", created)
    return created


def _get_quarantine_system() -> QuarantineSystem:
    existing = getattr(app.state, "quarantine_system", None)
    if isinstance(existing, QuarantineSystem):
        return existing
    config = _get_config()
    created = QuarantineSystem(
        _get_registry(),
        hash_key=config.EVOSAFE_QUARANTINE_HASH_KEY,
        threshold=config.EVOSAFE_QUARANTINE_THRESHOLD,
        max_age_ms=config.quarantine_max_age_ms,
    )
    setattr(app.state, "quarantine_system", created)
    return created


def _get_anomaly_detector() -> BehavioralAnomalyDetector:
    existing = getattr(app.state, "anomaly_detector", None)
    if isinstance(existing, BehavioralAnomalyDetector):
        return existing
    config = _get_config()
    created = BehavioralAnomalyDetector(
        _get_registry(),
        baseline_key=config.EVOSAFE_ANOMALY_BASELINE_KEY,
        history_key=config.EVOSAFE_ANOMALY_HISTORY_KEY,
        history_limit=config.EVOSAFE_ANOMALY_HISTORY_LIMIT,
    )
    setattr(app.state, "anomaly_detector", created)
    return created


def _to_context(payload: ContextPayload) -> EvolutionContext:
    return EvolutionContext.bounded(
        system_vitals=payload.system_vitals,
        system_metrics=payload.system_metrics,
        current_patterns=[item.to_pattern() for item in payload.current_patterns],
        feedback_history=payload.feedback_history,
        window=_get_config().EVOSAFE_CONTEXT_WINDOW,
    )


def _clean_pattern_id(pattern_id: str) -> str:
    cleaned = pattern_id.strip()
    if not cleaned or len(cleaned) > 256:
        raise HTTPException(status_code=400, detail="pattern_id must be 1-256 non-blank characters.")
    return cleaned


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/decisions/generate", response_model=GenerateResponse)
def generate_decisions(request: GenerateRequest) -> GenerateResponse:
    gate = _get_gate()
    if not gate.allows_generation():
        state = gate.snapshot()
        raise HTTPException(
            status_code=409,
            detail=f"Generation is halted (paused={state['paused']}, shut_down={state['shut_down']}).",
        )
    generator = _get_generator()
    context = _to_context(request.context)
    if request.cycles == 1:
        decisions = [generator.generate(context)]
    else:
        decisions = generator.generate_cycle(context, cycles=request.cycles)
    return GenerateResponse(decisions=decisions, cache=generator.cache_stats())


@app.post("/decisions/validate", response_model=ValidateResponse)
def validate_decisions(request: ValidateRequest) -> ValidateResponse:
    validator = _get_validator()
    context = _to_context(request.context)
    results = validator.validate_batch(request.decisions, context)
    return ValidateResponse(
        results=[
            SafetyValidationItem(
                type_id=decision.type_id,
                is_safe=result.is_safe,
                risk_level=result.risk_level,
                concerns=result.concerns,
                recommendations=result.recommendations,
                containment_level=result.containment_level,
            )
            for decision, result in zip(request.decisions, results)
        ]
    )


@app.post("/patterns/sanity", response_model=PatternSanityResponse)
def check_patterns(request: PatternSanityRequest) -> PatternSanityResponse:
    results = check_pattern_batch([item.to_pattern() for item in request.patterns])
    return PatternSanityResponse(
        results=[
            PatternSanityItem(
                is_sane=result.is_sane,
                issues=result.issues,
                severity=result.severity,
                recommendations=result.recommendations,
            )
            for result in results
        ]
    )


@app.post("/sanity/assess", response_model=SanityAssessResponse)
def assess_sanity(request: SanityAssessRequest) -> SanityAssessResponse:
    context = _to_context(request.context)
    assessment = assess(context)
    gate = _get_gate()
    executed: bool | None = None
    if request.execute_intervention:
        executed = execute_intervention(assessment, context, gate)
    return SanityAssessResponse(
        sanity_level=assessment.sanity_level,
        concerns=assessment.concerns,
        recommendations=assessment.recommendations,
        requires_intervention=assessment.requires_intervention,
        intervention_type=assessment.intervention_type,
        scores=assessment.scores,
        intervention_executed=executed,
        gate=gate.snapshot(),
    )


@app.post("/containment/plan", response_model=ContainmentPlanResponse)
def plan_containment(request: ContainmentPlanRequest) -> ContainmentPlanResponse:
    try:
        plan = build_containment_plan(request.containment_level, request.target_component)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ContainmentPlanResponse(
        contained=plan.contained,
        containment_actions=plan.containment_actions,
        rollback_plan=plan.rollback_plan,
        monitoring_level=plan.monitoring_level,
    )


def _assessment_response(assessment: QuarantineRiskAssessment) -> QuarantineEvaluateResponse:
    return QuarantineEvaluateResponse(
        should_quarantine=assessment.should_quarantine,
        risk_level=assessment.risk_level,
        reasons=assessment.reasons,
        recommended_duration=assessment.recommended_duration,
    )


@app.post("/quarantine/evaluate", response_model=QuarantineEvaluateResponse)
def evaluate_quarantine(request: QuarantineEvaluateRequest) -> QuarantineEvaluateResponse:
    assessment = _get_quarantine_system().evaluate_risk(
        request.decision,
        RuntimeObservation(**request.runtime.model_dump()),
    )
    return _assessment_response(assessment)


@app.get("/quarantine/stats", response_model=QuarantineStats)
def quarantine_stats() -> QuarantineStats:
    return _get_quarantine_system().stats()


@app.post("/quarantine/cleanup", response_model=QuarantineCleanupResponse)
def cleanup_quarantine() -> QuarantineCleanupResponse:
    return QuarantineCleanupResponse(removed=_get_quarantine_system().cleanup_expired())


@app.get("/quarantine", response_model=QuarantineListResponse)
def list_quarantine() -> QuarantineListResponse:
    return QuarantineListResponse(entries=_get_quarantine_system().list_entries())


@app.get("/quarantine/{pattern_id}", response_model=QuarantineEntry)
def get_quarantine_entry(pattern_id: str) -> QuarantineEntry:
    cleaned = _clean_pattern_id(pattern_id)
    entry = _get_quarantine_system().get(cleaned)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Pattern not quarantined: {cleaned}")
    return entry


@app.put("/quarantine/{pattern_id}", response_model=QuarantinePutResponse)
def put_quarantine(pattern_id: str, request: QuarantineEvaluateRequest) -> QuarantinePutResponse:
    cleaned = _clean_pattern_id(pattern_id)
    system = _get_quarantine_system()
    assessment = system.evaluate_risk(request.decision, RuntimeObservation(**request.runtime.model_dump()))
    if not system.quarantine(cleaned, request.decision, assessment):
        raise HTTPException(status_code=503, detail="Quarantine registry is unavailable.")
    return QuarantinePutResponse(
        pattern_id=cleaned,
        assessment=_assessment_response(assessment),
        entry=system.get(cleaned),
    )


@app.delete("/quarantine/{pattern_id}")
def release_quarantine(pattern_id: str) -> dict[str, Any]:
    cleaned = _clean_pattern_id(pattern_id)
    released = _get_quarantine_system().release(cleaned)
    if released is None:
        raise HTTPException(status_code=503, detail="Quarantine registry is unavailable.")
    if not released:
        raise HTTPException(status_code=404, detail=f"Pattern not quarantined: {cleaned}")
    return {"pattern_id": cleaned, "released": True}


@app.post("/anomalies/analyze", response_model=AnomalyAnalyzeResponse)
def analyze_anomalies(request: AnomalyAnalyzeRequest) -> AnomalyAnalyzeResponse:
    anomalies = _get_anomaly_detector().analyze(request.decisions)
    return AnomalyAnalyzeResponse(
        anomalies=anomalies,
        anomaly_score=anomaly_score_for(anomalies, request.type_id),
    )


@app.get("/anomalies/stats", response_model=AnomalyStats)
def anomaly_stats(window_ms: int = STATS_WINDOW_MS) -> AnomalyStats:
    if window_ms <= 0:
        raise HTTPException(status_code=400, detail="window_ms must be positive.")
    return _get_anomaly_detector().stats(window_ms)

from .anomaly_detector import BehavioralAnomalyDetector, anomaly_score_for, detect_anomalies
from .containment import ContainmentPlan, build_containment_plan
from .pattern_sanity import SanityCheckResult, check_pattern_batch, check_pattern_sanity
from .quarantine import QuarantineRiskAssessment, QuarantineSystem, RuntimeObservation
from .safety_validator import SafetyValidationResult, SafetyValidator
from .sanity_engine import GenerationGate, SanityAssessment, assess, execute_intervention

__all__ = [
    "BehavioralAnomalyDetector",
    "anomaly_score_for",
    "detect_anomalies",
    "ContainmentPlan",
    "build_containment_plan",
    "SanityCheckResult",
    "check_pattern_batch",
    "check_pattern_sanity",
    "QuarantineRiskAssessment",
    "QuarantineSystem",
    "RuntimeObservation",
    "SafetyValidationResult",
    "SafetyValidator",
    "GenerationGate",
    "SanityAssessment",
    "assess",
    "execute_intervention",
]

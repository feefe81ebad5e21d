from .anomaly import AnomalyScorer, anomaly_score
from .engine import BotProbabilityEngine, confidence_from_risk_factors, risk_factors, rule_based_probability
from .features import extract_features

__all__ = [
    "AnomalyScorer",
    "BotProbabilityEngine",
    "anomaly_score",
    "confidence_from_risk_factors",
    "extract_features",
    "risk_factors",
    "rule_based_probability",
]

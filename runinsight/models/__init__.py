"""Models module for churn prediction dispatch."""

from .dispatcher import PredictionDispatcher
from .heuristics import fallback_prediction
from .results import DispatchResult, PredictionError, PredictionResult, Provenance, RiskTier, risk_tier_for

__all__ = [
    "PredictionDispatcher",
    "fallback_prediction",
    "PredictionResult",
    "PredictionError",
    "DispatchResult",
    "Provenance",
    "RiskTier",
    "risk_tier_for",
]

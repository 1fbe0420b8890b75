"""
Fallback Heuristic
==================

Deterministic, rule-based churn estimate used when the prediction service
cannot be reached or answers with an error.
"""

from typing import List

from runinsight.data.schemas import CombinedUserProfile
from runinsight.features import ComposedFeatures
from .results import PredictionResult, Provenance, risk_tier_for

BASE_PROBABILITY = 0.5
MAX_PROBABILITY = 0.95
CHURN_THRESHOLD = 0.6
INACTIVE_DAYS_LIMIT = 7

# (feature, lower bound, probability added when below it, recommendation)
RISK_RULES = [
    ("activity_ratio", 0.3, 0.20, "increase weekly activity"),
    ("usage_intensity", 5, 0.15, "improve content engagement"),
    ("training_consistency", 0.5, 0.10, "establish training routine"),
]

REACTIVATION_RECOMMENDATION = "re-engage inactive user"
DEFAULT_RECOMMENDATIONS = ["maintain current engagement", "recommend premium content"]


def fallback_probability(features: ComposedFeatures) -> float:
    """Base probability plus the weight of every rule that fires, capped at MAX_PROBABILITY."""
    probability = BASE_PROBABILITY
    for feature, bound, weight, _ in RISK_RULES:
        if getattr(features, feature) < bound:
            probability += weight
    return min(probability, MAX_PROBABILITY)


def fallback_recommendations(features: ComposedFeatures, inactive_days: int) -> List[str]:
    """Recommendations in rule order, or the defaults when nothing fires."""
    recommendations = [
        recommendation
        for feature, bound, _, recommendation in RISK_RULES
        if getattr(features, feature) < bound
    ]
    if inactive_days > INACTIVE_DAYS_LIMIT:
        recommendations.append(REACTIVATION_RECOMMENDATION)

    return recommendations or list(DEFAULT_RECOMMENDATIONS)


def fallback_prediction(profile: CombinedUserProfile, features: ComposedFeatures) -> PredictionResult:
    """
    Estimate churn without the prediction service.

    Args:
        profile: Joined user profile
        features: Composite features for the profile

    Returns:
        PredictionResult with fallback provenance
    """
    probability = fallback_probability(features)
    return PredictionResult(
        user_id=profile.user_id,
        churn_flag=probability > CHURN_THRESHOLD,
        churn_probability=probability,
        risk_tier=risk_tier_for(probability),
        recommendations=fallback_recommendations(features, profile.inactive_days),
        provenance=Provenance.FALLBACK,
    )

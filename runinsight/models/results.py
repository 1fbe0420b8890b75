"""
Prediction Results
==================

Typed prediction results, whether they come from the prediction service or
the fallback heuristic.
"""

from enum import Enum
from typing import Any, List

from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

HIGH_RISK_THRESHOLD = 0.7
MEDIUM_RISK_THRESHOLD = 0.4


class RiskTier(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class Provenance(str, Enum):
    MODEL = "model"
    FALLBACK = "fallback"


# Tier labels used by the prediction service
_TIER_ALIASES = {
    "alto": RiskTier.HIGH,
    "high": RiskTier.HIGH,
    "medio": RiskTier.MEDIUM,
    "medium": RiskTier.MEDIUM,
    "bajo": RiskTier.LOW,
    "low": RiskTier.LOW,
}


def risk_tier_for(probability: float) -> RiskTier:
    """Map a churn probability to its risk tier."""
    if probability > HIGH_RISK_THRESHOLD:
        return RiskTier.HIGH
    elif probability > MEDIUM_RISK_THRESHOLD:
        return RiskTier.MEDIUM
    else:
        return RiskTier.LOW


class PredictionResult(BaseModel):
    """Churn prediction for one user."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    user_id: int
    churn_flag: bool = Field(
        ..., validation_alias=AliasChoices("churn_flag", "churn_prediction", "prediccion_abandono")
    )
    churn_probability: float = Field(
        ..., ge=0, le=1, validation_alias=AliasChoices("churn_probability", "probabilidad_abandono")
    )
    risk_tier: RiskTier = Field(..., validation_alias=AliasChoices("risk_tier", "risk_level", "riesgo"))
    recommendations: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("recommendations", "recomendaciones")
    )
    provenance: Provenance = Provenance.MODEL

    @field_validator("risk_tier", mode="before")
    @classmethod
    def normalize_tier(cls, v):
        if isinstance(v, str):
            tier = _TIER_ALIASES.get(v.strip().lower())
            if tier is None:
                raise ValueError(f"Unknown risk tier: {v}")
            return tier
        return v

    @classmethod
    def from_model_output(cls, payload: Any, user_id: int) -> "PredictionResult":
        """
        Build a result from the prediction service's response.

        The response is kept as-is, extra fields included; the user id is
        always the one the request was made for and provenance is marked as model.

        Raises:
            ValueError: if the response is not a valid prediction
        """
        if not isinstance(payload, dict):
            raise ValueError(f"Prediction service returned {type(payload).__name__}, expected an object")

        data = dict(payload)
        data.pop("provenance", None)
        echoed = data.get("user_id")
        if echoed is not None and str(echoed) != str(user_id):
            logger.warning(f"Prediction service answered for user {echoed} when asked about user {user_id}")
        # The request identifies the user, whatever the response echoes
        data["user_id"] = user_id
        return cls.model_validate({**data, "provenance": Provenance.MODEL})


class PredictionError(BaseModel):
    """A profile whose dispatch failed for reasons other than the prediction service."""

    user_id: int
    error: str


class DispatchResult(BaseModel):
    """Outcome of dispatching a full set of profiles."""

    predictions: List[PredictionResult] = Field(default_factory=list)
    errors: List[PredictionError] = Field(default_factory=list)

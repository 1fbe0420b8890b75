"""
API Schemas (Pydantic Models)
=============================

Response models for the prediction endpoints.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from runinsight.cache import PassMetadata
from runinsight.data import CollectionError
from runinsight.models import PredictionError, PredictionResult


class PredictionsResponse(BaseModel):
    """Schema for the full prediction set."""

    predictions: List[PredictionResult]
    metadata: PassMetadata
    collection_errors: List[CollectionError] = Field(default_factory=list)
    prediction_errors: List[PredictionError] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "predictions": [
                    {
                        "user_id": 7,
                        "churn_flag": True,
                        "churn_probability": 0.85,
                        "risk_tier": "High",
                        "recommendations": ["increase weekly activity", "improve content engagement"],
                        "provenance": "fallback"
                    }
                ],
                "metadata": {
                    "total_users": 1,
                    "high_risk_users": 1,
                    "medium_risk_users": 0,
                    "low_risk_users": 0,
                    "model_predictions": 0,
                    "fallback_predictions": 1,
                    "timestamp": "2025-06-01T10:30:00Z"
                },
                "collection_errors": [
                    {"category": "trainings", "user_id": 7, "kind": "transient", "error": "HTTP 503 from /trainings/user/7"}
                ],
                "prediction_errors": []
            }
        }


class RefreshResponse(PredictionsResponse):
    """Schema for a forced refresh."""

    message: str = "Predictions refreshed successfully"
    processing_time_ms: float


class HealthResponse(BaseModel):
    """Schema for health check response."""

    status: str
    service: str
    version: str
    timestamp: datetime

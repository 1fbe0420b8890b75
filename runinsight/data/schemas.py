"""
Record Schemas
==============

Pydantic models for upstream records and the joined per-user profile.

Upstream services are not consistent about field names, so each field
accepts both the canonical name and the gateway's legacy name.
"""

from datetime import datetime
from typing import Dict, Optional

from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Fixed chatbot question taxonomy, keys in identifier form (injury_prevention)
CHATBOT_CATEGORIES = ("nutrition", "training", "recovery", "injury_prevention", "equipment")


def empty_category_counts() -> Dict[str, int]:
    return {category: 0 for category in CHATBOT_CATEGORIES}


class UpstreamRecord(BaseModel):
    """Base for records decoded from upstream payloads."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def null_as_zero(cls, v, info):
        # Upstreams send null for numeric fields they have no data for
        if v is None and info.field_name not in ("user_id", "viewed_at"):
            return 0
        return v


class RawIdentityRecord(UpstreamRecord):
    """A user as listed by the identity service."""

    user_id: int = Field(..., validation_alias=AliasChoices("user_id", "id"))
    days_registered: int = Field(0, ge=0, validation_alias=AliasChoices("days_registered", "dias_registrado"))

    @field_validator("days_registered", mode="before")
    @classmethod
    def tenure_or_zero(cls, v):
        # A bad tenure value must not drop the user from the population
        if v is None:
            return 0
        try:
            days = int(float(v))
        except (TypeError, ValueError, OverflowError):
            logger.warning(f"Unparsable days_registered {v!r}, using 0")
            return 0
        if days < 0:
            logger.warning(f"Negative days_registered {days}, using 0")
            return 0
        return days


class EngagementEvent(UpstreamRecord):
    """One content view from the engagement log."""

    user_id: int
    duration_seconds: float = Field(0, ge=0)
    viewed_at: Optional[datetime] = None


class EngagementStats(UpstreamRecord):
    """Per-user engagement aggregate."""

    user_id: int
    total_time: float = Field(0, ge=0, validation_alias=AliasChoices("total_time", "tiempo_total"))
    views_opened: int = Field(0, ge=0, validation_alias=AliasChoices("views_opened", "vistas_abiertas"))
    active_days: int = Field(0, ge=0, validation_alias=AliasChoices("active_days", "dias_activo"))
    inactive_days: int = Field(0, ge=0, validation_alias=AliasChoices("inactive_days", "dias_inactivo"))


class TrainingSession(UpstreamRecord):
    """One training session."""

    user_id: int
    duration_minutes: float = Field(0, ge=0, validation_alias=AliasChoices("duration_minutes", "time_minutes"))
    pace: float = Field(0, validation_alias=AliasChoices("pace", "rhythm"))


class TrainingStats(BaseModel):
    """Per-user training aggregate."""

    user_id: int
    training_count: int = 0
    training_total_time: float = 0.0
    training_avg_pace: float = 0.0


class ChatbotCategoryStat(BaseModel):
    """Chatbot question counts for one user, mapped onto the fixed taxonomy."""

    user_id: int
    questions_per_category: Dict[str, int] = Field(default_factory=empty_category_counts)
    total_questions: int = 0
    weighted_score: float = 0.0


class CombinedUserProfile(BaseModel):
    """Every source category joined onto one identity record."""

    user_id: int
    days_registered: int = 0
    total_time: float = 0.0
    views_opened: int = 0
    active_days: int = 0
    inactive_days: int = 0
    training_count: int = 0
    training_total_time: float = 0.0
    training_avg_pace: float = 0.0
    chatbot_interactions: int = 0
    questions_per_category: Dict[str, int] = Field(default_factory=empty_category_counts)
    chatbot_total_questions: int = 0
    chatbot_weighted_score: float = 0.0


class CollectionError(BaseModel):
    """Annotation for data that could not be collected during a pass."""

    category: str
    error: str
    kind: str = "upstream"
    user_id: Optional[int] = None

"""
Result Cache
============

Single-flight, TTL-gated cache around one full aggregation and prediction
pass. At most one pass runs at a time; a second trigger while one is in
flight is rejected, never queued.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from config import get_config
from runinsight.data import BatchScheduler, CollectionError, SourceAggregator
from runinsight.gateway import GatewayClient
from runinsight.models import PredictionDispatcher, PredictionError, PredictionResult, Provenance, RiskTier
from runinsight.utils import utc_now
from .errors import PassConflictError


class PassState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"


class PassMetadata(BaseModel):
    """Per-tier counts for one pass."""

    total_users: int = 0
    high_risk_users: int = 0
    medium_risk_users: int = 0
    low_risk_users: int = 0
    model_predictions: int = 0
    fallback_predictions: int = 0
    timestamp: datetime

    @classmethod
    def from_predictions(cls, predictions: List[PredictionResult], timestamp: datetime) -> "PassMetadata":
        return cls(
            total_users=len(predictions),
            high_risk_users=sum(1 for p in predictions if p.risk_tier == RiskTier.HIGH),
            medium_risk_users=sum(1 for p in predictions if p.risk_tier == RiskTier.MEDIUM),
            low_risk_users=sum(1 for p in predictions if p.risk_tier == RiskTier.LOW),
            model_predictions=sum(1 for p in predictions if p.provenance == Provenance.MODEL),
            fallback_predictions=sum(1 for p in predictions if p.provenance == Provenance.FALLBACK),
            timestamp=timestamp,
        )


class PassResult(BaseModel):
    """Everything one pass produced, partial failures included."""

    predictions: List[PredictionResult] = Field(default_factory=list)
    metadata: PassMetadata
    collection_errors: List[CollectionError] = Field(default_factory=list)
    prediction_errors: List[PredictionError] = Field(default_factory=list)
    timestamp: datetime
    processing_time_ms: float = 0.0


@dataclass
class CacheEntry:
    result: PassResult
    created_at: datetime
    by_user: Dict[int, PredictionResult]


class CacheStatus(BaseModel):
    """Snapshot of the cache and pass state."""

    is_processing: bool
    last_refresh: Optional[datetime] = None
    has_cached_data: bool
    cache_age_seconds: Optional[float] = None
    cached_predictions_count: Optional[int] = None
    cached_metadata: Optional[PassMetadata] = None


class ResultCache:
    """Cache the prediction result set and coordinate passes that rebuild it."""

    def __init__(
        self,
        aggregator: SourceAggregator,
        dispatcher: PredictionDispatcher,
        config: Optional[dict] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize ResultCache.

        Args:
            aggregator: Collects joined profiles
            dispatcher: Turns profiles into predictions
            config: Configuration dictionary
            clock: Source of the current time
        """
        self.config = config or get_config()
        self.aggregator = aggregator
        self.dispatcher = dispatcher
        self.ttl = timedelta(seconds=float(self.config.get("cache", {}).get("ttl_seconds", 3600)))

        self._clock = clock
        self._state = PassState.IDLE
        self._entry: Optional[CacheEntry] = None
        self.last_refresh: Optional[datetime] = None

    @classmethod
    def from_config(cls, config: Optional[dict] = None) -> "ResultCache":
        """Wire up the gateway client, aggregator and dispatcher from configuration."""
        config = config or get_config()
        gateway = GatewayClient(config)
        aggregator = SourceAggregator(gateway, BatchScheduler(config), config)
        return cls(aggregator, PredictionDispatcher(config), config)

    async def aclose(self) -> None:
        await self.aggregator.gateway.aclose()
        await self.dispatcher.aclose()

    @property
    def state(self) -> PassState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._state == PassState.PROCESSING

    def _is_valid(self, entry: Optional[CacheEntry]) -> bool:
        return entry is not None and self._clock() - entry.created_at <= self.ttl

    def get_cached(self) -> Optional[PassResult]:
        """Return the cached result set, or None when absent or past its TTL."""
        if self._entry is None:
            return None
        if not self._is_valid(self._entry):
            logger.warning("Cached predictions expired, a refresh is required")
            return None
        return self._entry.result

    async def get_all(self, token: str) -> PassResult:
        """
        Return the cached result set, running a pass when there is none.

        Raises:
            PassConflictError: if a pass is already in flight
        """
        if self.is_processing:
            raise PassConflictError()

        cached = self.get_cached()
        if cached is not None:
            return cached

        logger.info("Cache empty or expired, processing new predictions")
        return await self._run_pass(token)

    def get_user(self, user_id: int) -> Optional[PredictionResult]:
        """
        Look a user up in the current entry. Never triggers a pass.

        The entry is read even when it is past its TTL.
        """
        if self._entry is None:
            logger.warning(f"No cached predictions, cannot look up user {user_id}")
            return None

        prediction = self._entry.by_user.get(user_id)
        if prediction is None:
            logger.warning(f"No cached prediction for user {user_id}")
        return prediction

    async def refresh(self, token: str) -> PassResult:
        """
        Drop the cached entry and run a new pass.

        Raises:
            PassConflictError: if a pass is already in flight
        """
        if self.is_processing:
            raise PassConflictError()

        logger.info("Forcing prediction refresh")
        self._entry = None
        return await self._run_pass(token)

    def status(self) -> CacheStatus:
        status = CacheStatus(
            is_processing=self.is_processing,
            last_refresh=self.last_refresh,
            has_cached_data=self._entry is not None,
        )
        if self._entry is not None:
            status.cache_age_seconds = round((self._clock() - self._entry.created_at).total_seconds(), 3)
        if self._is_valid(self._entry):
            status.cached_predictions_count = len(self._entry.result.predictions)
            status.cached_metadata = self._entry.result.metadata
        return status

    async def _run_pass(self, token: str) -> PassResult:
        # Check and flip the flag before the first await so no other pass can slip in
        if self.is_processing:
            raise PassConflictError()
        self._state = PassState.PROCESSING

        start_time = time.perf_counter()
        try:
            logger.info("Starting prediction pass")
            collection = await self.aggregator.collect_all(token)

            if not collection.profiles:
                logger.warning("No profiles collected, pass yields no predictions")
                now = self._clock()
                return PassResult(
                    metadata=PassMetadata(timestamp=now),
                    collection_errors=collection.errors,
                    timestamp=now,
                    processing_time_ms=(time.perf_counter() - start_time) * 1000,
                )

            dispatched = await self.dispatcher.dispatch_all(collection.profiles)

            now = self._clock()
            result = PassResult(
                predictions=dispatched.predictions,
                metadata=PassMetadata.from_predictions(dispatched.predictions, now),
                collection_errors=collection.errors,
                prediction_errors=dispatched.errors,
                timestamp=now,
                processing_time_ms=(time.perf_counter() - start_time) * 1000,
            )

            self._entry = CacheEntry(
                result=result,
                created_at=now,
                by_user={p.user_id: p for p in result.predictions},
            )
            self.last_refresh = now

            logger.info(
                f"Pass completed in {result.processing_time_ms:.0f}ms: {result.metadata.total_users} users, "
                f"{result.metadata.high_risk_users} high / {result.metadata.medium_risk_users} medium / "
                f"{result.metadata.low_risk_users} low risk"
            )
            return result

        except Exception as e:
            logger.error(f"Error in prediction pass: {e}")
            raise
        finally:
            self._state = PassState.IDLE

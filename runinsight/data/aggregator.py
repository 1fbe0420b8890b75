"""
Source Aggregator
=================

Collects the five per-user data categories from the upstream gateway and
left-joins them onto the identity list.
"""

from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import pandas as pd
from loguru import logger

from config import get_config
from runinsight.gateway import GatewayClient, UpstreamError, UpstreamRequest
from .batching import BatchScheduler
from .payloads import (
    parse_chatbot_stats,
    parse_engagement_events,
    parse_engagement_summary,
    parse_identity_bulk,
    parse_training_sessions,
)
from .schemas import (
    ChatbotCategoryStat,
    CollectionError,
    CombinedUserProfile,
    EngagementEvent,
    EngagementStats,
    RawIdentityRecord,
    TrainingSession,
    TrainingStats,
)


@dataclass
class CollectionResult:
    """Joined profiles plus everything that went wrong collecting them."""

    profiles: List[CombinedUserProfile] = field(default_factory=list)
    errors: List[CollectionError] = field(default_factory=list)


def aggregate_engagement_events(
    events: Sequence[EngagementEvent],
    window_days: int = 30,
) -> Dict[int, EngagementStats]:
    """
    Turn raw view events into per-user engagement stats.

    total_time is in minutes, active days are distinct UTC calendar dates.

    Args:
        events: Raw engagement events
        window_days: Observation window used for inactive days

    Returns:
        Stats keyed by user id
    """
    if not events:
        return {}

    df = pd.DataFrame(
        {
            "user_id": [e.user_id for e in events],
            "duration_seconds": [e.duration_seconds for e in events],
            "view_date": [_view_date(e) for e in events],
        }
    )

    grouped = df.groupby("user_id").agg(
        total_seconds=("duration_seconds", "sum"),
        views_opened=("duration_seconds", "size"),
        active_days=("view_date", "nunique"),
    )

    stats = {}
    for user_id, row in grouped.iterrows():
        active_days = int(row["active_days"])
        stats[int(user_id)] = EngagementStats(
            user_id=int(user_id),
            total_time=round(float(row["total_seconds"]) / 60, 2),
            views_opened=int(row["views_opened"]),
            active_days=active_days,
            inactive_days=max(0, window_days - active_days),
        )

    logger.info(f"Aggregated {len(events)} engagement events into stats for {len(stats)} users")
    return stats


def _view_date(event: EngagementEvent):
    if event.viewed_at is None:
        return None
    viewed_at = event.viewed_at
    if viewed_at.tzinfo is not None:
        viewed_at = viewed_at.astimezone(timezone.utc)
    return viewed_at.date()


def aggregate_training_sessions(sessions: Sequence[TrainingSession]) -> Dict[int, TrainingStats]:
    """Count, total duration and mean pace of training sessions per user."""
    if not sessions:
        return {}

    df = pd.DataFrame([s.model_dump() for s in sessions])
    grouped = df.groupby("user_id").agg(
        training_count=("duration_minutes", "size"),
        training_total_time=("duration_minutes", "sum"),
        training_avg_pace=("pace", "mean"),
    )

    return {
        int(user_id): TrainingStats(
            user_id=int(user_id),
            training_count=int(row["training_count"]),
            training_total_time=float(row["training_total_time"]),
            training_avg_pace=float(row["training_avg_pace"]),
        )
        for user_id, row in grouped.iterrows()
    }


class SourceAggregator:
    """Fetch and join identity, engagement, trainings, chatbot and analytics data."""

    def __init__(
        self,
        gateway: GatewayClient,
        scheduler: Optional[BatchScheduler] = None,
        config: Optional[dict] = None,
    ):
        """
        Initialize SourceAggregator.

        Args:
            gateway: Client used for every upstream call
            scheduler: Batch scheduler for per-user fallbacks
            config: Configuration dictionary
        """
        self.config = config or get_config()
        self.gateway = gateway
        self.scheduler = scheduler or BatchScheduler(self.config)

        self.sources = self.config.get("sources", {})
        self.window_days = int(self.config.get("engagement", {}).get("observation_window_days", 30))

        chatbot_config = self.config.get("chatbot", {})
        self.category_map = chatbot_config.get("category_map", {})
        self.chatbot_total_field = chatbot_config.get("total_field", "total_preguntas")
        self.chatbot_score_field = chatbot_config.get("score_field", "score_ponderado")

    async def collect_all(self, token: str) -> CollectionResult:
        """
        Collect and join every category for the whole user population.

        Args:
            token: Caller credential forwarded to upstream

        Returns:
            CollectionResult with one profile per identity record
        """
        result = CollectionResult()

        identities = await self.fetch_identities(token, result.errors)
        if not identities:
            logger.warning("Identity source returned no users, nothing to collect")
            result.errors.append(
                CollectionError(category="identity", kind="empty_population", error="No users returned by the identity source")
            )
            return result

        user_ids = [identity.user_id for identity in identities]
        logger.info(f"Collecting data for {len(user_ids)} users")

        engagement = await self._collect_category(
            "engagement", user_ids, token, result.errors,
            bulk_parser=self._parse_engagement_bulk,
            user_parser=parse_engagement_summary,
        )
        trainings = await self._collect_category(
            "trainings", user_ids, token, result.errors,
            bulk_parser=lambda payload: aggregate_training_sessions(parse_training_sessions(payload)),
            user_parser=self._parse_user_trainings,
        )
        chatbot = await self._collect_category(
            "chatbot", user_ids, token, result.errors,
            bulk_parser=None,
            user_parser=self._parse_chatbot,
        )
        analytics = await self._collect_category(
            "analytics", user_ids, token, result.errors,
            bulk_parser=None,
            user_parser=lambda payload, user_id: self._parse_chatbot(payload, user_id).total_questions,
        )

        result.profiles = self.join(identities, engagement, trainings, chatbot, analytics)

        if not any((engagement, trainings, chatbot, analytics)) and result.errors:
            result.errors.append(
                CollectionError(
                    category="all",
                    kind="no_category_joined",
                    error="No supplementary category could be joined, profiles carry defaults only",
                )
            )

        logger.info(
            f"Collected {len(result.profiles)} profiles: {len(engagement)} engagement, "
            f"{len(trainings)} trainings, {len(chatbot)} chatbot, {len(analytics)} analytics, "
            f"{len(result.errors)} errors"
        )
        return result

    async def fetch_identities(self, token: str, errors: List[CollectionError]) -> List[RawIdentityRecord]:
        """Fetch the authoritative user population from the bulk identity endpoint."""
        bulk_path = self.sources.get("identity", {}).get("bulk_path", "/users/clients/all")
        try:
            payload = await self.gateway.execute(UpstreamRequest(bulk_path), token)
            identities = parse_identity_bulk(payload)
        except UpstreamError as e:
            logger.error(f"Error fetching identity list: {e}")
            errors.append(CollectionError(category="identity", kind=e.kind, error=str(e)))
            return []

        logger.info(f"Fetched {len(identities)} users from the identity source")
        return identities

    async def _collect_category(
        self,
        category: str,
        user_ids: List[int],
        token: str,
        errors: List[CollectionError],
        bulk_parser: Optional[Callable[[Any], Dict[int, Any]]],
        user_parser: Callable[[Any, int], Any],
    ) -> Dict[int, Any]:
        """Try the bulk endpoint, then fall back to batched per-user fetches."""
        source = self.sources.get(category, {})

        bulk_path = source.get("bulk_path")
        if bulk_path and bulk_parser is not None:
            try:
                payload = await self.gateway.execute(UpstreamRequest(bulk_path), token)
                data = bulk_parser(payload)
                logger.info(f"Bulk {category} endpoint returned data for {len(data)} users")
                return data
            except UpstreamError as e:
                logger.warning(f"Bulk {category} endpoint unavailable ({e}), fetching per user")
        else:
            logger.info(f"No bulk {category} endpoint, fetching per user")

        user_path = source.get("user_path")
        if not user_path:
            errors.append(CollectionError(category=category, kind="not_configured", error=f"No per-user endpoint for {category}"))
            return {}

        async def fetch_one(user_id: int) -> Any:
            payload = await self.gateway.execute(UpstreamRequest(user_path.format(user_id=user_id)), token)
            return user_parser(payload, user_id)

        outcomes = await self.scheduler.run(user_ids, fetch_one, label=category)

        data = {}
        for outcome in outcomes:
            if outcome.ok:
                data[outcome.user_id] = outcome.value
            else:
                errors.append(
                    CollectionError(
                        category=category,
                        user_id=outcome.user_id,
                        kind=getattr(outcome.error, "kind", "internal"),
                        error=str(outcome.error),
                    )
                )
        return data

    def _parse_engagement_bulk(self, payload: Any) -> Dict[int, EngagementStats]:
        return aggregate_engagement_events(parse_engagement_events(payload), self.window_days)

    def _parse_user_trainings(self, payload: Any, user_id: int) -> TrainingStats:
        sessions = parse_training_sessions(payload, user_id=user_id)
        # A per-user endpoint only answers for that user
        sessions = [session for session in sessions if session.user_id == user_id]
        return aggregate_training_sessions(sessions).get(user_id, TrainingStats(user_id=user_id))

    def _parse_chatbot(self, payload: Any, user_id: int) -> ChatbotCategoryStat:
        return parse_chatbot_stats(
            payload,
            user_id,
            self.category_map,
            total_field=self.chatbot_total_field,
            score_field=self.chatbot_score_field,
        )

    def join(
        self,
        identities: List[RawIdentityRecord],
        engagement: Dict[int, EngagementStats],
        trainings: Dict[int, TrainingStats],
        chatbot: Dict[int, ChatbotCategoryStat],
        analytics: Dict[int, int],
    ) -> List[CombinedUserProfile]:
        """
        Left-join every category onto the identity list.

        Identity drives the join: each identity record yields exactly one
        profile, and a category missing for a user contributes zeros.
        """
        profiles = []
        seen = set()

        for identity in identities:
            user_id = identity.user_id
            if user_id in seen:
                continue
            seen.add(user_id)

            stats = engagement.get(user_id) or EngagementStats(user_id=user_id)
            training = trainings.get(user_id) or TrainingStats(user_id=user_id)
            chat = chatbot.get(user_id) or ChatbotCategoryStat(user_id=user_id)

            profiles.append(
                CombinedUserProfile(
                    user_id=user_id,
                    days_registered=identity.days_registered,
                    total_time=stats.total_time,
                    views_opened=stats.views_opened,
                    active_days=stats.active_days,
                    inactive_days=max(0, self.window_days - stats.active_days),
                    training_count=training.training_count,
                    training_total_time=training.training_total_time,
                    training_avg_pace=training.training_avg_pace,
                    chatbot_interactions=int(analytics.get(user_id, 0)),
                    questions_per_category=dict(chat.questions_per_category),
                    chatbot_total_questions=chat.total_questions,
                    chatbot_weighted_score=chat.weighted_score,
                )
            )

        logger.info(f"Joined data for {len(profiles)} users")
        return profiles

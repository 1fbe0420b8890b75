"""
Unit tests for source collection and the identity-driven join.
"""

from datetime import datetime, timezone

import pytest

from runinsight.data.aggregator import aggregate_engagement_events, aggregate_training_sessions
from runinsight.data.schemas import EngagementEvent, TrainingSession

IDENTITY_PATH = "/users/clients/all"


def identities(*user_ids):
    return (200, {"clients": {"data": [{"id": uid, "dias_registrado": 10 * uid} for uid in user_ids]}})


def chatbot_stats(nutrition=0, recovery=0, total=0, score=0.0):
    return (200, {
        "success": True,
        "stats": {
            "preguntas_nutricion": nutrition,
            "preguntas_recuperacion": recovery,
            "total_preguntas": total,
            "score_ponderado": score,
        },
    })


def test_engagement_events_aggregate_per_user():
    events = [
        EngagementEvent(user_id=1, duration_seconds=600, viewed_at=datetime(2025, 6, 1, 10, tzinfo=timezone.utc)),
        EngagementEvent(user_id=1, duration_seconds=300, viewed_at=datetime(2025, 6, 1, 18, tzinfo=timezone.utc)),
        EngagementEvent(user_id=1, duration_seconds=120, viewed_at=datetime(2025, 6, 3, 9, tzinfo=timezone.utc)),
        EngagementEvent(user_id=2, duration_seconds=50, viewed_at=datetime(2025, 6, 2, 9, tzinfo=timezone.utc)),
    ]

    stats = aggregate_engagement_events(events, window_days=30)

    assert stats[1].total_time == 17.0
    assert stats[1].views_opened == 3
    assert stats[1].active_days == 2
    assert stats[1].inactive_days == 28
    assert stats[2].total_time == pytest.approx(0.83)
    assert stats[2].active_days == 1


def test_engagement_without_events_is_empty():
    assert aggregate_engagement_events([]) == {}


def test_training_sessions_aggregate_per_user():
    sessions = [
        TrainingSession(user_id=4, duration_minutes=30, pace=5.5),
        TrainingSession(user_id=4, duration_minutes=45, pace=6.5),
        TrainingSession(user_id=5, duration_minutes=20, pace=7.0),
    ]

    stats = aggregate_training_sessions(sessions)

    assert stats[4].training_count == 2
    assert stats[4].training_total_time == 75
    assert stats[4].training_avg_pace == pytest.approx(6.0)
    assert stats[5].training_count == 1


@pytest.mark.asyncio
async def test_collect_all_joins_every_category(make_aggregator):
    routes = {
        IDENTITY_PATH: identities(1, 2),
        "/engagement": (200, {
            "success": True,
            "data": [
                {"user_id": 1, "duration_seconds": 600, "viewed_at": "2025-06-01T10:00:00Z"},
                {"user_id": 1, "duration_seconds": 600, "viewed_at": "2025-06-02T10:00:00Z"},
            ],
        }),
        "/trainings/user/1": (200, {"trainings": [{"time_minutes": 30, "rhythm": 5.5}, {"time_minutes": 45, "rhythm": 6.5}]}),
        "/trainings/user/2": (200, {"trainings": []}),
        "/chatbot/text-mining/stats/1": chatbot_stats(nutrition=2, recovery=1, total=3, score=1.5),
        "/chatbot/text-mining/stats/2": chatbot_stats(),
    }
    aggregator = make_aggregator(routes)

    result = await aggregator.collect_all("secret")

    assert result.errors == []
    assert [p.user_id for p in result.profiles] == [1, 2]

    first, second = result.profiles
    assert first.days_registered == 10
    assert first.total_time == 20.0
    assert first.views_opened == 2
    assert first.active_days == 2
    assert first.inactive_days == 28
    assert first.training_count == 2
    assert first.training_total_time == 75
    assert first.training_avg_pace == pytest.approx(6.0)
    assert first.chatbot_interactions == 3
    assert first.questions_per_category["nutrition"] == 2
    assert first.questions_per_category["recovery"] == 1
    assert first.chatbot_weighted_score == 1.5

    assert second.total_time == 0
    assert second.active_days == 0
    assert second.inactive_days == 30
    assert second.training_count == 0
    assert second.chatbot_interactions == 0


@pytest.mark.asyncio
async def test_engagement_outage_yields_zero_engagement(make_aggregator, sleep_recorder):
    routes = {
        IDENTITY_PATH: identities(7),
        "/engagement": (503, {"error": "down"}),
        "/engagement/7": (503, {"error": "down"}),
        "/trainings/user/7": (200, {"trainings": []}),
        "/chatbot/text-mining/stats/7": chatbot_stats(),
    }
    aggregator = make_aggregator(routes, sleep=sleep_recorder)

    result = await aggregator.collect_all("secret")

    assert len(result.profiles) == 1
    profile = result.profiles[0]
    assert profile.total_time == 0
    assert profile.views_opened == 0
    assert profile.active_days == 0
    assert profile.inactive_days == 30

    engagement_errors = [e for e in result.errors if e.category == "engagement"]
    assert len(engagement_errors) == 1
    assert engagement_errors[0].user_id == 7
    assert engagement_errors[0].kind == "transient"


@pytest.mark.asyncio
async def test_bulk_shape_error_falls_back_to_per_user(make_aggregator):
    calls = []
    routes = {
        IDENTITY_PATH: identities(1, 2),
        "/engagement": (200, {"unexpected": "envelope"}),
        "/engagement/1": (200, {"data": {"tiempo_total": 12.5, "vistas_abiertas": 4, "dias_activo": 3}}),
        "/engagement/2": (200, {"tiempo_total": 1.0, "vistas_abiertas": 1, "dias_activo": 1}),
        "/trainings/user/1": (200, []),
        "/trainings/user/2": (200, []),
        "/chatbot/text-mining/stats/1": chatbot_stats(),
        "/chatbot/text-mining/stats/2": chatbot_stats(),
    }
    aggregator = make_aggregator(routes, calls=calls)

    result = await aggregator.collect_all("secret")

    paths = [request.url.path for request in calls]
    assert "/engagement/1" in paths and "/engagement/2" in paths
    assert result.errors == []

    by_user = {p.user_id: p for p in result.profiles}
    assert by_user[1].total_time == 12.5
    assert by_user[1].views_opened == 4
    assert by_user[1].inactive_days == 27
    assert by_user[2].active_days == 1


@pytest.mark.asyncio
async def test_every_identity_record_yields_a_profile(make_aggregator):
    routes = {
        IDENTITY_PATH: identities(1, 2, 3),
        "/engagement": (200, {"success": True, "data": []}),
        "/trainings/user/1": (200, {"trainings": []}),
        "/chatbot/text-mining/stats/2": chatbot_stats(nutrition=1, total=1),
    }
    aggregator = make_aggregator(routes)

    result = await aggregator.collect_all("secret")

    assert [p.user_id for p in result.profiles] == [1, 2, 3]
    assert result.profiles[1].chatbot_interactions == 1

    missing = {(e.category, e.user_id) for e in result.errors}
    assert ("trainings", 2) in missing
    assert ("trainings", 3) in missing
    assert ("chatbot", 1) in missing
    assert ("analytics", 3) in missing
    assert all(e.kind == "permanent" for e in result.errors)


@pytest.mark.asyncio
async def test_empty_population_is_annotated(make_aggregator):
    aggregator = make_aggregator({IDENTITY_PATH: (200, {"clients": {"data": []}})})

    result = await aggregator.collect_all("secret")

    assert result.profiles == []
    assert [e.kind for e in result.errors] == ["empty_population"]


@pytest.mark.asyncio
async def test_identity_failure_stops_collection(make_aggregator):
    calls = []
    aggregator = make_aggregator({IDENTITY_PATH: (401, {"error": "bad token"})}, calls=calls)

    result = await aggregator.collect_all("secret")

    assert result.profiles == []
    assert result.errors[0].category == "identity"
    assert result.errors[0].kind == "permanent"
    assert len(calls) == 1

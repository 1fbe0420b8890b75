"""
Unit tests for prediction dispatch and fallback.
"""

import json

import httpx
import pytest

from runinsight.data import CombinedUserProfile
from runinsight.features import FeatureComposer
from runinsight.models import Provenance, RiskTier


def profile(user_id, **fields):
    return CombinedUserProfile(user_id=user_id, **fields)


class ExplodingComposer(FeatureComposer):
    def compose(self, profile):
        if profile.user_id == 2:
            raise RuntimeError("bad profile")
        return super().compose(profile)


@pytest.mark.asyncio
async def test_model_prediction_is_passed_through(make_dispatcher):
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={
            "user_id": 1,
            "churn_prediction": False,
            "churn_probability": 0.2,
            "risk_level": "Bajo",
            "recommendations": ["keep going"],
        })

    dispatcher = make_dispatcher(handler)
    subject = profile(1, active_days=7, total_time=40.0, views_opened=4,
                      questions_per_category={"nutrition": 2, "training": 1})

    result = await dispatcher.dispatch(subject, dispatcher.composer.compose(subject))

    assert result.provenance == Provenance.MODEL
    assert result.risk_tier == RiskTier.LOW
    assert result.churn_probability == 0.2

    body = sent[0]
    assert body["user_id"] == 1
    assert body["activity_ratio"] == 1.0
    assert body["usage_intensity"] == 10.0
    assert body["trend_time"] == 0
    assert body["questions_nutrition"] == 2
    assert body["questions_training"] == 1
    assert body["questions_equipment"] == 0
    assert "questions_per_category" not in body


@pytest.mark.asyncio
async def test_server_error_uses_fallback(make_dispatcher):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, json={"error": "model crashed"})

    dispatcher = make_dispatcher(handler)
    subject = profile(5, inactive_days=30)

    result = await dispatcher.dispatch(subject, dispatcher.composer.compose(subject))

    assert len(calls) == 1
    assert result.provenance == Provenance.FALLBACK
    assert result.user_id == 5
    assert result.churn_probability == pytest.approx(0.95)


@pytest.mark.asyncio
async def test_unreachable_model_uses_fallback(make_dispatcher):
    def handler(request):
        raise httpx.ConnectError("connection refused")

    dispatcher = make_dispatcher(handler)
    subject = profile(5)

    result = await dispatcher.dispatch(subject, dispatcher.composer.compose(subject))

    assert result.provenance == Provenance.FALLBACK


@pytest.mark.asyncio
async def test_unusable_model_body_uses_fallback(make_dispatcher):
    def handler(request):
        return httpx.Response(200, json={"churn_flag": True, "churn_probability": 3, "risk_tier": "High"})

    dispatcher = make_dispatcher(handler)
    subject = profile(5)

    result = await dispatcher.dispatch(subject, dispatcher.composer.compose(subject))

    assert result.provenance == Provenance.FALLBACK


@pytest.mark.asyncio
async def test_echoed_user_id_does_not_override_requested_user(make_dispatcher):
    def handler(request):
        return httpx.Response(200, json={
            "user_id": 999,
            "churn_flag": True,
            "churn_probability": 0.8,
            "risk_tier": "High",
        })

    dispatcher = make_dispatcher(handler)

    result = await dispatcher.dispatch_all([profile(5), profile(6)])

    assert [p.user_id for p in result.predictions] == [5, 6]
    assert all(p.provenance == Provenance.MODEL for p in result.predictions)
    assert result.errors == []


@pytest.mark.asyncio
async def test_dispatch_all_never_drops_a_user(make_dispatcher):
    def handler(request):
        raise httpx.ConnectError("connection refused")

    dispatcher = make_dispatcher(handler, composer=ExplodingComposer())
    profiles = [profile(1), profile(2), profile(3)]

    result = await dispatcher.dispatch_all(profiles)

    assert [p.user_id for p in result.predictions] == [1, 2, 3]
    assert all(p.provenance == Provenance.FALLBACK for p in result.predictions)
    assert [e.user_id for e in result.errors] == [2]
    assert "bad profile" in result.errors[0].error

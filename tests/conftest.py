"""
Pytest configuration and fixtures.
"""

import copy
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from runinsight.cache import ResultCache
from runinsight.data import BatchScheduler, CollectionResult, SourceAggregator
from runinsight.features import FeatureComposer
from runinsight.gateway import GatewayClient
from runinsight.models import PredictionDispatcher, fallback_prediction
from runinsight.models.results import DispatchResult

GATEWAY_URL = "https://gateway.test"
MODEL_URL = "http://model.test/predict"

TEST_CONFIG = {
    "gateway": {
        "base_url": GATEWAY_URL,
        "timeout_seconds": 5,
        "retry_attempts": 2,
        "retry_base_delay_seconds": 1.0,
        "token_header": "token",
        "user_agent": "PredictionService/test",
    },
    "sources": {
        "identity": {"bulk_path": "/users/clients/all"},
        "engagement": {"bulk_path": "/engagement", "user_path": "/engagement/{user_id}"},
        "trainings": {"bulk_path": None, "user_path": "/trainings/user/{user_id}"},
        "chatbot": {"bulk_path": None, "user_path": "/chatbot/text-mining/stats/{user_id}"},
        "analytics": {"bulk_path": None, "user_path": "/chatbot/text-mining/stats/{user_id}"},
    },
    "batch": {"group_size": 3, "delay_seconds": 1.0},
    "engagement": {"observation_window_days": 30},
    "chatbot": {
        "category_map": {
            "preguntas_nutricion": "nutrition",
            "preguntas_entrenamiento": "training",
            "preguntas_recuperacion": "recovery",
            "preguntas_prevencion_lesiones": "injury_prevention",
            "preguntas_equipamiento": "equipment",
        },
        "total_field": "total_preguntas",
        "score_field": "score_ponderado",
    },
    "prediction": {"api_url": MODEL_URL, "timeout_seconds": 5},
    "cache": {"ttl_seconds": 3600},
    "logging": {"level": "DEBUG", "file": None},
}


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class FakeAggregator:
    """Returns canned profiles; optionally blocks on an event or raises."""

    def __init__(self, profiles=None, errors=None, gate=None, fail=None):
        self.profiles = profiles or []
        self.errors = errors or []
        self.gate = gate
        self.fail = fail
        self.tokens = []
        self.gateway = None

    async def collect_all(self, token):
        self.tokens.append(token)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        return CollectionResult(profiles=list(self.profiles), errors=list(self.errors))


class FallbackOnlyDispatcher:
    """Scores every profile with the fallback heuristic, no HTTP involved."""

    def __init__(self):
        self.composer = FeatureComposer()

    async def dispatch_all(self, profiles):
        return DispatchResult(
            predictions=[fallback_prediction(p, self.composer.compose(p)) for p in profiles]
        )

    async def aclose(self):
        pass


def route_handler(routes, calls=None):
    """
    Build a MockTransport handler from ``{path: (status, json_body)}``.

    A route value may also be a callable taking the request. Unknown paths
    answer 404. When ``calls`` is given, every request is appended to it.
    """
    def handler(request):
        if calls is not None:
            calls.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request)
        status, body = route
        return httpx.Response(status, json=body)

    return handler


@pytest.fixture
def test_config():
    return copy.deepcopy(TEST_CONFIG)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_gateway(test_config):
    """Factory for a GatewayClient backed by a MockTransport handler."""
    def _make(handler, sleep=None, config=None):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=GATEWAY_URL)
        return GatewayClient(config or test_config, http_client=http_client, sleep=sleep or SleepRecorder())

    return _make


@pytest.fixture
def make_aggregator(test_config, make_gateway):
    """Factory for a SourceAggregator over mocked upstream routes."""
    def _make(routes, calls=None, sleep=None):
        sleep = sleep or SleepRecorder()
        gateway = make_gateway(route_handler(routes, calls), sleep=sleep)
        scheduler = BatchScheduler(test_config, sleep=sleep)
        return SourceAggregator(gateway, scheduler, test_config)

    return _make


@pytest.fixture
def make_dispatcher(test_config):
    """Factory for a PredictionDispatcher backed by a MockTransport handler."""
    def _make(handler, composer=None):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return PredictionDispatcher(test_config, http_client=http_client, composer=composer)

    return _make


@pytest.fixture
def make_cache(test_config, clock):
    """Factory for a ResultCache over a FakeAggregator and the fallback dispatcher."""
    def _make(profiles=None, errors=None, gate=None, fail=None):
        aggregator = FakeAggregator(profiles=profiles, errors=errors, gate=gate, fail=fail)
        return ResultCache(aggregator, FallbackOnlyDispatcher(), config=test_config, clock=clock)

    return _make

"""
Shared fixtures: fresh stores, limiters and a controllable clock per test
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from before_send.auth import BearerTokenResolver
from before_send.config import Settings
from before_send.database import build_engine, build_session_factory, init_db
from before_send.main import create_app
from before_send.schemas import CheckRecord, MessageInput
from before_send.services.check_service import CheckService
from before_send.services.engine import AnalysisEngine
from before_send.services.rate_limiter import InMemoryRateLimiter
from before_send.services.result_store import DurableResultStore, EphemeralResultStore, ResultStore
from before_send.services.simulator import SimulatedAnalyzer

SAMPLE_MESSAGE = "너 왜 맨날 그 모양이야? 한심하다"

TOKENS = {"token-alice": "alice", "token-bob": "bob"}


class FakeClock:
    """Clock that only moves when told to"""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def ephemeral(clock):
    return EphemeralResultStore(clock=clock)


@pytest.fixture
def durable(session_factory):
    return DurableResultStore(session_factory)


@pytest.fixture
def store(ephemeral, durable):
    return ResultStore(ephemeral=ephemeral, durable=durable)


@pytest.fixture
def limiter(clock):
    return InMemoryRateLimiter(clock=clock)


@pytest.fixture
def service(store, limiter, clock):
    return CheckService(
        engine=AnalysisEngine(SimulatedAnalyzer()),
        rate_limiter=limiter,
        store=store,
        clock=clock,
    )


@pytest.fixture
def make_record(clock):
    """Build a simulator-analyzed record without going through the pipeline"""
    analyzer = SimulatedAnalyzer()

    def _make(check_id: str, message: str = SAMPLE_MESSAGE, created_at: datetime = None) -> CheckRecord:
        return CheckRecord.from_analysis(
            check_id=check_id,
            message=MessageInput(original_message=message, situation="회의 일정"),
            result=analyzer.analyze_text(message),
            created_at=created_at or clock(),
        )

    return _make


@pytest.fixture
def app(service):
    return create_app(
        settings=Settings(log_level="WARNING"),
        service=service,
        session_resolver=BearerTokenResolver(TOKENS),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def alice():
    return {"Authorization": "Bearer token-alice"}


@pytest.fixture
def bob():
    return {"Authorization": "Bearer token-bob"}

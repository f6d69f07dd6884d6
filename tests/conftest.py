"""
Pytest Configuration and Shared Fixtures

Provides an in-memory database, a seeded project/keyword, and scripted
engine adapters for all test modules.
"""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from src.database import (
    Keyword,
    Project,
    ProjectRepository,
    create_db_engine,
    init_db,
    make_session_factory,
)
from src.engines import EngineAdapter, EngineRegistry, EngineResult
from src.errors import EngineAdapterError
from src.observations import ObservationRecord, ObservationStore


# Fixed "now" for deterministic window arithmetic
NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_db_engine("sqlite://")
    init_db(engine=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def store(session_factory) -> ObservationStore:
    return ObservationStore(session_factory)


@pytest.fixture
def projects(session_factory) -> ProjectRepository:
    return ProjectRepository(session_factory)


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def other_user_id():
    return uuid4()


@pytest.fixture
def project(session_factory, owner_id) -> Project:
    """Project tracking example.com."""
    with session_factory() as db:
        project = Project(
            id=uuid4(),
            owner_user_id=owner_id,
            name="Example Cloud",
            domain="example.com",
            brand_name="Example",
        )
        db.add(project)
        db.commit()
        return project


@pytest.fixture
def keyword(session_factory, project) -> Keyword:
    """Keyword "cloud hosting" under the project."""
    with session_factory() as db:
        keyword = Keyword(
            id=uuid4(),
            project_id=project.id,
            owner_user_id=project.owner_user_id,
            text="cloud hosting",
        )
        db.add(keyword)
        db.commit()
        return keyword


@pytest.fixture
def add_keyword(session_factory, project) -> Callable[[str], Keyword]:
    """Factory adding more keywords to the project."""
    def _add(text: str) -> Keyword:
        with session_factory() as db:
            kw = Keyword(
                id=uuid4(),
                project_id=project.id,
                owner_user_id=project.owner_user_id,
                text=text,
            )
            db.add(kw)
            db.commit()
            return kw
    return _add


# ============================================================================
# Observation Fixtures
# ============================================================================

@pytest.fixture
def make_observation(keyword) -> Callable[..., ObservationRecord]:
    """Factory for valid observation records on the seeded keyword."""
    def _make(
        engine: str = "gemini",
        presence: bool = True,
        timestamp: datetime = NOW,
        observed_urls: Optional[List[str]] = None,
        kw: Optional[Keyword] = None,
        **overrides,
    ) -> ObservationRecord:
        kw = kw or keyword
        fields = dict(
            id=uuid4(),
            keyword_id=kw.id,
            project_id=kw.project_id,
            owner_user_id=kw.owner_user_id,
            engine=engine,
            presence=presence,
            position=1 if presence else None,
            answer_snippet=f"answer from {engine}",
            citations_count=2 if presence else 0,
            observed_urls=tuple(observed_urls if observed_urls is not None else (["example.com"] if presence else [])),
            timestamp=timestamp,
        )
        fields.update(overrides)
        return ObservationRecord(**fields)
    return _make


# ============================================================================
# Engine Adapter Fixtures
# ============================================================================

class ScriptedAdapter(EngineAdapter):
    """
    Adapter that plays back a script of outcomes, one per call.

    Each step is an EngineResult, an Exception (raised), or the string
    "hang" (sleeps past any sane timeout). The last step repeats.
    """

    def __init__(self, *steps, delay: float = 0.0):
        self.steps = list(steps) or [EngineResult(presence=True, position=1, citations_count=1,
                                                  observed_urls=["example.com"])]
        self.delay = delay
        self.calls = 0
        self.started = asyncio.Event()

    async def run(self, keyword, brand):
        step = self.steps[min(self.calls, len(self.steps) - 1)]
        self.calls += 1
        self.started.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(step, str) and step == "hang":
            await asyncio.sleep(3600)
        if isinstance(step, Exception):
            raise step
        return step


@pytest.fixture
def present_cited() -> EngineResult:
    return EngineResult(
        presence=True, position=1, answer_snippet="Example is a top pick",
        citations_count=2, observed_urls=["https://www.example.com/hosting", "g2.com"],
    )


@pytest.fixture
def present_uncited() -> EngineResult:
    return EngineResult(
        presence=True, position=2, answer_snippet="Example is mentioned",
        citations_count=2, observed_urls=["vercel.com", "othersite.com"],
    )


@pytest.fixture
def absent() -> EngineResult:
    return EngineResult(presence=False, answer_snippet="No mention")


@pytest.fixture
def scripted_adapter():
    """Factory for ScriptedAdapter instances."""
    return ScriptedAdapter


@pytest.fixture
def make_registry() -> Callable[[Dict[str, EngineAdapter]], EngineRegistry]:
    """Build a registry from {engine_id: adapter}."""
    def _make(adapters: Dict[str, EngineAdapter]) -> EngineRegistry:
        registry = EngineRegistry()
        for engine_id, adapter in adapters.items():
            registry.register(engine_id, engine_id.title(), adapter)
        return registry
    return _make


@pytest.fixture
def engine_failure() -> EngineAdapterError:
    return EngineAdapterError("gemini", "upstream 503", status_code=503)


# ============================================================================
# Test Markers
# ============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )

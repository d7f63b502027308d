from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from song_request_queue.domain.requests.events import STATE_EVENTS
from song_request_queue.domain.requests.value_objects import RequestType

# ============================================================================
# Helpers
# ============================================================================


class FakeClock:
    """Deterministic clock; call it to read, `advance()` to move it forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 18, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def in_memory_database():
    """Create an in-memory SQLite database for testing."""
    from song_request_queue.infrastructure.persistence.database import Database

    db = Database(":memory:")
    await db.initialize()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def request_repository(in_memory_database):
    """Create a SQLite request repository with in-memory database."""
    from song_request_queue.infrastructure.persistence.repositories.request_repository import (
        SQLiteRequestRepository,
    )

    return SQLiteRequestRepository(in_memory_database)


@pytest_asyncio.fixture
async def metadata_cache_repository(in_memory_database):
    """Create a metadata cache repository with in-memory database."""
    from song_request_queue.infrastructure.persistence.repositories.metadata_cache_repository import (
        SQLiteMetadataCacheRepository,
    )

    return SQLiteMetadataCacheRepository(in_memory_database)


@pytest.fixture
def memory_repository():
    """Dict-backed repository with failure injection."""
    from song_request_queue.infrastructure.persistence.memory_repository import (
        InMemoryRequestRepository,
    )

    return InMemoryRequestRepository()


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_bus():
    from song_request_queue.domain.shared.events import EventBus

    return EventBus()


@pytest.fixture
def recorded_events(event_bus):
    """Every state event published on the bus, in order."""
    events = []

    async def record(event):
        events.append(event)

    event_bus.subscribe_all(STATE_EVENTS, record)
    return events


@pytest_asyncio.fixture
async def engine(memory_repository, event_bus, clock):
    """Started queue engine over the in-memory repository."""
    from song_request_queue.application.services.queue_engine import QueueEngine

    engine = QueueEngine(
        repository=memory_repository,
        event_bus=event_bus,
        retry_attempts=3,
        retry_delay_s=0,
        clock=clock,
    )
    await engine.start()
    return engine


# ============================================================================
# Domain Entity Fixtures
# ============================================================================


@pytest.fixture
def make_draft():
    """Factory for request drafts with sensible defaults."""
    from song_request_queue.domain.requests.entities import RequestDraft

    counter = iter(range(1, 10_000))

    def factory(
        requester: str = "Viewer",
        request_type: RequestType = RequestType.DONATION,
        **overrides,
    ) -> RequestDraft:
        n = next(counter)
        values = {
            "title": f"Song {n}",
            "song_link": f"https://www.youtube.com/watch?v=video{n:06d}",
            "requester": requester,
            "requester_login": requester.lower(),
            "request_type": request_type,
            "duration_seconds": 200,
        }
        values.update(overrides)
        return RequestDraft(**values)

    return factory


@pytest.fixture
def sample_request():
    """A queued donation request."""
    from song_request_queue.domain.requests.entities import SongRequest
    from song_request_queue.domain.requests.value_objects import Priority

    return SongRequest(
        id="req-1",
        title="Never Gonna Give You Up",
        song_link="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        requester="Alice",
        requester_login="alice",
        request_type=RequestType.DONATION,
        priority=Priority.DONATION,
        submitted_at=datetime(2024, 5, 1, 17, 0, tzinfo=UTC),
        sequence=0,
        duration_seconds=213,
        channel_name="Rick Astley",
    )

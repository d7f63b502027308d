"""
Unit Tests for IngestionService

Tests for:
- Link validation before anything reaches the engine
- Metadata lookup through cache and resolver
- Building drafts from raw submissions
"""

from unittest.mock import AsyncMock

import pytest

from song_request_queue.application.services.ingestion_service import (
    IngestionService,
    SongSubmission,
)
from song_request_queue.domain.requests.entities import SongMetadata
from song_request_queue.domain.requests.value_objects import RequestType
from song_request_queue.domain.shared.exceptions import ValidationError
from song_request_queue.infrastructure.persistence.memory_repository import InMemoryMetadataCache

LINK = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


@pytest.fixture
def metadata():
    return SongMetadata(
        video_id="dQw4w9WgXcQ",
        title="Never Gonna Give You Up",
        channel_name="Rick Astley",
        duration_seconds=213,
    )


@pytest.fixture
def resolver(metadata):
    mock = AsyncMock()
    mock.resolve = AsyncMock(return_value=metadata)
    return mock


@pytest.fixture
def cache():
    return InMemoryMetadataCache()


@pytest.fixture
def service(engine, resolver, cache):
    return IngestionService(engine=engine, resolver=resolver, cache_repository=cache)


def _submission(**overrides) -> SongSubmission:
    values = {
        "songLink": LINK,
        "requester": "Alice",
        "requestType": "donation",
    }
    values.update(overrides)
    return SongSubmission.model_validate(values)


class TestSubmit:
    @pytest.mark.asyncio
    async def test_enriches_request_with_metadata(self, service, engine):
        result = await service.submit(_submission())

        assert result.accepted
        queued = engine.snapshot().queue[0]
        assert queued.title == "Never Gonna Give You Up"
        assert queued.channel_name == "Rick Astley"
        assert queued.duration_seconds == 213
        assert queued.requester_login == "alice"
        assert queued.request_type is RequestType.DONATION

    @pytest.mark.asyncio
    async def test_explicit_title_wins(self, service, engine):
        await service.submit(_submission(title="My Custom Title"))

        assert engine.snapshot().queue[0].title == "My Custom Title"

    @pytest.mark.asyncio
    async def test_non_http_link_rejected_before_lookup(self, service, resolver, engine):
        result = await service.submit(_submission(songLink="javascript:alert(1)"))

        assert result.accepted is False
        assert isinstance(result.error, ValidationError)
        resolver.resolve.assert_not_called()
        assert engine.snapshot().queue == ()

    @pytest.mark.asyncio
    async def test_blank_requester_rejected(self, service):
        result = await service.submit(_submission(requester="   "))

        assert result.accepted is False
        assert result.error.field == "requester"

    @pytest.mark.asyncio
    async def test_metadata_duration_feeds_policy(self, service, resolver, metadata):
        """A resolved duration over the limit is rejected by the engine's policy."""
        resolver.resolve.return_value = metadata.model_copy(update={"duration_seconds": 3600})

        result = await service.submit(_submission())

        assert result.accepted is False
        assert result.error.rule == "duration"

    @pytest.mark.asyncio
    async def test_resolver_failure_still_queues(self, service, resolver, engine):
        resolver.resolve.return_value = None

        result = await service.submit(_submission())

        assert result.accepted
        assert engine.snapshot().queue[0].title == LINK
        assert engine.snapshot().queue[0].duration_seconds is None


class TestLookup:
    @pytest.mark.asyncio
    async def test_cache_hit_skips_resolver(self, service, resolver, cache, metadata):
        await cache.save(metadata)

        assert await service.lookup(LINK) == metadata
        resolver.resolve.assert_not_called()

    @pytest.mark.asyncio
    async def test_resolved_metadata_is_cached(self, service, resolver, cache, metadata):
        await service.lookup("https://youtu.be/dQw4w9WgXcQ")

        resolver.resolve.assert_awaited_once_with("dQw4w9WgXcQ", "https://youtu.be/dQw4w9WgXcQ")
        assert cache.entries["dQw4w9WgXcQ"] == metadata

    @pytest.mark.asyncio
    async def test_non_youtube_links_are_not_looked_up(self, service, resolver):
        assert await service.lookup("https://soundcloud.com/a/b") is None
        resolver.resolve.assert_not_called()

    @pytest.mark.asyncio
    async def test_without_resolver(self, engine):
        service = IngestionService(engine=engine)

        assert await service.lookup(LINK) is None

"""
Unit Tests for Song Request Domain Objects

Tests for:
- Video id extraction and link normalisation
- SongRequest / RequestDraft behaviour
- RuntimeSettings updates
- Queue ordering helpers
"""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from song_request_queue.domain.requests import ordering
from song_request_queue.domain.requests.entities import QueueState, RuntimeSettings
from song_request_queue.domain.requests.value_objects import (
    Priority,
    RequestType,
    extract_video_id,
    normalize_song_link,
)
from song_request_queue.domain.shared.exceptions import ValidationError

NOW = datetime(2024, 5, 1, 18, 0, tzinfo=UTC)


class TestVideoIds:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ?t=42",
            "https://www.youtube.com/embed/dQw4w9WgXcQ",
            "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        ],
    )
    def test_extract(self, url):
        assert extract_video_id(url) == "dQw4w9WgXcQ"

    def test_non_youtube(self):
        assert extract_video_id("https://soundcloud.com/artist/track") is None

    def test_normalize(self):
        assert normalize_song_link("https://youtu.be/dQw4w9WgXcQ") == "youtube:dQw4w9WgXcQ"
        assert normalize_song_link("https://Example.com/Track/ ") == "https://example.com/track"


class TestSongRequest:
    def test_draft_priority_follows_type(self, make_draft):
        donation = make_draft(request_type=RequestType.DONATION).to_request(
            request_id="a", sequence=0, now=NOW
        )
        cp = make_draft(request_type=RequestType.CHANNEL_POINTS).to_request(
            request_id="b", sequence=1, now=NOW
        )

        assert donation.priority is Priority.DONATION
        assert cp.priority is Priority.CHANNEL_POINTS
        assert donation.submitted_at == NOW

    def test_draft_rejects_non_http_link(self, make_draft):
        with pytest.raises(PydanticValidationError):
            make_draft(song_link="ftp://example.com/song")

    def test_naive_timestamp_rejected(self, make_draft):
        with pytest.raises(PydanticValidationError):
            make_draft(submitted_at=datetime(2024, 5, 1, 12, 0))

    def test_login_is_lowercased(self, make_draft):
        assert make_draft(requester_login="MixedCase").requester_login == "mixedcase"

    def test_completed_and_requeued(self, sample_request):
        done = sample_request.completed(NOW)
        again = done.requeued(request_id="req-2", sequence=9, at=NOW)

        assert done.completed_at == NOW
        assert again.completed_at is None
        assert again.id == "req-2"
        assert again.priority is Priority.OVERRIDE
        assert again.title == sample_request.title

    def test_is_frozen(self, sample_request):
        with pytest.raises(PydanticValidationError):
            sample_request.title = "changed"

    def test_duration_formatted(self, sample_request):
        assert sample_request.duration_formatted == "3:33"


class TestRuntimeSettings:
    def test_with_value(self):
        settings = RuntimeSettings().with_value("queue_enabled", False)

        assert settings.queue_enabled is False
        assert RuntimeSettings().queue_enabled is True

    def test_unknown_key(self):
        with pytest.raises(ValidationError) as exc_info:
            RuntimeSettings().with_value("bogus", 1)
        assert exc_info.value.field == "bogus"

    def test_from_mapping_skips_unknown_keys(self):
        settings = RuntimeSettings.from_mapping({"queue_enabled": False, "legacy_key": "x"})

        assert settings.queue_enabled is False


class TestOrdering:
    def _requests(self, make_draft, specs):
        return [
            make_draft(request_type=request_type, submitted_at=NOW + timedelta(seconds=offset)).to_request(
                request_id=f"r{i}", sequence=i, now=NOW
            )
            for i, (request_type, offset) in enumerate(specs)
        ]

    def test_insert_ordered(self, make_draft):
        requests = self._requests(
            make_draft,
            [
                (RequestType.CHANNEL_POINTS, 0),
                (RequestType.DONATION, 5),
                (RequestType.CHANNEL_POINTS, 1),
                (RequestType.DONATION, 2),
            ],
        )
        queue = ()
        for request in requests:
            queue = ordering.insert_ordered(queue, request)

        assert [r.id for r in queue] == ["r3", "r1", "r0", "r2"]
        assert ordering.is_ordered(queue)
        assert ordering.sort_queue(reversed(requests)) == queue

    def test_pop_next_and_position(self, make_draft):
        queue = ordering.sort_queue(
            self._requests(make_draft, [(RequestType.CHANNEL_POINTS, 0), (RequestType.DONATION, 0)])
        )

        assert ordering.queue_position(queue, "r0") == 2
        assert ordering.queue_position(queue, "missing") is None

        head, rest = ordering.pop_next(queue)
        assert head.id == "r1"
        assert [r.id for r in rest] == ["r0"]
        assert ordering.pop_next(()) == (None, ())

    def test_without(self, make_draft):
        queue = ordering.sort_queue(self._requests(make_draft, [(RequestType.DONATION, 0)] * 3))

        assert [r.id for r in ordering.without(queue, "r1")] == ["r0", "r2"]


class TestQueueState:
    def test_contains_checks_every_section(self, sample_request):
        state = QueueState(active_song=sample_request)

        assert state.contains("req-1")
        assert not state.contains("other")
        assert state.evolve(active_song=None, history=(sample_request,)).contains("req-1")

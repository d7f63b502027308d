"""Immutable value objects for the song request context."""

from __future__ import annotations

import re
from enum import IntEnum, StrEnum
from typing import Annotated
from uuid import uuid4

from pydantic import Field

RequestIdStr = Annotated[str, Field(min_length=1, max_length=64)]
"""Opaque request identifier, unique across queue and history."""


def new_request_id() -> str:
    return uuid4().hex


class RequestType(StrEnum):
    """How the viewer paid for the request."""

    DONATION = "donation"
    CHANNEL_POINTS = "channel_points"


class Priority(IntEnum):
    """Ordering class; higher values are played first."""

    CHANNEL_POINTS = 0
    DONATION = 1
    OVERRIDE = 2

    @classmethod
    def for_type(cls, request_type: RequestType) -> Priority:
        if request_type is RequestType.DONATION:
            return cls.DONATION
        return cls.CHANNEL_POINTS


class BlacklistKind(StrEnum):
    """Which part of a request a blacklist term is matched against."""

    SONG = "song"
    ARTIST = "artist"
    KEYWORD = "keyword"


_YOUTUBE_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/)([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/(?:shorts|live)/([a-zA-Z0-9_-]{11})"),
)


def extract_video_id(url: str) -> str | None:
    """Return the 11-character YouTube video id in `url`, if there is one."""
    for pattern in _YOUTUBE_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def normalize_song_link(url: str) -> str:
    """Key used to detect the same song submitted through different URL forms."""
    video_id = extract_video_id(url)
    if video_id:
        return f"youtube:{video_id}"
    return url.strip().rstrip("/").lower()

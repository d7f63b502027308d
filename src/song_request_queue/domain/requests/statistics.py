"""Pure statistics over queue and history contents.

Requests whose duration is still unknown count towards every tally but are
left out of duration sums and averages.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import datetime
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from song_request_queue.domain.requests.entities import SongRequest, format_duration
from song_request_queue.domain.requests.value_objects import RequestType
from song_request_queue.domain.shared.constants import StatsLimits
from song_request_queue.domain.shared.datetime_utils import local_day_bounds
from song_request_queue.domain.shared.types import NonNegativeInt


class _StatsModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class RequestStats(_StatsModel):
    total: NonNegativeInt = 0
    donation_count: NonNegativeInt = 0
    channel_points_count: NonNegativeInt = 0
    unknown_duration_count: NonNegativeInt = 0
    total_duration_seconds: NonNegativeInt = 0
    total_duration_formatted: str = "0:00"
    average_duration_seconds: NonNegativeInt = 0
    average_duration_formatted: str = "0:00"


class RequesterCount(_StatsModel):
    requester: str
    requester_login: str
    request_count: NonNegativeInt


class SongCount(_StatsModel):
    title: str
    channel_name: str | None = None
    play_count: NonNegativeInt


class ArtistCount(_StatsModel):
    channel_name: str
    play_count: NonNegativeInt


class AllTimeStats(_StatsModel):
    total_songs: NonNegativeInt = 0
    total_duration_seconds: NonNegativeInt = 0
    total_duration_formatted: str = "0:00"
    unique_requesters: NonNegativeInt = 0
    top_requesters: list[RequesterCount] = []
    top_songs: list[SongCount] = []
    top_artists: list[ArtistCount] = []


class TotalCounts(_StatsModel):
    queue: NonNegativeInt
    history: NonNegativeInt


def compute_request_stats(requests: Iterable[SongRequest]) -> RequestStats:
    """Totals, per-type counts and duration figures for a list of requests."""
    total = 0
    by_type: Counter[RequestType] = Counter()
    known_durations: list[int] = []

    for request in requests:
        total += 1
        by_type[request.request_type] += 1
        if request.duration_seconds is not None:
            known_durations.append(request.duration_seconds)

    total_seconds = sum(known_durations)
    average = round(total_seconds / len(known_durations)) if known_durations else 0

    return RequestStats(
        total=total,
        donation_count=by_type[RequestType.DONATION],
        channel_points_count=by_type[RequestType.CHANNEL_POINTS],
        unknown_duration_count=total - len(known_durations),
        total_duration_seconds=total_seconds,
        total_duration_formatted=format_duration(total_seconds),
        average_duration_seconds=average,
        average_duration_formatted=format_duration(average),
    )


def count_completed_today(history: Iterable[SongRequest], now: datetime, tz: ZoneInfo) -> int:
    """Songs completed during the calendar day of `now` in the stream's timezone."""
    start, end = local_day_bounds(now, tz)
    return sum(
        1
        for request in history
        if request.completed_at is not None and start <= request.completed_at < end
    )


def compute_all_time_stats(history: Iterable[SongRequest], limit: int = StatsLimits.TOP_REQUESTERS) -> AllTimeStats:
    """Leaderboards over the full durable history.

    Only entries seen more than once make the leaderboards. Requesters are
    grouped by login and shown with their most recent display name.
    """
    requester_counts: Counter[str] = Counter()
    display_names: dict[str, tuple[datetime, str]] = {}
    song_counts: Counter[tuple[str, str | None]] = Counter()
    song_titles: dict[tuple[str, str | None], tuple[str, str | None]] = {}
    artist_counts: Counter[str] = Counter()
    artist_names: dict[str, str] = {}
    total_songs = 0
    total_seconds = 0

    for request in history:
        total_songs += 1
        if request.duration_seconds is not None:
            total_seconds += request.duration_seconds

        requester_counts[request.requester_login] += 1
        seen_at = request.completed_at or request.submitted_at
        latest = display_names.get(request.requester_login)
        if latest is None or seen_at > latest[0]:
            display_names[request.requester_login] = (seen_at, request.requester)

        song_key = (request.title.lower(), (request.channel_name or "").lower() or None)
        song_counts[song_key] += 1
        song_titles.setdefault(song_key, (request.title, request.channel_name))

        if request.channel_name:
            artist_key = request.channel_name.lower()
            artist_counts[artist_key] += 1
            artist_names.setdefault(artist_key, request.channel_name)

    top_requesters = [
        RequesterCount(requester=display_names[login][1], requester_login=login, request_count=count)
        for login, count in _ranked(requester_counts, limit)
    ]
    top_songs = [
        SongCount(title=song_titles[key][0], channel_name=song_titles[key][1], play_count=count)
        for key, count in _ranked(song_counts, min(limit, StatsLimits.TOP_SONGS))
    ]
    top_artists = [
        ArtistCount(channel_name=artist_names[key], play_count=count)
        for key, count in _ranked(artist_counts, min(limit, StatsLimits.TOP_ARTISTS))
    ]

    return AllTimeStats(
        total_songs=total_songs,
        total_duration_seconds=total_seconds,
        total_duration_formatted=format_duration(total_seconds),
        unique_requesters=len(requester_counts),
        top_requesters=top_requesters,
        top_songs=top_songs,
        top_artists=top_artists,
    )


def _ranked(counter: Counter, limit: int) -> list[tuple]:
    # Counter.most_common keeps first-seen order among equal counts.
    return [(key, count) for key, count in counter.most_common() if count > 1][:limit]

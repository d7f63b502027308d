"""Core domain entities for the song request context."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from song_request_queue.domain.requests.value_objects import (
    BlacklistKind,
    Priority,
    RequestIdStr,
    RequestType,
    extract_video_id,
    normalize_song_link,
)
from song_request_queue.domain.shared.datetime_utils import utcnow
from song_request_queue.domain.shared.exceptions import ValidationError
from song_request_queue.domain.shared.messages import ErrorMessages
from song_request_queue.domain.shared.types import (
    DurationSeconds,
    HttpUrlStr,
    LoginStr,
    NonEmptyStr,
    PositiveInt,
    SequenceNumber,
    SongTitleStr,
    UtcDatetimeField,
)


def format_duration(seconds: int | None) -> str:
    """Format seconds as M:SS, or H:MM:SS from one hour up."""
    if seconds is None:
        return "Unknown"

    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class SongRequest(BaseModel):
    """A single song request as it moves from queue to active song to history."""

    model_config = ConfigDict(
        frozen=True,
        strict=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: RequestIdStr
    title: SongTitleStr
    song_link: HttpUrlStr
    requester: NonEmptyStr
    requester_login: LoginStr
    request_type: RequestType
    priority: Priority
    submitted_at: UtcDatetimeField
    sequence: SequenceNumber = 0

    # Metadata (resolver-provided, may be missing)
    duration_seconds: DurationSeconds | None = None
    thumbnail_url: HttpUrlStr | None = None
    channel_name: NonEmptyStr | None = None

    # Set once the request reaches history
    completed_at: UtcDatetimeField | None = None

    @property
    def sort_key(self) -> tuple[int, datetime, int]:
        """Priority first, then arrival time, then insertion sequence."""
        return (-int(self.priority), self.submitted_at, self.sequence)

    @property
    def duration_formatted(self) -> str:
        return format_duration(self.duration_seconds)

    @property
    def video_id(self) -> str | None:
        return extract_video_id(self.song_link)

    @property
    def link_key(self) -> str:
        return normalize_song_link(self.song_link)

    def is_owned_by(self, login: str) -> bool:
        return self.requester_login == login.lower()

    def completed(self, at: datetime | None = None) -> SongRequest:
        """Copy of this request stamped with its completion time."""
        return self.model_copy(update={"completed_at": at or utcnow()})

    def requeued(self, *, request_id: str, sequence: int, at: datetime) -> SongRequest:
        """Fresh queue entry for a song replayed from history."""
        return self.model_copy(
            update={
                "id": request_id,
                "sequence": sequence,
                "submitted_at": at,
                "priority": Priority.OVERRIDE,
                "completed_at": None,
            }
        )

    def with_priority(self, priority: Priority) -> SongRequest:
        return self.model_copy(update={"priority": priority})


class RequestDraft(BaseModel):
    """A validated submission that has not been assigned an id or sequence yet."""

    model_config = ConfigDict(frozen=True)

    title: SongTitleStr
    song_link: HttpUrlStr
    requester: NonEmptyStr
    requester_login: LoginStr
    request_type: RequestType
    priority: Priority | None = None
    submitted_at: UtcDatetimeField | None = None
    duration_seconds: DurationSeconds | None = None
    thumbnail_url: HttpUrlStr | None = None
    channel_name: NonEmptyStr | None = None

    def to_request(self, *, request_id: str, sequence: int, now: datetime) -> SongRequest:
        return SongRequest(
            id=request_id,
            title=self.title,
            song_link=self.song_link,
            requester=self.requester,
            requester_login=self.requester_login,
            request_type=self.request_type,
            priority=self.priority if self.priority is not None else Priority.for_type(self.request_type),
            submitted_at=self.submitted_at or now,
            sequence=sequence,
            duration_seconds=self.duration_seconds,
            thumbnail_url=self.thumbnail_url,
            channel_name=self.channel_name,
        )


class BlacklistEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    term: NonEmptyStr
    kind: BlacklistKind

    def matches(self, request: SongRequest | RequestDraft) -> bool:
        term = self.term.lower()
        title = request.title.lower()
        channel = (request.channel_name or "").lower()
        if self.kind is BlacklistKind.SONG:
            return term in title
        if self.kind is BlacklistKind.ARTIST:
            return term in channel
        return term in title or term in channel


class SongMetadata(BaseModel):
    """Video details looked up before a request is submitted."""

    model_config = ConfigDict(frozen=True)

    video_id: NonEmptyStr
    title: SongTitleStr
    channel_name: NonEmptyStr | None = None
    duration_seconds: DurationSeconds | None = None
    thumbnail_url: HttpUrlStr | None = None


class RuntimeSettings(BaseModel):
    """Operator-controlled key/value settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    queue_enabled: bool = True
    max_duration_minutes: PositiveInt | None = None

    @classmethod
    def known_keys(cls) -> frozenset[str]:
        return frozenset(cls.model_fields)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> RuntimeSettings:
        """Build settings from stored values, skipping keys this version does not know."""
        known = {k: v for k, v in values.items() if k in cls.known_keys()}
        return cls.model_validate(known)

    def with_value(self, key: str, value: Any) -> RuntimeSettings:
        if key not in self.known_keys():
            raise ValidationError(ErrorMessages.UNKNOWN_SETTING.format(key=key), field=key)
        try:
            return type(self).model_validate({**self.model_dump(), key: value})
        except PydanticValidationError as e:
            raise ValidationError(
                ErrorMessages.INVALID_SETTING_VALUE.format(key=key, value=value), field=key
            ) from e

    @property
    def max_duration_seconds(self) -> int | None:
        if self.max_duration_minutes is None:
            return None
        return self.max_duration_minutes * 60


@dataclass(frozen=True, slots=True)
class QueueState:
    """Point-in-time view of everything the queue engine owns.

    Instances are never mutated; the engine swaps in a new one per mutation.
    """

    queue: tuple[SongRequest, ...] = ()
    active_song: SongRequest | None = None
    history: tuple[SongRequest, ...] = ()
    settings: RuntimeSettings = field(default_factory=RuntimeSettings)
    blacklist: tuple[BlacklistEntry, ...] = ()
    blocked_users: frozenset[str] = frozenset()
    degraded: bool = False

    def evolve(self, **changes: Any) -> QueueState:
        return replace(self, **changes)

    def find_queued(self, request_id: str) -> SongRequest | None:
        return next((r for r in self.queue if r.id == request_id), None)

    def find_in_history(self, request_id: str) -> SongRequest | None:
        return next((r for r in self.history if r.id == request_id), None)

    def contains(self, request_id: str) -> bool:
        if self.active_song is not None and self.active_song.id == request_id:
            return True
        return self.find_queued(request_id) is not None or self.find_in_history(request_id) is not None

    @property
    def queue_enabled(self) -> bool:
        return self.settings.queue_enabled


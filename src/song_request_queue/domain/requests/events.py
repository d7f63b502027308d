"""Change events emitted by the queue engine."""

from __future__ import annotations

from typing import Any

from song_request_queue.domain.requests.entities import BlacklistEntry, SongRequest
from song_request_queue.domain.shared.events import DomainEvent
from song_request_queue.domain.shared.types import NonEmptyStr


class QueueChanged(DomainEvent):
    queue: tuple[SongRequest, ...] = ()


class ActiveSongChanged(DomainEvent):
    song: SongRequest | None = None


class HistoryChanged(DomainEvent):
    history: tuple[SongRequest, ...] = ()


class HistoryOrderChanged(DomainEvent):
    """Signal only; observers re-fetch the history themselves."""


class SongFinished(DomainEvent):
    song: SongRequest


class SettingsChanged(DomainEvent):
    settings: dict[str, Any]


class BlacklistChanged(DomainEvent):
    blacklist: tuple[BlacklistEntry, ...] = ()


class BlockedUsersChanged(DomainEvent):
    blocked_users: tuple[str, ...] = ()


class PersistenceDegraded(DomainEvent):
    operation: NonEmptyStr
    message: str


STATE_EVENTS: list[type[DomainEvent]] = [
    QueueChanged,
    ActiveSongChanged,
    HistoryChanged,
    HistoryOrderChanged,
    SongFinished,
    SettingsChanged,
    BlacklistChanged,
    BlockedUsersChanged,
    PersistenceDegraded,
]

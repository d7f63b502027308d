"""
Song Request Repository Interfaces

Abstract base classes defining the contracts for durable storage.
Implementations live in the infrastructure layer. Every write method must be
durable when it returns; failures are raised as PersistenceError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from song_request_queue.domain.requests.entities import BlacklistEntry, SongMetadata, SongRequest
from song_request_queue.domain.requests.value_objects import Priority


@dataclass
class StoredState:
    """Everything the queue engine needs at startup."""

    queue: list[SongRequest] = field(default_factory=list)
    history: list[SongRequest] = field(default_factory=list)
    active_song: SongRequest | None = None
    settings: dict[str, Any] = field(default_factory=dict)
    blacklist: list[BlacklistEntry] = field(default_factory=list)
    blocked_users: list[str] = field(default_factory=list)


class RequestRepository(ABC):
    """Durable copy of queue, active song, history and settings.

    Pure data access: no ordering or admission rules live here.
    """

    @abstractmethod
    async def load_state(self, history_window: int) -> StoredState:
        """Load the state to restore at startup.

        Args:
            history_window: How many of the most recent history entries to load.

        Returns:
            The stored queue (any order), the windowed history in display
            order, the active song, settings and moderation lists.
        """
        ...

    @abstractmethod
    async def persist_queue_insert(self, request: SongRequest) -> None:
        """Store a newly queued request."""
        ...

    @abstractmethod
    async def persist_queue_remove(self, request_id: str) -> None:
        """Remove a request from the stored queue. Unknown ids are ignored."""
        ...

    @abstractmethod
    async def persist_queue_priority(self, request_id: str, priority: Priority) -> None:
        """Change the stored priority of a queued request."""
        ...

    @abstractmethod
    async def persist_queue_clear(self) -> None:
        ...

    @abstractmethod
    async def persist_active_song(self, request: SongRequest | None) -> None:
        """Store the current active song, or clear it when `request` is None."""
        ...

    @abstractmethod
    async def persist_history_append(self, request: SongRequest) -> None:
        """Append a completed request to the history.

        Args:
            request: The request, carrying its completion timestamp.
        """
        ...

    @abstractmethod
    async def persist_history_order(self, request_ids: list[str]) -> None:
        """Store a new display order for the given history entries.

        Args:
            request_ids: History ids, most recent first.
        """
        ...

    @abstractmethod
    async def persist_history_delete(self, request_id: str) -> bool:
        """Delete one history entry.

        Returns:
            True if an entry was deleted, False if it didn't exist.
        """
        ...

    @abstractmethod
    async def persist_history_clear(self) -> None:
        ...

    @abstractmethod
    async def persist_settings_change(self, key: str, value: Any) -> None:
        """Store one settings value (JSON-compatible)."""
        ...

    @abstractmethod
    async def persist_blacklist_add(self, entry: BlacklistEntry) -> None:
        ...

    @abstractmethod
    async def persist_blacklist_remove(self, entry: BlacklistEntry) -> None:
        ...

    @abstractmethod
    async def persist_blocked_user_add(self, login: str) -> None:
        ...

    @abstractmethod
    async def persist_blocked_user_remove(self, login: str) -> None:
        ...

    @abstractmethod
    async def get_history_page(
        self, requester_login: str | None, limit: int, offset: int
    ) -> tuple[list[SongRequest], int]:
        """Page through history, most recent first.

        Args:
            requester_login: Only return this requester's songs, or all when None.
            limit: Maximum number of entries to return.
            offset: Number of entries to skip.

        Returns:
            The page and the total number of matching entries.
        """
        ...

    @abstractmethod
    async def get_all_history(self) -> list[SongRequest]:
        """Return the full history, most recent first."""
        ...

    @abstractmethod
    async def count_history(self) -> int:
        ...


class MetadataCacheRepository(ABC):
    """Cache of looked-up video details keyed by video id."""

    @abstractmethod
    async def get(self, video_id: str) -> SongMetadata | None:
        ...

    @abstractmethod
    async def save(self, metadata: SongMetadata) -> None:
        ...

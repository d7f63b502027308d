"""In-process repository used by tests and throwaway runs."""

from __future__ import annotations

from typing import Any

from song_request_queue.domain.requests.entities import BlacklistEntry, SongMetadata, SongRequest
from song_request_queue.domain.requests.repository import (
    MetadataCacheRepository,
    RequestRepository,
    StoredState,
)
from song_request_queue.domain.requests.value_objects import Priority
from song_request_queue.domain.shared.exceptions import PersistenceError


class InMemoryRequestRepository(RequestRepository):
    """Dict-backed repository with optional failure injection.

    Set `fail_next_writes` to make that many subsequent writes raise
    PersistenceError, or `fail_all_writes` to simulate a dead store.
    """

    def __init__(self, state: StoredState | None = None) -> None:
        state = state or StoredState()
        self.queue: dict[str, SongRequest] = {r.id: r for r in state.queue}
        self.active_song: SongRequest | None = state.active_song
        # Most recent first.
        self.history: list[SongRequest] = list(state.history)
        self.settings: dict[str, Any] = dict(state.settings)
        self.blacklist: list[BlacklistEntry] = list(state.blacklist)
        self.blocked_users: set[str] = set(state.blocked_users)
        self.fail_next_writes = 0
        self.fail_all_writes = False
        self.write_log: list[str] = []

    def _write(self, operation: str) -> None:
        if self.fail_all_writes:
            raise PersistenceError(operation)
        if self.fail_next_writes > 0:
            self.fail_next_writes -= 1
            raise PersistenceError(operation)
        self.write_log.append(operation)

    async def load_state(self, history_window: int) -> StoredState:
        return StoredState(
            queue=list(self.queue.values()),
            history=self.history[:history_window],
            active_song=self.active_song,
            settings=dict(self.settings),
            blacklist=list(self.blacklist),
            blocked_users=sorted(self.blocked_users),
        )

    async def persist_queue_insert(self, request: SongRequest) -> None:
        self._write("queue_insert")
        self.queue[request.id] = request

    async def persist_queue_remove(self, request_id: str) -> None:
        self._write("queue_remove")
        self.queue.pop(request_id, None)

    async def persist_queue_priority(self, request_id: str, priority: Priority) -> None:
        self._write("queue_priority")
        if request_id in self.queue:
            self.queue[request_id] = self.queue[request_id].with_priority(priority)

    async def persist_queue_clear(self) -> None:
        self._write("queue_clear")
        self.queue.clear()

    async def persist_active_song(self, request: SongRequest | None) -> None:
        self._write("active_song")
        self.active_song = request

    async def persist_history_append(self, request: SongRequest) -> None:
        self._write("history_append")
        self.history = [r for r in self.history if r.id != request.id]
        self.history.insert(0, request)

    async def persist_history_order(self, request_ids: list[str]) -> None:
        self._write("history_order")
        by_id = {r.id: r for r in self.history}
        reordered = [by_id[i] for i in request_ids if i in by_id]
        rest = [r for r in self.history if r.id not in set(request_ids)]
        self.history = reordered + rest

    async def persist_history_delete(self, request_id: str) -> bool:
        self._write("history_delete")
        before = len(self.history)
        self.history = [r for r in self.history if r.id != request_id]
        return len(self.history) < before

    async def persist_history_clear(self) -> None:
        self._write("history_clear")
        self.history.clear()

    async def persist_settings_change(self, key: str, value: Any) -> None:
        self._write("settings_change")
        self.settings[key] = value

    async def persist_blacklist_add(self, entry: BlacklistEntry) -> None:
        self._write("blacklist_add")
        if entry not in self.blacklist:
            self.blacklist.append(entry)

    async def persist_blacklist_remove(self, entry: BlacklistEntry) -> None:
        self._write("blacklist_remove")
        self.blacklist = [e for e in self.blacklist if e != entry]

    async def persist_blocked_user_add(self, login: str) -> None:
        self._write("blocked_user_add")
        self.blocked_users.add(login.lower())

    async def persist_blocked_user_remove(self, login: str) -> None:
        self._write("blocked_user_remove")
        self.blocked_users.discard(login.lower())

    async def get_history_page(
        self, requester_login: str | None, limit: int, offset: int
    ) -> tuple[list[SongRequest], int]:
        matching = [
            r for r in self._by_completion() if requester_login is None or r.is_owned_by(requester_login)
        ]
        return matching[offset : offset + limit], len(matching)

    async def get_all_history(self) -> list[SongRequest]:
        return self._by_completion()

    async def count_history(self) -> int:
        return len(self.history)

    def _by_completion(self) -> list[SongRequest]:
        return sorted(
            self.history,
            key=lambda r: r.completed_at or r.submitted_at,
            reverse=True,
        )


class InMemoryMetadataCache(MetadataCacheRepository):
    def __init__(self) -> None:
        self.entries: dict[str, SongMetadata] = {}

    async def get(self, video_id: str) -> SongMetadata | None:
        return self.entries.get(video_id)

    async def save(self, metadata: SongMetadata) -> None:
        self.entries[metadata.video_id] = metadata

"""Single-writer owner of the queue, the active song, history and settings."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar

from ...domain.requests import ordering
from ...domain.requests.entities import (
    BlacklistEntry,
    QueueState,
    RequestDraft,
    RuntimeSettings,
    SongRequest,
)
from ...domain.requests.events import (
    ActiveSongChanged,
    BlacklistChanged,
    BlockedUsersChanged,
    HistoryChanged,
    HistoryOrderChanged,
    PersistenceDegraded,
    QueueChanged,
    SettingsChanged,
    SongFinished,
)
from ...domain.requests.policies import RequestPolicy
from ...domain.requests.value_objects import BlacklistKind, Priority, new_request_id
from ...domain.shared.constants import SettingKeys
from ...domain.shared.datetime_utils import utcnow
from ...domain.shared.exceptions import (
    NotFound,
    PersistenceError,
    PolicyRejection,
    ValidationError,
)
from ...domain.shared.messages import ErrorMessages, LogTemplates
from .queue_models import SubmitResult

if TYPE_CHECKING:
    from ...domain.requests.repository import RequestRepository
    from ...domain.shared.events import DomainEvent, EventBus

logger = logging.getLogger(__name__)

R = TypeVar("R")


class QueueEngine:
    """Authoritative in-memory queue state with write-through persistence.

    Every mutation holds the writer lock for its whole run: validate, persist,
    swap in the new state, publish events. The state itself is an immutable
    `QueueState`, so `snapshot()` never takes the lock and is always a
    consistent point-in-time view, even while a write is waiting on storage.

    Storage failures are retried a bounded number of times. After that the
    in-memory change is kept, `PersistenceDegraded` is published and the
    engine reports itself as degraded.
    """

    def __init__(
        self,
        *,
        repository: RequestRepository,
        event_bus: EventBus,
        policy: RequestPolicy | None = None,
        history_window: int = 50,
        retry_attempts: int = 3,
        retry_delay_s: float = 0.05,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_request_id,
    ) -> None:
        self._repository = repository
        self._bus = event_bus
        self._policy = policy or RequestPolicy()
        self._history_window = history_window
        self._retry_attempts = max(1, retry_attempts)
        self._retry_delay_s = retry_delay_s
        self._clock = clock
        self._id_factory = id_factory

        self._lock = asyncio.Lock()
        self._state = QueueState()
        self._next_sequence = 0
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle and reads
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Restore state from the repository."""
        async with self._lock:
            stored = await self._repository.load_state(self._history_window)
            queue = ordering.sort_queue(stored.queue)
            self._state = QueueState(
                queue=queue,
                active_song=stored.active_song,
                history=tuple(stored.history[: self._history_window]),
                settings=RuntimeSettings.from_mapping(stored.settings),
                blacklist=tuple(stored.blacklist),
                blocked_users=frozenset(login.lower() for login in stored.blocked_users),
            )
            known = list(queue) + ([stored.active_song] if stored.active_song else [])
            self._next_sequence = max((r.sequence for r in known), default=-1) + 1
            self._started = True

        logger.info(
            LogTemplates.ENGINE_STATE_LOADED,
            len(self._state.queue),
            len(self._state.history),
            self._state.active_song.id if self._state.active_song else None,
        )

    @property
    def started(self) -> bool:
        return self._started

    @property
    def degraded(self) -> bool:
        return self._state.degraded

    @property
    def history_window(self) -> int:
        return self._history_window

    def snapshot(self) -> QueueState:
        """Current state; safe to call at any time without waiting."""
        return self._state

    async def run_exclusive(self, fn: Callable[[QueueState], R]) -> R:
        """Run `fn` against the current state with no mutation in between.

        Events published by the next mutation are only emitted after `fn`
        returns, which lets observers register and receive a snapshot as
        one step.
        """
        async with self._lock:
            return fn(self._state)

    # ------------------------------------------------------------------
    # Queue mutations
    # ------------------------------------------------------------------

    async def submit(self, draft: RequestDraft) -> SubmitResult:
        """Admit a new request or explain why it was refused.

        Rejections are returned to the caller and never published.
        """
        async with self._lock:
            now = self._clock()
            try:
                self._check_admission(draft, now)
            except (PolicyRejection, ValidationError) as e:
                logger.info(LogTemplates.REQUEST_REJECTED, draft.requester_login, e.message)
                return SubmitResult.reject(e)

            request = draft.to_request(
                request_id=self._unique_id(), sequence=self._take_sequence(), now=now
            )
            queue = ordering.insert_ordered(self._state.queue, request)

            await self._persist("queue insert", lambda: self._repository.persist_queue_insert(request))
            self._state = self._state.evolve(queue=queue)
            await self._publish(QueueChanged(queue=queue))

        logger.info(
            LogTemplates.REQUEST_ACCEPTED,
            request.request_type.value,
            request.id,
            request.requester,
            request.title,
        )
        return SubmitResult.accept(
            request, ordering.queue_position(queue, request.id) or 0, len(queue)
        )

    async def advance(self) -> SongRequest | None:
        """Finish the active song (if any) and promote the next queued request.

        Returns:
            The new active song, or None when the queue was empty.
        """
        async with self._lock:
            if self._state.active_song is not None:
                await self._finalize_active()

            next_song, rest = ordering.pop_next(self._state.queue)
            if next_song is None:
                logger.debug(LogTemplates.QUEUE_EMPTY_ON_ADVANCE)
                return None

            await self._persist(
                "queue promote",
                lambda: self._repository.persist_queue_remove(next_song.id),
                lambda: self._repository.persist_active_song(next_song),
            )
            self._state = self._state.evolve(queue=rest, active_song=next_song)
            await self._publish(QueueChanged(queue=rest))
            await self._publish(ActiveSongChanged(song=next_song))

        logger.info(LogTemplates.ACTIVE_SONG_STARTED, next_song.title, next_song.requester)
        return next_song

    async def finish_active(self, finished_id: str) -> bool:
        """Move the active song to history if it is still `finished_id`.

        Stale or repeated finish signals are ignored.

        Returns:
            True if a song was finalized.
        """
        async with self._lock:
            active = self._state.active_song
            if active is None or active.id != finished_id:
                logger.debug(
                    LogTemplates.STALE_FINISH_IGNORED, finished_id, active.id if active else None
                )
                return False
            await self._finalize_active()
            return True

    async def remove_from_queue(self, request_id: str) -> SongRequest:
        """Remove a queued request without it ever becoming active.

        Raises:
            NotFound: If the request is not in the queue.
        """
        async with self._lock:
            return await self._remove_queued(request_id)

    async def remove_own_request(self, request_id: str, requester_login: str) -> SongRequest:
        """Let a requester withdraw their own queued request.

        Raises:
            NotFound: If the request is not in the queue.
            PolicyRejection: If the request belongs to someone else.
        """
        async with self._lock:
            request = self._state.find_queued(request_id)
            if request is None:
                raise NotFound(
                    "SongRequest",
                    request_id,
                    ErrorMessages.REQUEST_NOT_IN_QUEUE.format(request_id=request_id),
                )
            if not request.is_owned_by(requester_login):
                raise PolicyRejection(
                    "ownership",
                    ErrorMessages.NOT_REQUEST_OWNER.format(
                        login=requester_login.lower(), request_id=request_id
                    ),
                )
            removed = await self._remove_queued(request_id)

        logger.info(LogTemplates.REQUEST_REMOVED_BY_OWNER, request_id, requester_login.lower())
        return removed

    async def set_queue_priority(
        self, request_id: str, priority: Priority = Priority.OVERRIDE
    ) -> SongRequest:
        """Admin override: give a queued request a new priority.

        The request keeps its submission time and sequence, so it moves to the
        position its new priority earns and stays ordered among equals.

        Raises:
            NotFound: If the request is not in the queue.
        """
        async with self._lock:
            request = self._state.find_queued(request_id)
            if request is None:
                raise NotFound(
                    "SongRequest",
                    request_id,
                    ErrorMessages.REQUEST_NOT_IN_QUEUE.format(request_id=request_id),
                )
            updated = request.with_priority(priority)
            queue = ordering.insert_ordered(ordering.without(self._state.queue, request_id), updated)
            await self._persist(
                "queue priority",
                lambda: self._repository.persist_queue_priority(request_id, priority),
            )
            self._state = self._state.evolve(queue=queue)
            await self._publish(QueueChanged(queue=queue))

        logger.info(LogTemplates.QUEUE_PRIORITY_CHANGED, request_id, priority.name)
        return updated

    async def clear_queue(self) -> int:
        """Drop every queued request. Returns how many were removed."""
        async with self._lock:
            removed = len(self._state.queue)
            await self._persist("queue clear", self._repository.persist_queue_clear)
            self._state = self._state.evolve(queue=())
            await self._publish(QueueChanged(queue=()))

        logger.info(LogTemplates.QUEUE_CLEARED, removed)
        return removed

    async def reset(self) -> None:
        """Clear queue, active song and the in-memory history window.

        Durable history, settings and moderation lists are kept.
        """
        async with self._lock:
            await self._persist(
                "reset",
                self._repository.persist_queue_clear,
                lambda: self._repository.persist_active_song(None),
            )
            self._state = self._state.evolve(queue=(), active_song=None, history=())
            await self._publish(QueueChanged(queue=()))
            await self._publish(ActiveSongChanged(song=None))
            await self._publish(HistoryChanged(history=()))

        logger.info(LogTemplates.SYSTEM_RESET)

    # ------------------------------------------------------------------
    # History mutations
    # ------------------------------------------------------------------

    async def requeue_from_history(self, history_id: str) -> SongRequest:
        """Queue a completed song again, ahead of regular requests.

        The history entry stays where it is; the new queue entry gets its own
        id and sequence number.

        Raises:
            NotFound: If the id is not in the history window.
        """
        async with self._lock:
            original = self._state.find_in_history(history_id)
            if original is None:
                raise NotFound(
                    "SongRequest",
                    history_id,
                    ErrorMessages.REQUEST_NOT_IN_HISTORY.format(request_id=history_id),
                )
            request = original.requeued(
                request_id=self._unique_id(), sequence=self._take_sequence(), at=self._clock()
            )
            queue = ordering.insert_ordered(self._state.queue, request)

            await self._persist("queue insert", lambda: self._repository.persist_queue_insert(request))
            self._state = self._state.evolve(queue=queue)
            await self._publish(QueueChanged(queue=queue))

        logger.info(LogTemplates.REQUEUED_FROM_HISTORY, history_id, request.id)
        return request

    async def reorder_history(self, ordered_ids: list[str]) -> None:
        """Apply an operator-chosen order to the history window.

        Args:
            ordered_ids: Every id currently in the history window, most recent first.

        Raises:
            ValidationError: If the ids are not a permutation of the window.
        """
        async with self._lock:
            by_id = {r.id: r for r in self._state.history}
            if len(ordered_ids) != len(by_id) or set(ordered_ids) != set(by_id):
                raise ValidationError(ErrorMessages.HISTORY_ORDER_MISMATCH, field="ordered_ids")

            history = tuple(by_id[request_id] for request_id in ordered_ids)
            await self._persist(
                "history order", lambda: self._repository.persist_history_order(list(ordered_ids))
            )
            self._state = self._state.evolve(history=history)
            await self._publish(HistoryOrderChanged())

        logger.info(LogTemplates.HISTORY_REORDERED, len(ordered_ids))

    async def delete_history_item(self, request_id: str) -> None:
        """Delete a history entry.

        Raises:
            NotFound: If the id is neither in the window nor in storage.
        """
        async with self._lock:
            in_window = self._state.find_in_history(request_id) is not None
            deleted = False

            async def write() -> None:
                nonlocal deleted
                deleted = await self._repository.persist_history_delete(request_id)

            await self._persist("history delete", write)
            if not in_window and not deleted:
                raise NotFound(
                    "SongRequest",
                    request_id,
                    ErrorMessages.REQUEST_NOT_IN_HISTORY.format(request_id=request_id),
                )
            history = tuple(r for r in self._state.history if r.id != request_id)
            self._state = self._state.evolve(history=history)
            await self._publish(HistoryChanged(history=history))

        logger.info(LogTemplates.HISTORY_ITEM_DELETED, request_id)

    async def clear_history(self) -> None:
        async with self._lock:
            await self._persist("history clear", self._repository.persist_history_clear)
            self._state = self._state.evolve(history=())
            await self._publish(HistoryChanged(history=()))

        logger.info(LogTemplates.HISTORY_CLEARED)

    # ------------------------------------------------------------------
    # Settings and moderation
    # ------------------------------------------------------------------

    async def set_setting(self, key: str, value: Any) -> RuntimeSettings:
        """Change one runtime setting and broadcast the full settings map.

        Raises:
            ValidationError: For unknown keys or values of the wrong type.
        """
        async with self._lock:
            settings = self._state.settings.with_value(key, value)
            stored_value = getattr(settings, key)
            await self._persist(
                f"setting {key}", lambda: self._repository.persist_settings_change(key, stored_value)
            )
            self._state = self._state.evolve(settings=settings)
            await self._publish(SettingsChanged(settings=settings.model_dump()))

        logger.info(LogTemplates.SETTING_CHANGED, key, stored_value)
        return settings

    async def set_queue_enabled(self, enabled: bool) -> RuntimeSettings:
        return await self.set_setting(SettingKeys.QUEUE_ENABLED, enabled)

    async def add_blacklist_term(self, term: str, kind: BlacklistKind) -> None:
        entry = self._blacklist_entry(term, kind)
        async with self._lock:
            if entry in self._state.blacklist:
                return
            blacklist = (*self._state.blacklist, entry)
            await self._persist("blacklist add", lambda: self._repository.persist_blacklist_add(entry))
            self._state = self._state.evolve(blacklist=blacklist)
            await self._publish(BlacklistChanged(blacklist=blacklist))

        logger.info(LogTemplates.BLACKLIST_CHANGED, "add", kind.value, entry.term)

    async def remove_blacklist_term(self, term: str, kind: BlacklistKind) -> None:
        entry = self._blacklist_entry(term, kind)
        async with self._lock:
            if entry not in self._state.blacklist:
                raise NotFound("BlacklistEntry", f"{kind.value}:{entry.term}")
            blacklist = tuple(e for e in self._state.blacklist if e != entry)
            await self._persist(
                "blacklist remove", lambda: self._repository.persist_blacklist_remove(entry)
            )
            self._state = self._state.evolve(blacklist=blacklist)
            await self._publish(BlacklistChanged(blacklist=blacklist))

        logger.info(LogTemplates.BLACKLIST_CHANGED, "remove", kind.value, entry.term)

    async def block_user(self, login: str) -> None:
        login = login.strip().lower()
        if not login:
            raise ValidationError(ErrorMessages.EMPTY_REQUESTER, field="login")
        async with self._lock:
            if login in self._state.blocked_users:
                return
            blocked = self._state.blocked_users | {login}
            await self._persist("blocked user add", lambda: self._repository.persist_blocked_user_add(login))
            self._state = self._state.evolve(blocked_users=blocked)
            await self._publish(BlockedUsersChanged(blocked_users=tuple(sorted(blocked))))

        logger.info(LogTemplates.BLOCKED_USERS_CHANGED, "add", login)

    async def unblock_user(self, login: str) -> None:
        login = login.strip().lower()
        async with self._lock:
            if login not in self._state.blocked_users:
                raise NotFound("BlockedUser", login)
            blocked = self._state.blocked_users - {login}
            await self._persist(
                "blocked user remove", lambda: self._repository.persist_blocked_user_remove(login)
            )
            self._state = self._state.evolve(blocked_users=blocked)
            await self._publish(BlockedUsersChanged(blocked_users=tuple(sorted(blocked))))

        logger.info(LogTemplates.BLOCKED_USERS_CHANGED, "remove", login)

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _check_admission(self, draft: RequestDraft, now: datetime) -> None:
        if not self._state.queue_enabled:
            raise PolicyRejection("queue_paused", ErrorMessages.QUEUE_PAUSED)
        self._policy.check(draft, self._state, now)

    async def _finalize_active(self) -> None:
        active = self._state.active_song
        assert active is not None
        finished = active.completed(self._clock())
        history = (finished, *self._state.history)[: self._history_window]

        await self._persist(
            "history append",
            lambda: self._repository.persist_history_append(finished),
            lambda: self._repository.persist_active_song(None),
        )
        self._state = self._state.evolve(active_song=None, history=history)
        await self._publish(HistoryChanged(history=history))
        await self._publish(SongFinished(song=finished))
        await self._publish(ActiveSongChanged(song=None))
        logger.info(LogTemplates.ACTIVE_SONG_FINISHED, finished.title)

    async def _remove_queued(self, request_id: str) -> SongRequest:
        request = self._state.find_queued(request_id)
        if request is None:
            raise NotFound(
                "SongRequest",
                request_id,
                ErrorMessages.REQUEST_NOT_IN_QUEUE.format(request_id=request_id),
            )
        queue = ordering.without(self._state.queue, request_id)
        await self._persist("queue remove", lambda: self._repository.persist_queue_remove(request_id))
        self._state = self._state.evolve(queue=queue)
        await self._publish(QueueChanged(queue=queue))
        logger.info(LogTemplates.REQUEST_REMOVED, request_id)
        return request

    async def _persist(self, operation: str, *writes: Callable[[], Awaitable[None]]) -> bool:
        """Run `writes` in order, retrying the failing one with backoff.

        Returns:
            False if a write was abandoned and the engine is now degraded.
        """
        for write in writes:
            for attempt in range(1, self._retry_attempts + 1):
                try:
                    await write()
                    break
                except PersistenceError as e:
                    logger.warning(
                        LogTemplates.PERSIST_RETRY, operation, attempt, self._retry_attempts, e.message
                    )
                    if attempt < self._retry_attempts:
                        await asyncio.sleep(self._retry_delay_s * attempt)
            else:
                await self._degrade(operation, ErrorMessages.PERSISTENCE_FAILED.format(operation=operation))
                return False
        return True

    async def _degrade(self, operation: str, message: str) -> None:
        logger.error(
            LogTemplates.PERSIST_DEGRADED, operation, self._retry_attempts, extra={"degraded": True}
        )
        self._state = self._state.evolve(degraded=True)
        await self._publish(PersistenceDegraded(operation=operation, message=message))

    async def _publish(self, event: DomainEvent) -> None:
        await self._bus.publish(event)

    def _take_sequence(self) -> int:
        sequence = self._next_sequence
        self._next_sequence += 1
        return sequence

    def _unique_id(self) -> str:
        """Draw an id not used by the queue, the active song or the history window.

        Ids from the default factory are uuid4 strings, so they also stay clear
        of history entries older than the window. A custom `id_factory` must
        offer the same guarantee for stored history.
        """
        request_id = self._id_factory()
        while self._state.contains(request_id):
            request_id = self._id_factory()
        return request_id

    @staticmethod
    def _blacklist_entry(term: str, kind: BlacklistKind) -> BlacklistEntry:
        term = term.strip()
        if not term:
            raise ValidationError(ErrorMessages.EMPTY_BLACKLIST_TERM, field="term")
        return BlacklistEntry(term=term, kind=kind)


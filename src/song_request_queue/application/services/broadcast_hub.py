"""Fan-out of engine events to connected observers."""

from __future__ import annotations

import asyncio
import logging
from itertools import count
from typing import TYPE_CHECKING

from ...domain.requests.entities import QueueState
from ...domain.requests.events import (
    STATE_EVENTS,
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
from ...domain.shared.exceptions import DomainError, TransportError
from ...domain.shared.messages import ErrorMessages, LogTemplates
from ..protocol import (
    ActiveSongUpdate,
    AllTimeStatsError,
    AllTimeStatsUpdate,
    BlacklistUpdate,
    BlockedUsersUpdate,
    ClientMessage,
    DegradedNotice,
    DeleteMyRequest,
    ErrorReply,
    GetAllTimeStats,
    GetState,
    GetUserHistory,
    HistoryOrderChangedSignal,
    HistoryUpdate,
    InitialState,
    QueueUpdate,
    SettingsUpdate,
    SongFinishedUpdate,
    UserHistoryData,
    WireMessage,
)

if TYPE_CHECKING:
    from ...domain.shared.events import DomainEvent, EventBus
    from .queue_engine import QueueEngine
    from .statistics_service import StatisticsService

logger = logging.getLogger(__name__)


class Observer:
    """One connected client's outbound buffer.

    The buffer is bounded; the hub drops an observer whose buffer fills up
    instead of waiting for it.
    """

    def __init__(self, observer_id: str, buffer_size: int) -> None:
        self.id = observer_id
        self._queue: asyncio.Queue[WireMessage | None] = asyncio.Queue(maxsize=buffer_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, message: WireMessage) -> bool:
        """Buffer a message without waiting. Returns False if the buffer is full."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    async def receive(self) -> WireMessage:
        """Next buffered message.

        Raises:
            TransportError: Once the observer has been closed.
        """
        message = await self._queue.get()
        if message is None:
            raise TransportError(
                ErrorMessages.OBSERVER_BUFFER_FULL.format(observer_id=self.id), observer_id=self.id
            )
        return message

    def pending(self) -> list[WireMessage]:
        """Drain buffered messages without waiting (used by tests and shutdown)."""
        messages: list[WireMessage] = []
        while not self._queue.empty():
            message = self._queue.get_nowait()
            if message is not None:
                messages.append(message)
        return messages

    def close(self) -> None:
        """Discard anything buffered and wake the reader with a terminal marker."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)


class BroadcastHub:
    """Tracks observers, translates engine events, answers observer requests.

    The hub only observes the engine; the one exception is the requester
    self-delete request, which is forwarded to the engine as a command.
    """

    def __init__(
        self,
        *,
        engine: QueueEngine,
        event_bus: EventBus,
        statistics: StatisticsService,
        buffer_size: int = 100,
    ) -> None:
        self._engine = engine
        self._bus = event_bus
        self._statistics = statistics
        self._buffer_size = buffer_size
        self._observers: dict[str, Observer] = {}
        self._ids = count(1)
        self._attached = False

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def attach(self) -> None:
        """Start listening to engine events."""
        if self._attached:
            return
        self._bus.subscribe_all(STATE_EVENTS, self._on_event)
        self._attached = True

    def detach(self) -> None:
        for event_type in STATE_EVENTS:
            self._bus.unsubscribe(event_type, self._on_event)
        self._attached = False

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def connect(self) -> Observer:
        """Register a new observer with `initialState` as its first message.

        Registration and the snapshot happen while the engine holds its
        writer lock, so no event can reach the observer ahead of it.
        """
        observer = Observer(f"obs-{next(self._ids)}", self._buffer_size)

        def register(state: QueueState) -> None:
            observer.offer(InitialState.from_state(state))
            self._observers[observer.id] = observer

        await self._engine.run_exclusive(register)
        logger.info(LogTemplates.OBSERVER_CONNECTED, observer.id, len(self._observers))
        return observer

    def disconnect(self, observer: Observer) -> None:
        """Forget an observer; nothing is kept for a later reconnect."""
        if self._observers.pop(observer.id, None) is not None:
            logger.info(LogTemplates.OBSERVER_DISCONNECTED, observer.id, len(self._observers))
        observer.close()

    def close_all(self) -> None:
        for observer in list(self._observers.values()):
            self.disconnect(observer)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def broadcast(self, message: WireMessage) -> None:
        """Offer a message to every observer; observers that fell behind are dropped."""
        if not self._observers:
            return

        stale: list[Observer] = []
        for observer in list(self._observers.values()):
            if not observer.offer(message):
                stale.append(observer)

        for observer in stale:
            logger.warning(LogTemplates.OBSERVER_DROPPED, observer.id)
            self.disconnect(observer)

        logger.debug(LogTemplates.BROADCAST_SENT, message.type, len(self._observers))

    def send(self, observer: Observer, message: WireMessage) -> None:
        if not observer.offer(message):
            logger.warning(LogTemplates.OBSERVER_DROPPED, observer.id)
            self.disconnect(observer)

    async def _on_event(self, event: DomainEvent) -> None:
        message = self._to_message(event)
        if message is not None:
            self.broadcast(message)

    @staticmethod
    def _to_message(event: DomainEvent) -> WireMessage | None:
        match event:
            case QueueChanged():
                return QueueUpdate(queue=list(event.queue))
            case ActiveSongChanged():
                return ActiveSongUpdate(song=event.song)
            case HistoryChanged():
                return HistoryUpdate(history=list(event.history))
            case HistoryOrderChanged():
                return HistoryOrderChangedSignal()
            case SongFinished():
                return SongFinishedUpdate(song=event.song)
            case SettingsChanged():
                return SettingsUpdate(settings=event.settings)
            case BlacklistChanged():
                return BlacklistUpdate(blacklist=list(event.blacklist))
            case BlockedUsersChanged():
                return BlockedUsersUpdate(blocked_users=list(event.blocked_users))
            case PersistenceDegraded():
                return DegradedNotice(operation=event.operation, message=event.message)
        return None

    # ------------------------------------------------------------------
    # Observer requests
    # ------------------------------------------------------------------

    async def handle(self, observer: Observer, request: ClientMessage) -> None:
        """Answer one observer request. Replies go to that observer only."""
        try:
            match request:
                case GetState():
                    self.send(observer, InitialState.from_state(self._engine.snapshot()))
                case GetAllTimeStats():
                    await self._send_all_time_stats(observer)
                case GetUserHistory():
                    page = await self._statistics.user_history(
                        request.user_login, request.limit, request.offset
                    )
                    self.send(
                        observer,
                        UserHistoryData(history=page.history, total=page.total, offset=page.offset),
                    )
                case DeleteMyRequest():
                    await self._engine.remove_own_request(request.request_id, request.user_login)
        except DomainError as e:
            logger.info(LogTemplates.OBSERVER_REQUEST_FAILED, observer.id, request.type, e.message)
            self.send(observer, ErrorReply(code=e.code, message=e.message))
        except Exception:
            logger.exception(LogTemplates.OBSERVER_REQUEST_CRASHED, observer.id, request.type)
            self.send(observer, ErrorReply(code="INTERNAL_ERROR", message=ErrorMessages.INTERNAL_ERROR))

    async def _send_all_time_stats(self, observer: Observer) -> None:
        try:
            stats = await self._statistics.all_time_stats()
        except DomainError:
            logger.exception(LogTemplates.STATS_REFRESH_FAILED)
            self.send(observer, AllTimeStatsError(message=ErrorMessages.STATS_UNAVAILABLE))
            return
        self.send(observer, AllTimeStatsUpdate(stats=stats))

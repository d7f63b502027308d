"""Periodic statistics pushes to every observer."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from ...domain.requests.events import HistoryChanged, QueueChanged
from ...domain.shared.exceptions import DomainError
from ...domain.shared.messages import ErrorMessages, LogTemplates
from ..protocol import AllTimeStatsError, AllTimeStatsUpdate, TodaysCountUpdate, TotalCountsUpdate

if TYPE_CHECKING:
    from ...domain.shared.events import DomainEvent, EventBus
    from .broadcast_hub import BroadcastHub
    from .statistics_service import StatisticsService

logger = logging.getLogger(__name__)


class StatsBroadcaster:
    """Pushes totals, today's count and all-time stats on a fixed interval.

    Queue and history changes wake the loop early so counts follow the
    engine within one cycle.
    """

    def __init__(
        self,
        *,
        hub: BroadcastHub,
        statistics: StatisticsService,
        event_bus: EventBus,
        interval_s: float = 30.0,
    ) -> None:
        self._hub = hub
        self._statistics = statistics
        self._bus = event_bus
        self._interval_s = interval_s
        self._wake = asyncio.Event()
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.warning(LogTemplates.STATS_BROADCASTER_ALREADY_RUNNING)
            return

        self._running = True
        self._bus.subscribe(QueueChanged, self._on_change)
        self._bus.subscribe(HistoryChanged, self._on_change)
        self._task = asyncio.create_task(self._run_loop())
        logger.info(LogTemplates.STATS_BROADCASTER_STARTED, self._interval_s)

    async def stop(self) -> None:
        self._running = False
        self._bus.unsubscribe(QueueChanged, self._on_change)
        self._bus.unsubscribe(HistoryChanged, self._on_change)

        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        logger.info(LogTemplates.STATS_BROADCASTER_STOPPED)

    def request_refresh(self) -> None:
        self._wake.set()

    async def _on_change(self, event: DomainEvent) -> None:
        self.request_refresh()

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.refresh()
            except Exception:
                logger.exception(LogTemplates.STATS_REFRESH_FAILED)

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=self._interval_s)
            self._wake.clear()

    async def refresh(self) -> None:
        """Compute and push one round of statistics."""
        if self._hub.observer_count == 0:
            return

        counts = await self._statistics.total_counts()
        self._hub.broadcast(TotalCountsUpdate(queue=counts.queue, history=counts.history))
        self._hub.broadcast(TodaysCountUpdate(count=await self._statistics.todays_count()))

        try:
            stats = await self._statistics.all_time_stats()
        except DomainError:
            logger.exception(LogTemplates.STATS_REFRESH_FAILED)
            self._hub.broadcast(AllTimeStatsError(message=ErrorMessages.STATS_UNAVAILABLE))
            return
        self._hub.broadcast(AllTimeStatsUpdate(stats=stats))

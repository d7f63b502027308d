"""Read-side service that feeds the statistics pushes and history lookups."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from ...domain.requests.entities import SongRequest
from ...domain.requests.statistics import (
    AllTimeStats,
    RequestStats,
    TotalCounts,
    compute_all_time_stats,
    compute_request_stats,
    count_completed_today,
)
from ...domain.shared.constants import Pagination
from ...domain.shared.datetime_utils import utcnow
from ...domain.shared.types import NonNegativeInt

if TYPE_CHECKING:
    from ...domain.requests.repository import RequestRepository
    from .queue_engine import QueueEngine


class UserHistoryPage(BaseModel):
    history: list[SongRequest]
    total: NonNegativeInt
    offset: NonNegativeInt

    @property
    def next_offset(self) -> int:
        return self.offset + len(self.history)

    @property
    def is_last(self) -> bool:
        return not self.history or self.next_offset >= self.total


class StatisticsService:
    """Derives counts and aggregates from the engine snapshot and durable history.

    Everything is recomputed on demand; the expected data volumes are small.
    """

    def __init__(
        self,
        *,
        engine: QueueEngine,
        repository: RequestRepository,
        timezone: ZoneInfo,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self._repository = repository
        self._timezone = timezone
        self._clock = clock

    @property
    def timezone(self) -> ZoneInfo:
        return self._timezone

    def queue_stats(self) -> RequestStats:
        return compute_request_stats(self._engine.snapshot().queue)

    async def total_counts(self) -> TotalCounts:
        return TotalCounts(
            queue=len(self._engine.snapshot().queue),
            history=await self._repository.count_history(),
        )

    async def todays_count(self) -> int:
        history = await self._repository.get_all_history()
        return count_completed_today(history, self._clock(), self._timezone)

    async def all_time_stats(self) -> AllTimeStats:
        return compute_all_time_stats(await self._repository.get_all_history())

    async def history_stats(self) -> RequestStats:
        return compute_request_stats(await self._repository.get_all_history())

    async def user_history(self, user_login: str, limit: int, offset: int) -> UserHistoryPage:
        """One page of a requester's history, most recent first.

        An empty page means there is nothing after `offset`.
        """
        limit = min(max(limit, 1), Pagination.MAX_LIMIT)
        offset = max(offset, 0)
        history, total = await self._repository.get_history_page(user_login.lower(), limit, offset)
        return UserHistoryPage(history=history, total=total, offset=offset)

"""Application services."""

from song_request_queue.application.services.broadcast_hub import BroadcastHub, Observer
from song_request_queue.application.services.ingestion_service import (
    IngestionService,
    SongSubmission,
)
from song_request_queue.application.services.queue_engine import QueueEngine
from song_request_queue.application.services.queue_models import SubmitResult
from song_request_queue.application.services.statistics_service import (
    StatisticsService,
    UserHistoryPage,
)
from song_request_queue.application.services.stats_broadcaster import StatsBroadcaster

__all__ = [
    "QueueEngine",
    "SubmitResult",
    "BroadcastHub",
    "Observer",
    "StatisticsService",
    "UserHistoryPage",
    "StatsBroadcaster",
    "IngestionService",
    "SongSubmission",
]

"""SQLite repository implementations."""

from song_request_queue.infrastructure.persistence.repositories.metadata_cache_repository import (
    SQLiteMetadataCacheRepository,
)
from song_request_queue.infrastructure.persistence.repositories.request_repository import (
    SQLiteRequestRepository,
)

__all__ = [
    "SQLiteRequestRepository",
    "SQLiteMetadataCacheRepository",
]

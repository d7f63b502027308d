"""
Song Request Context

Request entities, queue ordering, admission policy and statistics.
"""

from song_request_queue.domain.requests.entities import (
    BlacklistEntry,
    QueueState,
    RequestDraft,
    RuntimeSettings,
    SongMetadata,
    SongRequest,
)
from song_request_queue.domain.requests.policies import RequestPolicy
from song_request_queue.domain.requests.repository import (
    MetadataCacheRepository,
    RequestRepository,
    StoredState,
)
from song_request_queue.domain.requests.value_objects import BlacklistKind, Priority, RequestType

__all__ = [
    # Entities
    "SongRequest",
    "RequestDraft",
    "BlacklistEntry",
    "SongMetadata",
    "RuntimeSettings",
    "QueueState",
    # Value Objects
    "RequestType",
    "Priority",
    "BlacklistKind",
    # Policy
    "RequestPolicy",
    # Repositories
    "RequestRepository",
    "MetadataCacheRepository",
    "StoredState",
]

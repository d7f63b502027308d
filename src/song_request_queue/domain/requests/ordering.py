"""Queue ordering rules.

The queue is always sorted by (priority desc, submitted_at asc, sequence asc).
The sequence number is assigned monotonically by the engine, so the order is
a strict total order even when two requests share priority and timestamp.
"""

from __future__ import annotations

from bisect import insort
from collections.abc import Sequence

from song_request_queue.domain.requests.entities import SongRequest


def sort_key(request: SongRequest) -> tuple:
    return request.sort_key


def insert_ordered(queue: Sequence[SongRequest], request: SongRequest) -> tuple[SongRequest, ...]:
    """Return a new queue with `request` placed at its ordered position."""
    items = list(queue)
    insort(items, request, key=sort_key)
    return tuple(items)


def sort_queue(requests: Sequence[SongRequest]) -> tuple[SongRequest, ...]:
    return tuple(sorted(requests, key=sort_key))


def is_ordered(queue: Sequence[SongRequest]) -> bool:
    return all(sort_key(a) < sort_key(b) for a, b in zip(queue, queue[1:]))


def pop_next(queue: Sequence[SongRequest]) -> tuple[SongRequest | None, tuple[SongRequest, ...]]:
    """Split off the highest-priority, earliest request."""
    if not queue:
        return None, ()
    return queue[0], tuple(queue[1:])


def without(queue: Sequence[SongRequest], request_id: str) -> tuple[SongRequest, ...]:
    return tuple(r for r in queue if r.id != request_id)


def queue_position(queue: Sequence[SongRequest], request_id: str) -> int | None:
    """One-based position of a request, or None if it is not queued."""
    for index, request in enumerate(queue, start=1):
        if request.id == request_id:
            return index
    return None

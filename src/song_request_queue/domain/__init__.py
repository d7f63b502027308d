"""
Domain Layer

Contains pure business logic:
- shared/: Types, events and the error taxonomy
- requests/: Song requests, queue ordering, admission policy and statistics
"""

from song_request_queue.domain.shared.exceptions import DomainError

__all__ = [
    "DomainError",
]

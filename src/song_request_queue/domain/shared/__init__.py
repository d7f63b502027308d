"""
Shared Domain Kernel

Contains types, events and the error taxonomy shared across the package.
"""

from song_request_queue.domain.shared.exceptions import (
    DomainError,
    NotFound,
    PersistenceError,
    PolicyRejection,
    TransportError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "ValidationError",
    "PolicyRejection",
    "PersistenceError",
    "TransportError",
    "NotFound",
]

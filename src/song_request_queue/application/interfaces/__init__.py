"""
Application Interfaces (Ports)

Abstract interfaces that define contracts between the application
layer and infrastructure adapters.
"""

from song_request_queue.application.interfaces.metadata_resolver import MetadataResolver

__all__ = [
    "MetadataResolver",
]

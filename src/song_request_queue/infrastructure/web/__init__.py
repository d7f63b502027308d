"""HTTP/WebSocket surface and the observer client."""

from song_request_queue.infrastructure.web.client import QueueObserverClient, ReconnectPolicy
from song_request_queue.infrastructure.web.server import create_app

__all__ = ["create_app", "QueueObserverClient", "ReconnectPolicy"]

"""Port interface for looking up video details before a request is queued."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from song_request_queue.domain.shared.types import HttpUrlStr, NonEmptyStr

if TYPE_CHECKING:
    from ...domain.requests.entities import SongMetadata


class MetadataResolver(ABC):
    """Interface for fetching title, channel, duration and thumbnail of a video."""

    @abstractmethod
    async def resolve(self, video_id: NonEmptyStr, url: HttpUrlStr) -> "SongMetadata | None":
        """Look up a video; None when the platform has no usable answer."""
        ...

    async def close(self) -> None:
        """Release network resources held by the resolver."""
        return None

"""Video metadata lookup through the YouTube oEmbed endpoint."""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel

from song_request_queue.application.interfaces.metadata_resolver import MetadataResolver
from song_request_queue.domain.requests.entities import SongMetadata
from song_request_queue.domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

OEMBED_URL = "https://www.youtube.com/oembed"
OEMBED_TIMEOUT: float = 8.0


class OEmbedResponse(BaseModel):
    """Subset of the oEmbed payload we use."""

    title: str
    author_name: str | None = None
    thumbnail_url: str | None = None

    def to_domain(self, video_id: str) -> SongMetadata:
        return SongMetadata(
            video_id=video_id,
            title=self.title[:500] or video_id,
            channel_name=self.author_name or None,
            thumbnail_url=self.thumbnail_url,
        )


class OEmbedMetadataResolver(MetadataResolver):
    """Title, channel and thumbnail from oEmbed.

    oEmbed does not report durations, so `duration_seconds` stays unknown and
    duration limits only apply to requests whose duration was supplied.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = OEMBED_TIMEOUT) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    async def resolve(self, video_id: str, url: str) -> SongMetadata | None:
        canonical = f"https://www.youtube.com/watch?v={video_id}"
        try:
            response = await self._get_client().get(
                OEMBED_URL, params={"url": canonical, "format": "json"}
            )
            response.raise_for_status()
            payload = OEmbedResponse.model_validate(response.json())
            return payload.to_domain(video_id)
        except (httpx.HTTPError, ValueError) as e:
            # pydantic.ValidationError is a ValueError
            logger.warning(LogTemplates.METADATA_LOOKUP_FAILED, video_id, e)
            return None

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

"""Turns raw donation / channel-point submissions into queue requests.

All network lookups happen here, before the engine is called, so a slow
metadata service never holds up the queue and a cancelled lookup never
leaves a half-created entry behind.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ...domain.requests.entities import RequestDraft, SongMetadata
from ...domain.requests.value_objects import RequestType, extract_video_id
from ...domain.shared.exceptions import ValidationError
from ...domain.shared.messages import ErrorMessages, LogTemplates
from .queue_models import SubmitResult

if TYPE_CHECKING:
    from ...domain.requests.repository import MetadataCacheRepository
    from ..interfaces.metadata_resolver import MetadataResolver
    from .queue_engine import QueueEngine

logger = logging.getLogger(__name__)


class SongSubmission(BaseModel):
    """A request as it arrives from a donation or channel-point integration."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    song_link: str
    requester: str
    requester_login: str | None = None
    request_type: RequestType
    title: str | None = None
    submitted_at: datetime | None = None


class IngestionService:
    def __init__(
        self,
        *,
        engine: QueueEngine,
        resolver: MetadataResolver | None = None,
        cache_repository: MetadataCacheRepository | None = None,
    ) -> None:
        self._engine = engine
        self._resolver = resolver
        self._cache = cache_repository

    async def submit(self, submission: SongSubmission) -> SubmitResult:
        """Validate, enrich and hand a submission to the engine."""
        if not submission.song_link.startswith(("http://", "https://")):
            return SubmitResult.reject(ValidationError(ErrorMessages.INVALID_SONG_LINK, field="song_link"))

        metadata = await self.lookup(submission.song_link)

        try:
            draft = self._build_draft(submission, metadata)
        except ValidationError as e:
            return SubmitResult.reject(e)

        return await self._engine.submit(draft)

    async def lookup(self, url: str) -> SongMetadata | None:
        """Cached metadata for a link, falling back to the resolver."""
        video_id = extract_video_id(url)
        if video_id is None:
            return None

        if self._cache is not None:
            cached = await self._cache.get(video_id)
            if cached is not None:
                logger.debug(LogTemplates.METADATA_CACHE_HIT, video_id)
                return cached

        if self._resolver is None:
            return None

        metadata = await self._resolver.resolve(video_id, url)
        if metadata is not None and self._cache is not None:
            await self._cache.save(metadata)
        return metadata

    @staticmethod
    def _build_draft(submission: SongSubmission, metadata: SongMetadata | None) -> RequestDraft:
        title = submission.title or (metadata.title if metadata else None) or submission.song_link
        login = submission.requester_login or submission.requester
        try:
            return RequestDraft(
                title=title[:500],
                song_link=submission.song_link,
                requester=submission.requester.strip(),
                requester_login=login.strip(),
                request_type=submission.request_type,
                submitted_at=submission.submitted_at,
                duration_seconds=metadata.duration_seconds if metadata else None,
                thumbnail_url=metadata.thumbnail_url if metadata else None,
                channel_name=metadata.channel_name if metadata else None,
            )
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or None
            raise ValidationError(f"{field}: {first['msg']}", field=field) from e

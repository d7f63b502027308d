"""SQLite-backed cache of looked-up video metadata."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aiosqlite

from song_request_queue.domain.requests.entities import SongMetadata
from song_request_queue.domain.requests.repository import MetadataCacheRepository
from song_request_queue.domain.shared.datetime_utils import UtcDateTime
from song_request_queue.domain.shared.exceptions import PersistenceError

if TYPE_CHECKING:
    from ..database import Database

logger = logging.getLogger(__name__)


class SQLiteMetadataCacheRepository(MetadataCacheRepository):
    def __init__(self, database: Database) -> None:
        self._db = database

    async def get(self, video_id: str) -> SongMetadata | None:
        try:
            row = await self._db.fetch_one(
                """
                SELECT video_id, title, channel_name, duration_seconds, thumbnail_url
                FROM metadata_cache WHERE video_id = ?
                """,
                (video_id,),
            )
        except aiosqlite.Error as e:
            raise PersistenceError("metadata read") from e

        if row is None:
            return None
        return SongMetadata(**row)

    async def save(self, metadata: SongMetadata) -> None:
        try:
            await self._db.execute(
                """
                INSERT INTO metadata_cache (
                    video_id, title, channel_name, duration_seconds, thumbnail_url, fetched_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(video_id) DO UPDATE SET
                    title = excluded.title,
                    channel_name = excluded.channel_name,
                    duration_seconds = excluded.duration_seconds,
                    thumbnail_url = excluded.thumbnail_url,
                    fetched_at = excluded.fetched_at
                """,
                (
                    metadata.video_id,
                    metadata.title,
                    metadata.channel_name,
                    metadata.duration_seconds,
                    metadata.thumbnail_url,
                    UtcDateTime.now().iso,
                ),
            )
        except aiosqlite.Error as e:
            raise PersistenceError("metadata write") from e
        logger.debug("Cached metadata for %s", metadata.video_id)

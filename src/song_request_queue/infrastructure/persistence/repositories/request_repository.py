"""SQLite implementation of the request repository."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import aiosqlite

from song_request_queue.domain.requests.entities import BlacklistEntry, SongRequest
from song_request_queue.domain.requests.repository import RequestRepository, StoredState
from song_request_queue.domain.requests.value_objects import BlacklistKind, Priority, RequestType
from song_request_queue.domain.shared.datetime_utils import UtcDateTime
from song_request_queue.domain.shared.exceptions import PersistenceError
from song_request_queue.domain.shared.messages import ErrorMessages

if TYPE_CHECKING:
    from ..database import Database

logger = logging.getLogger(__name__)

_REQUEST_COLUMNS = (
    "id, title, song_link, requester, requester_login, request_type, priority, "
    "submitted_at, sequence, duration_seconds, thumbnail_url, channel_name"
)

_HISTORY_ORDER = "ORDER BY sort_order DESC, completed_at DESC"


@asynccontextmanager
async def _guard(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except aiosqlite.Error as e:
        logger.error("SQLite error during %s: %s", operation, e)
        raise PersistenceError(operation, ErrorMessages.PERSISTENCE_FAILED.format(operation=operation)) from e


class SQLiteRequestRepository(RequestRepository):
    def __init__(self, database: Database) -> None:
        self._db = database

    async def load_state(self, history_window: int) -> StoredState:
        async with _guard("load state"):
            queue_rows = await self._db.fetch_all(
                f"SELECT {_REQUEST_COLUMNS}, is_active FROM queued_requests ORDER BY sequence ASC"
            )
            history_rows = await self._db.fetch_all(
                f"SELECT {_REQUEST_COLUMNS}, completed_at FROM song_history {_HISTORY_ORDER} LIMIT ?",
                (history_window,),
            )
            settings_rows = await self._db.fetch_all("SELECT key, value FROM settings")
            blacklist_rows = await self._db.fetch_all("SELECT term, kind FROM blacklist ORDER BY rowid")
            blocked_rows = await self._db.fetch_all("SELECT login FROM blocked_users ORDER BY login")

        state = StoredState(
            history=[self._row_to_request(row) for row in history_rows],
            settings={row["key"]: json.loads(row["value"]) for row in settings_rows},
            blacklist=[
                BlacklistEntry(term=row["term"], kind=BlacklistKind(row["kind"])) for row in blacklist_rows
            ],
            blocked_users=[row["login"] for row in blocked_rows],
        )
        for row in queue_rows:
            request = self._row_to_request(row)
            if row["is_active"]:
                state.active_song = request
            else:
                state.queue.append(request)
        return state

    async def persist_queue_insert(self, request: SongRequest) -> None:
        async with _guard("queue insert"), self._db.transaction() as conn:
            await self._upsert_user(conn, request)
            await conn.execute(
                f"""
                INSERT INTO queued_requests ({_REQUEST_COLUMNS}, is_active)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
                """,
                self._request_params(request),
            )

    async def persist_queue_remove(self, request_id: str) -> None:
        async with _guard("queue remove"):
            await self._db.execute(
                "DELETE FROM queued_requests WHERE id = ? AND is_active = 0", (request_id,)
            )

    async def persist_queue_priority(self, request_id: str, priority: Priority) -> None:
        async with _guard("queue priority"):
            await self._db.execute(
                "UPDATE queued_requests SET priority = ? WHERE id = ? AND is_active = 0",
                (int(priority), request_id),
            )

    async def persist_queue_clear(self) -> None:
        async with _guard("queue clear"):
            await self._db.execute("DELETE FROM queued_requests WHERE is_active = 0")

    async def persist_active_song(self, request: SongRequest | None) -> None:
        async with _guard("active song"), self._db.transaction() as conn:
            await conn.execute("DELETE FROM queued_requests WHERE is_active = 1")
            if request is not None:
                await conn.execute(
                    f"""
                    INSERT OR REPLACE INTO queued_requests ({_REQUEST_COLUMNS}, is_active)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
                    """,
                    self._request_params(request),
                )

    async def persist_history_append(self, request: SongRequest) -> None:
        completed_at = request.completed_at or UtcDateTime.now().dt
        async with _guard("history append"), self._db.transaction() as conn:
            await self._upsert_user(conn, request)
            await conn.execute(
                f"""
                INSERT OR REPLACE INTO song_history ({_REQUEST_COLUMNS}, completed_at, sort_order)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                        (SELECT COALESCE(MAX(sort_order), 0) + 1 FROM song_history))
                """,
                (*self._request_params(request), UtcDateTime(completed_at).iso),
            )

    async def persist_history_order(self, request_ids: list[str]) -> None:
        if not request_ids:
            return
        placeholders = ", ".join("?" for _ in request_ids)
        async with _guard("history order"), self._db.transaction() as conn:
            cursor = await conn.execute(
                f"SELECT sort_order FROM song_history WHERE id IN ({placeholders}) "
                "ORDER BY sort_order DESC",
                tuple(request_ids),
            )
            slots = [row[0] for row in await cursor.fetchall()]
            for request_id, slot in zip(request_ids, slots):
                await conn.execute(
                    "UPDATE song_history SET sort_order = ? WHERE id = ?", (slot, request_id)
                )

    async def persist_history_delete(self, request_id: str) -> bool:
        async with _guard("history delete"):
            changed = await self._db.execute("DELETE FROM song_history WHERE id = ?", (request_id,))
        return changed > 0

    async def persist_history_clear(self) -> None:
        async with _guard("history clear"):
            await self._db.execute("DELETE FROM song_history")

    async def persist_settings_change(self, key: str, value: Any) -> None:
        async with _guard(f"setting {key}"):
            await self._db.execute(
                """
                INSERT INTO settings (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, json.dumps(value)),
            )

    async def persist_blacklist_add(self, entry: BlacklistEntry) -> None:
        async with _guard("blacklist add"):
            await self._db.execute(
                "INSERT OR IGNORE INTO blacklist (term, kind) VALUES (?, ?)",
                (entry.term, entry.kind.value),
            )

    async def persist_blacklist_remove(self, entry: BlacklistEntry) -> None:
        async with _guard("blacklist remove"):
            await self._db.execute(
                "DELETE FROM blacklist WHERE term = ? AND kind = ?", (entry.term, entry.kind.value)
            )

    async def persist_blocked_user_add(self, login: str) -> None:
        async with _guard("blocked user add"):
            await self._db.execute(
                "INSERT OR IGNORE INTO blocked_users (login, blocked_at) VALUES (?, ?)",
                (login.lower(), UtcDateTime.now().iso),
            )

    async def persist_blocked_user_remove(self, login: str) -> None:
        async with _guard("blocked user remove"):
            await self._db.execute("DELETE FROM blocked_users WHERE login = ?", (login.lower(),))

    async def get_history_page(
        self, requester_login: str | None, limit: int, offset: int
    ) -> tuple[list[SongRequest], int]:
        where = "WHERE requester_login = ?" if requester_login is not None else ""
        params: tuple[Any, ...] = (requester_login.lower(),) if requester_login is not None else ()

        async with _guard("history page"):
            total_row = await self._db.fetch_one(
                f"SELECT COUNT(*) AS total FROM song_history {where}", params
            )
            rows = await self._db.fetch_all(
                f"""
                SELECT {_REQUEST_COLUMNS}, completed_at FROM song_history {where}
                ORDER BY completed_at DESC LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            )
        total = total_row["total"] if total_row else 0
        return [self._row_to_request(row) for row in rows], total

    async def get_all_history(self) -> list[SongRequest]:
        async with _guard("history read"):
            rows = await self._db.fetch_all(
                f"SELECT {_REQUEST_COLUMNS}, completed_at FROM song_history ORDER BY completed_at DESC"
            )
        return [self._row_to_request(row) for row in rows]

    async def count_history(self) -> int:
        async with _guard("history count"):
            row = await self._db.fetch_one("SELECT COUNT(*) AS total FROM song_history")
        return row["total"] if row else 0

    async def _upsert_user(self, conn: aiosqlite.Connection, request: SongRequest) -> None:
        now = UtcDateTime.now().iso
        await conn.execute(
            """
            INSERT INTO users (login, display_name, first_seen_at, last_seen_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(login) DO UPDATE SET
                display_name = excluded.display_name,
                last_seen_at = excluded.last_seen_at
            """,
            (request.requester_login, request.requester, now, now),
        )

    @staticmethod
    def _request_params(request: SongRequest) -> tuple[Any, ...]:
        return (
            request.id,
            request.title,
            request.song_link,
            request.requester,
            request.requester_login,
            request.request_type.value,
            int(request.priority),
            UtcDateTime(request.submitted_at).iso,
            request.sequence,
            request.duration_seconds,
            request.thumbnail_url,
            request.channel_name,
        )

    @staticmethod
    def _row_to_request(row: dict[str, Any]) -> SongRequest:
        completed_at = row.get("completed_at")
        return SongRequest(
            id=row["id"],
            title=row["title"],
            song_link=row["song_link"],
            requester=row["requester"],
            requester_login=row["requester_login"],
            request_type=RequestType(row["request_type"]),
            priority=Priority(row["priority"]),
            submitted_at=UtcDateTime.from_iso(row["submitted_at"]).dt,
            sequence=row["sequence"],
            duration_seconds=row["duration_seconds"],
            thumbnail_url=row["thumbnail_url"],
            channel_name=row["channel_name"],
            completed_at=UtcDateTime.from_iso(completed_at).dt if completed_at else None,
        )

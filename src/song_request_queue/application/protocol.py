"""Push-channel message set.

Every message on the wire is a JSON object with a ``type`` discriminator and
camelCase fields. Server messages and client requests are closed unions, so an
unknown ``type`` is rejected at the boundary instead of being passed along.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from ..domain.requests.entities import BlacklistEntry, QueueState, SongRequest
from ..domain.requests.statistics import AllTimeStats
from ..domain.shared.constants import Pagination
from ..domain.shared.types import LoginStr, NonEmptyStr, NonNegativeInt


class WireMessage(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# ── Server → observer ───────────────────────────────────────────────


class InitialState(WireMessage):
    type: Literal["initialState"] = "initialState"
    queue: list[SongRequest]
    active_song: SongRequest | None = None
    history: list[SongRequest]
    settings: dict[str, Any]
    blacklist: list[BlacklistEntry] = []
    blocked_users: list[str] = []
    degraded: bool = False

    @classmethod
    def from_state(cls, state: QueueState) -> InitialState:
        return cls(
            queue=list(state.queue),
            active_song=state.active_song,
            history=list(state.history),
            settings=state.settings.model_dump(),
            blacklist=list(state.blacklist),
            blocked_users=sorted(state.blocked_users),
            degraded=state.degraded,
        )


class QueueUpdate(WireMessage):
    type: Literal["queueUpdate"] = "queueUpdate"
    queue: list[SongRequest]


class ActiveSongUpdate(WireMessage):
    type: Literal["activeSong"] = "activeSong"
    song: SongRequest | None = None


class HistoryUpdate(WireMessage):
    type: Literal["historyUpdate"] = "historyUpdate"
    history: list[SongRequest]


class HistoryOrderChangedSignal(WireMessage):
    type: Literal["historyOrderChanged"] = "historyOrderChanged"


class SongFinishedUpdate(WireMessage):
    type: Literal["songFinished"] = "songFinished"
    song: SongRequest


class SettingsUpdate(WireMessage):
    type: Literal["settingsUpdate"] = "settingsUpdate"
    settings: dict[str, Any]


class BlacklistUpdate(WireMessage):
    type: Literal["blacklistUpdate"] = "blacklistUpdate"
    blacklist: list[BlacklistEntry]


class BlockedUsersUpdate(WireMessage):
    type: Literal["blockedUsersUpdate"] = "blockedUsersUpdate"
    blocked_users: list[str]


class TotalCountsUpdate(WireMessage):
    type: Literal["totalCountsUpdate"] = "totalCountsUpdate"
    queue: NonNegativeInt
    history: NonNegativeInt


class TodaysCountUpdate(WireMessage):
    type: Literal["todaysCountUpdate"] = "todaysCountUpdate"
    count: NonNegativeInt


class AllTimeStatsUpdate(WireMessage):
    type: Literal["allTimeStatsUpdate"] = "allTimeStatsUpdate"
    stats: AllTimeStats


class AllTimeStatsError(WireMessage):
    type: Literal["allTimeStatsError"] = "allTimeStatsError"
    message: str


class UserHistoryData(WireMessage):
    type: Literal["userHistoryData"] = "userHistoryData"
    history: list[SongRequest]
    total: NonNegativeInt
    offset: NonNegativeInt


class DegradedNotice(WireMessage):
    type: Literal["degraded"] = "degraded"
    operation: str
    message: str


class ErrorReply(WireMessage):
    """Sent only to the observer whose request failed."""

    type: Literal["error"] = "error"
    code: str
    message: str


ServerMessage = Annotated[
    InitialState
    | QueueUpdate
    | ActiveSongUpdate
    | HistoryUpdate
    | HistoryOrderChangedSignal
    | SongFinishedUpdate
    | SettingsUpdate
    | BlacklistUpdate
    | BlockedUsersUpdate
    | TotalCountsUpdate
    | TodaysCountUpdate
    | AllTimeStatsUpdate
    | AllTimeStatsError
    | UserHistoryData
    | DegradedNotice
    | ErrorReply,
    Field(discriminator="type"),
]


# ── Observer → server ───────────────────────────────────────────────


class GetState(WireMessage):
    type: Literal["getState"] = "getState"


class GetAllTimeStats(WireMessage):
    type: Literal["getAllTimeStats"] = "getAllTimeStats"


class GetUserHistory(WireMessage):
    type: Literal["getUserHistory"] = "getUserHistory"
    user_login: LoginStr
    limit: int = Pagination.DEFAULT_LIMIT
    offset: int = 0


class DeleteMyRequest(WireMessage):
    type: Literal["deleteMyRequest"] = "deleteMyRequest"
    request_id: NonEmptyStr
    user_login: LoginStr


ClientMessage = Annotated[
    GetState | GetAllTimeStats | GetUserHistory | DeleteMyRequest,
    Field(discriminator="type"),
]

server_message_adapter: TypeAdapter[ServerMessage] = TypeAdapter(ServerMessage)
client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(raw: str | bytes) -> ClientMessage:
    """Parse one observer request; raises pydantic.ValidationError if malformed."""
    return client_message_adapter.validate_json(raw)


def parse_server_message(raw: str | bytes) -> ServerMessage:
    return server_message_adapter.validate_json(raw)

"""FastAPI application exposing the control surface and the push channel.

Control endpoints are thin: each one calls a single engine / service operation
and maps domain errors to HTTP status codes. ``/ws`` is the observer channel,
it starts with ``initialState`` and then relays whatever the hub buffers.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ...application.protocol import ErrorReply, InitialState, parse_client_message
from ...application.services.ingestion_service import SongSubmission
from ...application.services.queue_models import SubmitResult
from ...domain.requests.entities import SongRequest
from ...domain.requests.statistics import AllTimeStats, RequestStats, TotalCounts
from ...domain.requests.value_objects import BlacklistKind, Priority
from ...domain.shared.exceptions import (
    DomainError,
    NotFound,
    PersistenceError,
    PolicyRejection,
    TransportError,
    ValidationError,
)
from ...domain.shared.messages import ErrorMessages

if TYPE_CHECKING:
    from ...application.services.broadcast_hub import BroadcastHub, Observer
    from ...application.services.ingestion_service import IngestionService
    from ...application.services.queue_engine import QueueEngine
    from ...application.services.statistics_service import StatisticsService
    from ...config.container import Container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["queue"])


# ============================================
# Request / Response Models
# ============================================


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubmitResponse(ApiModel):
    accepted: bool
    request: SongRequest | None = None
    position: int = 0
    queue_length: int = 0
    code: str | None = None
    reason: str | None = None

    @classmethod
    def from_result(cls, result: SubmitResult) -> SubmitResponse:
        return cls(
            accepted=result.accepted,
            request=result.request,
            position=result.position,
            queue_length=result.queue_length,
            code=result.error.code if result.error else None,
            reason=result.reason or None,
        )


class FinishRequest(ApiModel):
    request_id: str


class QueuePriority(ApiModel):
    priority: Priority = Priority.OVERRIDE


class HistoryOrderRequest(ApiModel):
    ordered_ids: list[str]


class SettingValue(ApiModel):
    value: Any


class BlacklistTerm(ApiModel):
    term: str
    kind: BlacklistKind = BlacklistKind.SONG


class BlockedUser(ApiModel):
    login: str


class StatsResponse(ApiModel):
    queue: RequestStats
    history: RequestStats
    totals: TotalCounts
    todays_count: int
    all_time: AllTimeStats


class UserHistoryResponse(ApiModel):
    history: list[SongRequest]
    total: int
    offset: int
    next_offset: int
    is_last: bool


# ============================================
# Dependencies
# ============================================


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_engine(container: Container = Depends(get_container)) -> QueueEngine:
    return container.engine


def get_statistics(container: Container = Depends(get_container)) -> StatisticsService:
    return container.statistics


def get_ingestion(container: Container = Depends(get_container)) -> IngestionService:
    return container.ingestion


def status_for(error: DomainError) -> int:
    match error:
        case NotFound():
            return 404
        case PolicyRejection(rule="ownership"):
            return 403
        case PolicyRejection():
            return 409
        case ValidationError():
            return 422
        case PersistenceError() | TransportError():
            return 503
    return 400


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=status_for(exc),
        content={"code": exc.code, "message": exc.message},
    )


# ============================================
# Routes
# ============================================


@router.get("/state", response_model=InitialState)
async def get_state(engine: QueueEngine = Depends(get_engine)) -> InitialState:
    return InitialState.from_state(engine.snapshot())


@router.get("/stats", response_model=StatsResponse)
async def get_stats(statistics: StatisticsService = Depends(get_statistics)) -> StatsResponse:
    return StatsResponse(
        queue=statistics.queue_stats(),
        history=await statistics.history_stats(),
        totals=await statistics.total_counts(),
        todays_count=await statistics.todays_count(),
        all_time=await statistics.all_time_stats(),
    )


@router.post("/requests", response_model=SubmitResponse, status_code=201)
async def submit_request(
    submission: SongSubmission,
    ingestion: IngestionService = Depends(get_ingestion),
) -> Any:
    result = await ingestion.submit(submission)
    response = SubmitResponse.from_result(result)
    if result.accepted:
        return response
    return JSONResponse(
        status_code=status_for(result.error) if result.error else 400,
        content=response.model_dump(mode="json", by_alias=True),
    )


@router.post("/queue/advance")
async def advance_queue(engine: QueueEngine = Depends(get_engine)) -> dict[str, Any]:
    song = await engine.advance()
    return {"activeSong": song.model_dump(mode="json", by_alias=True) if song else None}


@router.post("/queue/finish")
async def finish_active(
    body: FinishRequest, engine: QueueEngine = Depends(get_engine)
) -> dict[str, bool]:
    return {"finished": await engine.finish_active(body.request_id)}


@router.delete("/queue/{request_id}")
async def remove_from_queue(
    request_id: str, engine: QueueEngine = Depends(get_engine)
) -> dict[str, str]:
    removed = await engine.remove_from_queue(request_id)
    return {"removed": removed.id}


@router.put("/queue/{request_id}/priority", response_model=SongRequest)
async def set_queue_priority(
    request_id: str, body: QueuePriority, engine: QueueEngine = Depends(get_engine)
) -> SongRequest:
    return await engine.set_queue_priority(request_id, body.priority)


@router.delete("/queue/{request_id}/mine")
async def remove_own_request(
    request_id: str,
    login: str = Query(..., min_length=1),
    engine: QueueEngine = Depends(get_engine),
) -> dict[str, str]:
    removed = await engine.remove_own_request(request_id, login)
    return {"removed": removed.id}


@router.post("/queue/clear")
async def clear_queue(engine: QueueEngine = Depends(get_engine)) -> dict[str, int]:
    return {"cleared": await engine.clear_queue()}


@router.post("/reset", status_code=204)
async def reset(engine: QueueEngine = Depends(get_engine)) -> None:
    await engine.reset()


@router.post("/history/{request_id}/requeue", response_model=SongRequest, status_code=201)
async def requeue_from_history(
    request_id: str, engine: QueueEngine = Depends(get_engine)
) -> SongRequest:
    return await engine.requeue_from_history(request_id)


@router.put("/history/order", status_code=204)
async def reorder_history(
    body: HistoryOrderRequest, engine: QueueEngine = Depends(get_engine)
) -> None:
    await engine.reorder_history(body.ordered_ids)


@router.delete("/history/{request_id}", status_code=204)
async def delete_history_item(request_id: str, engine: QueueEngine = Depends(get_engine)) -> None:
    await engine.delete_history_item(request_id)


@router.delete("/history", status_code=204)
async def clear_history(engine: QueueEngine = Depends(get_engine)) -> None:
    await engine.clear_history()


@router.get("/history/user/{login}", response_model=UserHistoryResponse)
async def user_history(
    login: str,
    limit: int = 20,
    offset: int = 0,
    statistics: StatisticsService = Depends(get_statistics),
) -> UserHistoryResponse:
    page = await statistics.user_history(login, limit, offset)
    return UserHistoryResponse(
        history=page.history,
        total=page.total,
        offset=page.offset,
        next_offset=page.next_offset,
        is_last=page.is_last,
    )


@router.put("/settings/{key}")
async def set_setting(
    key: str, body: SettingValue, engine: QueueEngine = Depends(get_engine)
) -> dict[str, Any]:
    settings = await engine.set_setting(key, body.value)
    return settings.model_dump()


@router.post("/blacklist", status_code=204)
async def add_blacklist_term(body: BlacklistTerm, engine: QueueEngine = Depends(get_engine)) -> None:
    await engine.add_blacklist_term(body.term, body.kind)


@router.delete("/blacklist/{kind}/{term}", status_code=204)
async def remove_blacklist_term(
    kind: BlacklistKind, term: str, engine: QueueEngine = Depends(get_engine)
) -> None:
    await engine.remove_blacklist_term(term, kind)


@router.post("/blocked-users", status_code=204)
async def block_user(body: BlockedUser, engine: QueueEngine = Depends(get_engine)) -> None:
    await engine.block_user(body.login)


@router.delete("/blocked-users/{login}", status_code=204)
async def unblock_user(login: str, engine: QueueEngine = Depends(get_engine)) -> None:
    await engine.unblock_user(login)


# ============================================
# Push channel
# ============================================


async def observer_channel(websocket: WebSocket) -> None:
    container: Container = websocket.app.state.container
    hub = container.hub

    await websocket.accept()
    observer = await hub.connect()
    send_task = asyncio.create_task(observer.receive())
    receive_task = asyncio.create_task(websocket.receive())
    try:
        while True:
            done, _ = await asyncio.wait(
                {send_task, receive_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if send_task in done:
                try:
                    message = send_task.result()
                except TransportError:
                    # dropped for falling behind
                    await websocket.close(code=1013)
                    break
                await websocket.send_text(message.to_json())
                send_task = asyncio.create_task(observer.receive())
            if receive_task in done:
                frame = receive_task.result()
                if frame["type"] == "websocket.disconnect":
                    break
                await _handle_incoming(hub, observer, frame.get("text"))
                receive_task = asyncio.create_task(websocket.receive())
    except WebSocketDisconnect:
        pass
    finally:
        send_task.cancel()
        receive_task.cancel()
        with contextlib.suppress(Exception):
            await asyncio.gather(send_task, receive_task, return_exceptions=True)
        hub.disconnect(observer)


async def _handle_incoming(hub: BroadcastHub, observer: Observer, raw: str | None) -> None:
    if raw is None:
        # binary frame
        hub.send(observer, ErrorReply(code="MALFORMED_MESSAGE", message=ErrorMessages.MALFORMED_MESSAGE))
        return
    try:
        request = parse_client_message(raw)
    except PydanticValidationError:
        hub.send(observer, ErrorReply(code="MALFORMED_MESSAGE", message=ErrorMessages.MALFORMED_MESSAGE))
        return
    await hub.handle(observer, request)


# ============================================
# Application factory
# ============================================


def create_app(container: Container) -> FastAPI:
    """Build the FastAPI app around an (uninitialized) container."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await container.initialize()
        try:
            yield
        finally:
            await container.shutdown()

    app = FastAPI(title="Song Request Queue", lifespan=lifespan)
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(container.settings.server.cors_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(DomainError, domain_error_handler)  # type: ignore[arg-type]

    @app.get("/health")
    async def health() -> dict[str, Any]:
        engine = container.engine
        return {
            "status": "degraded" if engine.degraded else "ok",
            "observers": container.hub.observer_count,
        }

    app.include_router(router)
    app.add_api_websocket_route("/ws", observer_channel)
    return app

"""
Unit Tests for the Broadcast Hub

Tests for:
- initialState as the first message of every connection
- Event fan-out and translation to wire messages
- Fresh state on reconnect
- Dropping observers that fall behind
- Answering observer requests
"""

import asyncio
from zoneinfo import ZoneInfo

import pytest

from song_request_queue.application.protocol import (
    ActiveSongUpdate,
    AllTimeStatsUpdate,
    DegradedNotice,
    DeleteMyRequest,
    ErrorReply,
    GetAllTimeStats,
    GetState,
    GetUserHistory,
    HistoryOrderChangedSignal,
    HistoryUpdate,
    InitialState,
    QueueUpdate,
    SettingsUpdate,
    SongFinishedUpdate,
    UserHistoryData,
)
from song_request_queue.application.services.broadcast_hub import BroadcastHub
from song_request_queue.domain.shared.exceptions import TransportError


@pytest.fixture
def statistics(engine, memory_repository, clock):
    from song_request_queue.application.services.statistics_service import StatisticsService

    return StatisticsService(
        engine=engine, repository=memory_repository, timezone=ZoneInfo("UTC"), clock=clock
    )


@pytest.fixture
def make_hub(engine, event_bus, statistics):
    hubs = []

    def factory(buffer_size: int = 100) -> BroadcastHub:
        hub = BroadcastHub(
            engine=engine, event_bus=event_bus, statistics=statistics, buffer_size=buffer_size
        )
        hub.attach()
        hubs.append(hub)
        return hub

    yield factory
    for hub in hubs:
        hub.close_all()
        hub.detach()


@pytest.fixture
def hub(make_hub):
    return make_hub()


def _types(messages):
    return [type(m) for m in messages]


class TestConnect:
    """Tests for observer registration."""

    @pytest.mark.asyncio
    async def test_initial_state_is_first_message(self, hub, engine, make_draft):
        result = await engine.submit(make_draft())

        observer = await hub.connect()
        messages = observer.pending()

        assert _types(messages) == [InitialState]
        assert [r.id for r in messages[0].queue] == [result.request_id]
        assert hub.observer_count == 1

    @pytest.mark.asyncio
    async def test_initial_state_wire_format(self, hub):
        observer = await hub.connect()

        payload = observer.pending()[0].model_dump(by_alias=True)

        assert payload["type"] == "initialState"
        assert payload["activeSong"] is None
        assert payload["settings"] == {"queue_enabled": True, "max_duration_minutes": None}

    @pytest.mark.asyncio
    async def test_connect_racing_submit_never_misses_an_update(self, hub, engine, make_draft):
        """Whichever runs first, the observer ends up seeing the new request exactly once."""
        submit_task = asyncio.create_task(engine.submit(make_draft()))
        observer = await hub.connect()
        result = await submit_task

        messages = observer.pending()
        assert isinstance(messages[0], InitialState)
        seen = [r.id for r in messages[0].queue]
        for message in messages[1:]:
            if isinstance(message, QueueUpdate):
                seen = [r.id for r in message.queue]
        assert seen == [result.request_id]

    @pytest.mark.asyncio
    async def test_reconnect_gets_fresh_state(self, hub, engine, make_draft):
        """Nothing is replayed; a new connection just gets the current state."""
        first = await hub.connect()
        hub.disconnect(first)
        await engine.submit(make_draft())
        await engine.advance()

        second = await hub.connect()
        messages = second.pending()

        assert first.closed
        assert _types(messages) == [InitialState]
        assert messages[0].active_song is not None
        assert messages[0].queue == []


class TestFanOut:
    """Tests for event translation and delivery."""

    @pytest.mark.asyncio
    async def test_advance_messages(self, hub, engine, make_draft):
        await engine.submit(make_draft())
        await engine.advance()
        observer = await hub.connect()
        observer.pending()

        await engine.advance()

        assert _types(observer.pending()) == [HistoryUpdate, SongFinishedUpdate, ActiveSongUpdate]

    @pytest.mark.asyncio
    async def test_every_observer_receives_updates(self, hub, engine, make_draft):
        observers = [await hub.connect() for _ in range(3)]
        for observer in observers:
            observer.pending()

        await engine.submit(make_draft())

        for observer in observers:
            assert _types(observer.pending()) == [QueueUpdate]

    @pytest.mark.asyncio
    async def test_settings_and_history_order_messages(self, hub, engine, make_draft):
        await engine.submit(make_draft())
        await engine.advance()
        await engine.advance()
        observer = await hub.connect()
        observer.pending()

        await engine.set_setting("queue_enabled", False)
        await engine.reorder_history([r.id for r in engine.snapshot().history])

        messages = observer.pending()
        assert _types(messages) == [SettingsUpdate, HistoryOrderChangedSignal]
        assert messages[0].settings["queue_enabled"] is False

    @pytest.mark.asyncio
    async def test_rejections_are_not_broadcast(self, hub, engine, make_draft):
        await engine.set_queue_enabled(False)
        observer = await hub.connect()
        observer.pending()

        await engine.submit(make_draft())

        assert observer.pending() == []

    @pytest.mark.asyncio
    async def test_degraded_notice(self, hub, engine, make_draft, memory_repository):
        observer = await hub.connect()
        observer.pending()
        memory_repository.fail_all_writes = True

        await engine.submit(make_draft())

        assert _types(observer.pending()) == [DegradedNotice, QueueUpdate]


class TestSlowObservers:
    """Tests for the bounded per-observer buffer."""

    @pytest.mark.asyncio
    async def test_full_buffer_drops_only_that_observer(self, make_hub, engine, make_draft):
        hub = make_hub(buffer_size=2)
        slow = await hub.connect()
        fast = await hub.connect()

        for i in range(3):
            fast.pending()
            await engine.submit(make_draft(f"User{i}"))

        assert slow.closed
        assert not fast.closed
        assert hub.observer_count == 1
        with pytest.raises(TransportError):
            await slow.receive()

    @pytest.mark.asyncio
    async def test_dropped_observer_can_reconnect(self, make_hub, engine, make_draft):
        hub = make_hub(buffer_size=1)
        observer = await hub.connect()
        await engine.submit(make_draft())
        assert observer.closed

        again = await hub.connect()

        state = again.pending()[0]
        assert isinstance(state, InitialState)
        assert len(state.queue) == 1


class TestObserverRequests:
    """Tests for requests sent by observers."""

    @pytest.mark.asyncio
    async def test_get_state(self, hub, engine, make_draft):
        observer = await hub.connect()
        observer.pending()
        await engine.submit(make_draft())
        observer.pending()

        await hub.handle(observer, GetState())

        (reply,) = observer.pending()
        assert isinstance(reply, InitialState)
        assert len(reply.queue) == 1

    @pytest.mark.asyncio
    async def test_get_user_history(self, hub, engine, make_draft):
        await engine.submit(make_draft("Alice"))
        await engine.advance()
        await engine.advance()
        observer = await hub.connect()
        observer.pending()

        await hub.handle(observer, GetUserHistory(user_login="ALICE", limit=10, offset=0))

        (reply,) = observer.pending()
        assert isinstance(reply, UserHistoryData)
        assert reply.total == 1

    @pytest.mark.asyncio
    async def test_get_all_time_stats(self, hub):
        observer = await hub.connect()
        observer.pending()

        await hub.handle(observer, GetAllTimeStats())

        (reply,) = observer.pending()
        assert isinstance(reply, AllTimeStatsUpdate)

    @pytest.mark.asyncio
    async def test_delete_my_request(self, hub, engine, make_draft):
        result = await engine.submit(make_draft("Alice"))
        observer = await hub.connect()
        observer.pending()

        await hub.handle(observer, DeleteMyRequest(request_id=result.request_id, user_login="alice"))

        assert engine.snapshot().queue == ()
        assert _types(observer.pending()) == [QueueUpdate]

    @pytest.mark.asyncio
    async def test_delete_someone_elses_request_replies_error(self, hub, engine, make_draft):
        """Failures go back to the requesting observer only."""
        result = await engine.submit(make_draft("Alice"))
        requester = await hub.connect()
        bystander = await hub.connect()
        requester.pending()
        bystander.pending()

        await hub.handle(requester, DeleteMyRequest(request_id=result.request_id, user_login="mallory"))

        (reply,) = requester.pending()
        assert isinstance(reply, ErrorReply)
        assert reply.code == "POLICY_REJECTION"
        assert bystander.pending() == []
        assert len(engine.snapshot().queue) == 1

    @pytest.mark.asyncio
    async def test_unexpected_failure_replies_generic_error(self, hub, statistics, monkeypatch):
        """Internal failures are logged and never leak their details."""

        async def explode(*args, **kwargs):
            raise RuntimeError("sqlite cursor exploded")

        monkeypatch.setattr(statistics, "user_history", explode)
        observer = await hub.connect()
        observer.pending()

        await hub.handle(observer, GetUserHistory(user_login="alice"))

        (reply,) = observer.pending()
        assert isinstance(reply, ErrorReply)
        assert reply.code == "INTERNAL_ERROR"
        assert "sqlite" not in reply.message

"""Observer client for the push channel, with reconnect and backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from song_request_queue.application.protocol import (
    ServerMessage,
    WireMessage,
    parse_server_message,
)
from song_request_queue.domain.shared.exceptions import TransportError
from song_request_queue.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconnectPolicy:
    """Exponential backoff between connection attempts."""

    max_attempts: int = 5
    base_delay: float = 0.5
    max_delay: float = 10.0
    factor: float = 2.0

    def delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return min(self.max_delay, self.base_delay * self.factor ** (attempt - 1))

    def delays(self) -> Iterator[float]:
        """One delay per retry; a policy with N attempts yields N - 1 delays."""
        for attempt in range(1, self.max_attempts):
            yield self.delay(attempt)


class QueueObserverClient:
    """Consumes the push channel as a stream of parsed server messages.

    Every (re)connection starts from the ``initialState`` the server sends
    first, so nothing is replayed across disconnects. When a connection
    cannot be established within ``policy.max_attempts`` tries the stream
    ends with :class:`TransportError`.
    """

    def __init__(
        self,
        url: str,
        *,
        policy: ReconnectPolicy | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._url = url
        self._policy = policy or ReconnectPolicy()
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def messages(self) -> AsyncIterator[ServerMessage]:
        while not self._closed:
            self._ws = await self._connect()
            try:
                async for msg in self._ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        try:
                            yield parse_server_message(msg.data)
                        except PydanticValidationError as e:
                            logger.warning("Ignoring malformed server message: %s", e)
                    elif msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED):
                        break
            finally:
                if self._ws is not None and not self._ws.closed:
                    await self._ws.close()
                self._ws = None

    async def send(self, request: WireMessage) -> None:
        if self._ws is None or self._ws.closed:
            raise TransportError("Not connected")
        await self._ws.send_str(request.to_json())

    async def close(self) -> None:
        self._closed = True
        if self._ws is not None:
            await self._ws.close()
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def _connect(self) -> aiohttp.ClientWebSocketResponse:
        if self._session is None:
            self._session = aiohttp.ClientSession()

        delays = self._policy.delays()
        attempt = 0
        while True:
            attempt += 1
            logger.debug(LogTemplates.CLIENT_CONNECTING, self._url, attempt)
            try:
                return await self._session.ws_connect(self._url, heartbeat=30.0)
            except (aiohttp.ClientError, OSError) as e:
                delay = next(delays, None)
                if delay is None:
                    raise TransportError(
                        ErrorMessages.RECONNECT_EXHAUSTED.format(url=self._url, attempts=attempt)
                    ) from e
                logger.warning(LogTemplates.CLIENT_RETRY, self._url, delay, e)
                await asyncio.sleep(delay)

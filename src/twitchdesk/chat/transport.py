"""Chat transports.

Twitch serves IRC over a WebSocket; each text frame carries one or more
CRLF-terminated lines. Transport errors surface as ``ConnectionError`` so the
ingestor doesn't depend on aiohttp's exception types.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Protocol

import aiohttp

logger = logging.getLogger(__name__)


class ChatTransport(Protocol):
    """Line-oriented connection to the chat service."""

    async def connect(self) -> None: ...

    async def send(self, line: str) -> None: ...

    def lines(self) -> AsyncIterator[str]: ...

    async def close(self) -> None: ...


class WebSocketTransport:
    """IRC-over-WebSocket transport using aiohttp."""

    def __init__(self, url: str, session: aiohttp.ClientSession | None = None):
        self.url = url
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self.url, autoping=True)
        except aiohttp.ClientError as e:
            raise ConnectionError(f"Could not connect to {self.url}: {e}") from e
        logger.debug("Connected to %s", self.url)

    async def send(self, line: str) -> None:
        if self._ws is None or self._ws.closed:
            raise ConnectionError("Chat transport is not connected")
        try:
            await self._ws.send_str(line + "\r\n")
        except aiohttp.ClientError as e:
            raise ConnectionError(str(e)) from e

    async def lines(self) -> AsyncIterator[str]:
        if self._ws is None:
            raise ConnectionError("Chat transport is not connected")
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                for line in msg.data.split("\r\n"):
                    if line:
                        yield line
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise ConnectionError(f"WebSocket error: {self._ws.exception()}")

    async def close(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

"""WebSocket transport built on the ``websockets`` asyncio client.

Every connection runs one reader task on the event loop. The task reports
``on_open`` once the handshake completes, ``on_message`` for every inbound
frame in arrival order, and finally ``on_close``. Connection failures report
``on_error`` before ``on_close``. After ``close()`` nothing is reported.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidURI, WebSocketException
from websockets.uri import parse_uri

from chat_client.domain.exceptions import TransportError
from chat_client.infrastructure.logging.logger import logger
from chat_client.transport.base import TransportListener


class WebSocketHandle:
    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        url: str,
        listener: TransportListener,
        open_timeout: float,
        ping_interval: Optional[float],
    ):
        self._loop = loop
        self._url = url
        self._listener = listener
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval
        self._ws: Any = None
        self._closed = False
        self._tasks: Set[asyncio.Task] = set()
        self._reader = self._spawn(self._run())

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, data: str) -> None:
        if self._closed or self._ws is None:
            return
        self._spawn(self._send(data))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._reader.cancel()
        if self._ws is not None:
            self._spawn(self._ws.close())

    async def _run(self) -> None:
        try:
            self._ws = await websockets.connect(
                self._url,
                open_timeout=self._open_timeout,
                ping_interval=self._ping_interval,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.warning(
                "WebSocket connect failed",
                extra={"extra": {"url": self._url, "error": f"{type(e).__name__}: {e}"}},
            )
            self._emit(self._listener.on_error, e)
            self._emit(self._listener.on_close)
            return

        if self._closed:
            await self._ws.close()
            return
        self._emit(self._listener.on_open)

        error: Optional[BaseException] = None
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                self._emit(self._listener.on_message, message)
        except ConnectionClosedError as e:
            error = e
        if error is not None:
            self._emit(self._listener.on_error, error)
        self._emit(self._listener.on_close)

    async def _send(self, data: str) -> None:
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            # the reader task reports the close
            logger.info("Dropped frame on closed connection", extra={"extra": {"url": self._url, "error": str(e)}})

    def _emit(self, callback: Callable[..., None], *args: Any) -> None:
        if self._closed:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Transport listener failed", extra={"extra": {"url": self._url}})

    def _spawn(self, coro) -> asyncio.Task:
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


class WebSocketTransport:
    """Transport implementation for ``ws://`` / ``wss://`` endpoints."""

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        open_timeout: float = 10.0,
        ping_interval: Optional[float] = 20.0,
    ):
        self._loop = loop
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval

    def connect(self, url: str, listener: TransportListener) -> WebSocketHandle:
        """Start connecting in the background.

        Raises:
            TransportError: the URL is not a valid WebSocket URL.
        """

        try:
            parse_uri(url)
        except InvalidURI as e:
            raise TransportError(code="INVALID_URL", message=str(e), url=url)
        loop = self._loop or asyncio.get_running_loop()
        return WebSocketHandle(loop, url, listener, self._open_timeout, self._ping_interval)

import asyncio
from typing import Protocol

import structlog
from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from app.domain.exceptions import TransportWriteError

logger = structlog.get_logger(__name__)


class Transport(Protocol):
    """Write side of one client channel.

    ``send`` must not block; the hub calls it from inside message dispatch.
    """

    def send(self, frame: str) -> None: ...

    def close(self) -> None: ...


class WebSocketTransport:
    """Queues outbound frames and drains them from a dedicated writer task."""

    def __init__(self, websocket: WebSocket, max_queue_size: int = 256) -> None:
        self._websocket = websocket
        self._max_queue_size = max_queue_size
        # Unbounded so the close sentinel always fits; send() enforces the limit.
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False
        self.connection_id: str | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, frame: str) -> None:
        if self._closed:
            raise TransportWriteError(self.connection_id, "transport closed")
        if self._queue.qsize() >= self._max_queue_size:
            raise TransportWriteError(self.connection_id, "outbound queue full")
        self._queue.put_nowait(frame)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def run(self) -> None:
        while True:
            frame = await self._queue.get()
            if frame is None:
                await self._close_socket()
                return
            try:
                await self._websocket.send_text(frame)
            except (RuntimeError, WebSocketDisconnect):
                logger.warning(
                    "realtime.transport.write_failed",
                    connection_id=self.connection_id,
                )
                self._closed = True
                return

    async def _close_socket(self) -> None:
        try:
            await self._websocket.close(code=1000)
        except (RuntimeError, WebSocketDisconnect):
            logger.debug(
                "realtime.transport.already_closed",
                connection_id=self.connection_id,
            )

import asyncio
import logging

import websockets

from live_assist.domain.errors import TransportClosed, TransportFailure

logger = logging.getLogger(__name__)

MAX_MESSAGE_BYTES = 16 * 1024 * 1024


class WebsocketTransport:
    def __init__(self, open_timeout: float = 10.0, close_timeout: float = 2.0) -> None:
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._ws: websockets.ClientConnection | None = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    async def connect(self, url: str, headers: dict[str, str]) -> None:
        try:
            self._ws = await websockets.connect(
                url,
                additional_headers=headers or None,
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
                max_size=MAX_MESSAGE_BYTES,
            )
        except (websockets.WebSocketException, OSError, asyncio.TimeoutError) as exc:
            raise TransportFailure(f"Connect failed: {exc}") from exc
        logger.info("WebSocket connected")

    async def send(self, message: str) -> None:
        if self._ws is None:
            raise TransportFailure("Transport is not connected")
        try:
            await self._ws.send(message)
        except websockets.ConnectionClosed as exc:
            raise _closed_error(exc) from exc
        except (websockets.WebSocketException, OSError) as exc:
            raise TransportFailure(f"Send failed: {exc}") from exc

    async def receive(self) -> str:
        if self._ws is None:
            raise TransportFailure("Transport is not connected")
        try:
            message = await self._ws.recv()
        except websockets.ConnectionClosed as exc:
            raise _closed_error(exc) from exc
        except (websockets.WebSocketException, OSError) as exc:
            raise TransportFailure(f"Receive failed: {exc}") from exc

        if isinstance(message, bytes):
            return message.decode("utf-8", errors="replace")
        return message

    async def close(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is None:
            return
        try:
            await ws.close(code=1000, reason="Client disconnecting")
        except (websockets.WebSocketException, OSError) as exc:
            logger.warning("WebSocket close failed: %s", exc)
        logger.info("WebSocket closed")


def _closed_error(exc: websockets.ConnectionClosed) -> TransportClosed:
    frame = exc.rcvd
    if frame is None:
        return TransportClosed(code=None, reason="no close frame")
    return TransportClosed(code=frame.code, reason=frame.reason)

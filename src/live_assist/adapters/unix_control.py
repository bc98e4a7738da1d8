import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator
from pathlib import Path

from live_assist.ports.control import ControlRequest

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/tmp/live-assist.sock"


class UnixControlServer:
    """JSON-lines control socket: one request and one reply per connection."""

    def __init__(self, socket_path: str = DEFAULT_SOCKET_PATH, reply_timeout: float = 30.0) -> None:
        self._socket_path = socket_path
        self._reply_timeout = reply_timeout
        self._server: asyncio.Server | None = None
        self._queue: asyncio.Queue[ControlRequest] = asyncio.Queue()

    @property
    def socket_path(self) -> str:
        return self._socket_path

    async def start(self) -> None:
        socket_file = Path(self._socket_path)
        if socket_file.exists():
            socket_file.unlink()

        self._server = await asyncio.start_unix_server(self._handle_client, path=self._socket_path)
        os.chmod(self._socket_path, 0o600)
        logger.info("Control socket listening at %s", self._socket_path)

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        socket_file = Path(self._socket_path)
        if socket_file.exists():
            socket_file.unlink()

    async def requests(self) -> AsyncIterator[ControlRequest]:
        while True:
            yield await self._queue.get()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            raw = await asyncio.wait_for(reader.readline(), timeout=5.0)
            if not raw:
                return

            message = json.loads(raw.decode().strip())
            action = message.get("action", "") if isinstance(message, dict) else ""
            payload = message.get("payload") if isinstance(message, dict) else None

            request = ControlRequest(action=action, payload=payload)
            await self._queue.put(request)
            response = await asyncio.wait_for(request.reply, timeout=self._reply_timeout)

            writer.write((json.dumps(response) + "\n").encode())
            await writer.drain()
        except asyncio.TimeoutError:
            logger.warning("Control client timed out")
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from control client")
            writer.write((json.dumps({"status": "error", "error": "invalid json"}) + "\n").encode())
            await writer.drain()
        except Exception:
            logger.exception("Error handling control client")
        finally:
            writer.close()
            await writer.wait_closed()


class UnixControlClient:
    def __init__(self, socket_path: str = DEFAULT_SOCKET_PATH, timeout: float = 30.0) -> None:
        self._socket_path = socket_path
        self._timeout = timeout

    async def send(self, action: str, payload: dict | None = None) -> dict:
        reader, writer = await asyncio.open_unix_connection(self._socket_path)
        try:
            message: dict = {"action": action}
            if payload:
                message["payload"] = payload
            writer.write((json.dumps(message) + "\n").encode())
            await writer.drain()

            raw = await asyncio.wait_for(reader.readline(), timeout=self._timeout)
            return json.loads(raw.decode().strip())
        finally:
            writer.close()
            await writer.wait_closed()

import asyncio

import pytest

from live_assist.adapters.unix_control import UnixControlClient, UnixControlServer


async def _serve(server: UnixControlServer, reply):
    async for request in server.requests():
        request.respond(reply(request))


class TestUnixControl:
    @pytest.mark.asyncio
    async def test_server_start_stop(self, tmp_path):
        socket_path = str(tmp_path / "test.sock")
        server = UnixControlServer(socket_path=socket_path)
        await server.start()
        assert (tmp_path / "test.sock").exists()
        await server.stop()
        assert not (tmp_path / "test.sock").exists()

    @pytest.mark.asyncio
    async def test_status_round_trip(self, tmp_path):
        socket_path = str(tmp_path / "test.sock")
        server = UnixControlServer(socket_path=socket_path)
        await server.start()
        consumer = asyncio.create_task(
            _serve(server, lambda r: {"status": "ok", "action": r.action, "recording": True})
        )

        result = await UnixControlClient(socket_path=socket_path).send("status")

        assert result == {"status": "ok", "action": "status", "recording": True}
        consumer.cancel()
        await server.stop()

    @pytest.mark.asyncio
    async def test_payload_forwarded(self, tmp_path):
        socket_path = str(tmp_path / "test.sock")
        server = UnixControlServer(socket_path=socket_path)
        await server.start()
        seen = []

        def reply(request):
            seen.append(request.payload)
            return {"status": "ok", "action": request.action}

        consumer = asyncio.create_task(_serve(server, reply))

        await UnixControlClient(socket_path=socket_path).send("start", {"provider": "openai"})

        assert seen == [{"provider": "openai"}]
        consumer.cancel()
        await server.stop()

    @pytest.mark.asyncio
    async def test_invalid_json_gets_error_reply(self, tmp_path):
        socket_path = str(tmp_path / "test.sock")
        server = UnixControlServer(socket_path=socket_path)
        await server.start()

        reader, writer = await asyncio.open_unix_connection(socket_path)
        writer.write(b"not json\n")
        await writer.drain()
        raw = await asyncio.wait_for(reader.readline(), timeout=2.0)
        writer.close()
        await writer.wait_closed()

        assert b"invalid json" in raw
        await server.stop()

    @pytest.mark.asyncio
    async def test_unanswered_request_times_out(self, tmp_path):
        socket_path = str(tmp_path / "test.sock")
        server = UnixControlServer(socket_path=socket_path, reply_timeout=0.05)
        await server.start()

        reader, writer = await asyncio.open_unix_connection(socket_path)
        writer.write(b'{"action": "status"}\n')
        await writer.drain()
        raw = await asyncio.wait_for(reader.readline(), timeout=2.0)
        writer.close()
        await writer.wait_closed()

        assert raw == b""
        await server.stop()

    @pytest.mark.asyncio
    async def test_client_fails_when_not_running(self, tmp_path):
        client = UnixControlClient(socket_path=str(tmp_path / "missing.sock"))
        with pytest.raises((FileNotFoundError, ConnectionRefusedError)):
            await client.send("status")

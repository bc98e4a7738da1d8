import logging
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from live_assist.__main__ import _handle_control, _load_env_file
from live_assist.domain.errors import SetupTimeout
from live_assist.log_format import ColoredFormatter


def _assistant() -> MagicMock:
    assistant = MagicMock()
    assistant.start_recording = AsyncMock()
    assistant.stop_recording = AsyncMock()
    assistant.status.return_value = {"recording": True, "state": "STREAMING"}
    return assistant


class TestHandleControl:
    @pytest.mark.asyncio
    async def test_start(self):
        assistant = _assistant()
        reply = await _handle_control("start", assistant)
        assistant.start_recording.assert_awaited_once()
        assert reply == {"status": "ok", "action": "start", "recording": True, "state": "STREAMING"}

    @pytest.mark.asyncio
    async def test_start_failure_reported(self):
        assistant = _assistant()
        assistant.start_recording.side_effect = SetupTimeout("Setup not acknowledged within 10.0s")
        reply = await _handle_control("start", assistant)
        assert reply["status"] == "error"
        assert "10.0s" in reply["error"]

    @pytest.mark.asyncio
    async def test_stop(self):
        assistant = _assistant()
        reply = await _handle_control("stop", assistant)
        assistant.stop_recording.assert_awaited_once()
        assert reply["status"] == "ok"

    @pytest.mark.asyncio
    async def test_status(self):
        assistant = _assistant()
        reply = await _handle_control("status", assistant)
        assistant.start_recording.assert_not_awaited()
        assert reply["state"] == "STREAMING"

    @pytest.mark.asyncio
    async def test_unknown_action(self):
        reply = await _handle_control("toggle", _assistant())
        assert reply["status"] == "error"


class TestEnvFile:
    def test_loads_missing_keys_only(self, tmp_path):
        env_file = tmp_path / "env"
        env_file.write_text(
            "# comment\n"
            "LIVE_ASSIST_PROVIDER='openai'\n"
            "export LIVE_ASSIST_SAMPLE_RATE=24000\n"
            "LIVE_ASSIST_LOG_FILE=/tmp/from-file.log\n"
            "garbage line\n"
        )
        before = dict(os.environ)
        with patch.dict(os.environ, {"LIVE_ASSIST_LOG_FILE": "/tmp/already-set.log"}):
            os.environ.pop("LIVE_ASSIST_PROVIDER", None)
            os.environ.pop("LIVE_ASSIST_SAMPLE_RATE", None)

            _load_env_file(env_file)

            assert os.environ["LIVE_ASSIST_PROVIDER"] == "openai"
            assert os.environ["LIVE_ASSIST_SAMPLE_RATE"] == "24000"
            assert os.environ["LIVE_ASSIST_LOG_FILE"] == "/tmp/already-set.log"

        assert dict(os.environ) == before

    def test_missing_file_ignored(self, tmp_path):
        _load_env_file(tmp_path / "nope")


class TestColoredFormatter:
    def _format(self, message: str, level: int = logging.INFO) -> str:
        record = logging.LogRecord("live_assist.domain.session", level, __file__, 1, message, None, None)
        return ColoredFormatter(datefmt="%H:%M:%S").format(record)

    def test_state_transition_highlighted(self):
        line = self._format("State: STREAMING -> RECONNECTING")
        assert "\033[1m\033[36mState: STREAMING -> RECONNECTING" in line
        assert "session" in line

    def test_plain_info_uncolored_message(self):
        line = self._format("Connected to live endpoint")
        assert line.endswith(" Connected to live endpoint")

    def test_warning_colored(self):
        line = self._format("Failed to send audio frame", logging.WARNING)
        assert "\033[33mFailed to send audio frame" in line

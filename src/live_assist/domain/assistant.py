import asyncio
import logging
from collections.abc import Callable

from live_assist.domain.errors import SessionError
from live_assist.domain.question_trigger import QuestionResponder
from live_assist.domain.session import LiveSession
from live_assist.domain.state import SessionState
from live_assist.ports.audio import FrameSourcePort
from live_assist.ports.listener import SessionListener

logger = logging.getLogger(__name__)


class LiveAssistant(SessionListener):
    def __init__(
        self,
        capture: FrameSourcePort,
        session_factory: Callable[[], LiveSession],
        responder: QuestionResponder,
        listener: SessionListener | None = None,
        setup_timeout_seconds: float = 10.0,
    ) -> None:
        self._capture = capture
        self._session_factory = session_factory
        self._responder = responder
        self._listener = listener
        self._setup_timeout = setup_timeout_seconds

        self._session: LiveSession | None = None
        self._recording = False
        self._audio_task: asyncio.Task | None = None
        self._stop_task: asyncio.Task | None = None
        self._frames_captured = 0

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def session(self) -> LiveSession | None:
        return self._session

    def status(self) -> dict:
        session = self._session
        return {
            "recording": self._recording,
            "state": session.state.name if session else SessionState.IDLE.name,
            "last_server_error": session.last_server_error if session else None,
            "frames_captured": self._frames_captured,
            "questions_answered": len(self._responder.answered),
        }

    async def start_recording(self) -> None:
        if self._recording:
            logger.info("Already recording")
            return

        self._responder.start_recording()
        session = self._session_factory()
        session.subscribe(self)
        if self._listener is not None:
            session.subscribe(self._listener)
        self._responder.attach(session)
        self._session = session
        self._frames_captured = 0

        await session.connect()
        try:
            await session.wait_for_setup_complete(self._setup_timeout)
        except SessionError:
            await session.disconnect()
            raise

        await self._capture.start()
        self._recording = True
        self._audio_task = asyncio.create_task(self._audio_loop(session))
        logger.info("Recording started")

    async def stop_recording(self) -> None:
        was_recording = self._recording
        self._recording = False

        if self._audio_task is not None and not self._audio_task.done():
            self._audio_task.cancel()
            try:
                await self._audio_task
            except asyncio.CancelledError:
                pass
        self._audio_task = None

        if was_recording:
            await self._capture.stop()

        if self._session is not None:
            await self._session.disconnect()

        if was_recording:
            logger.info("Recording stopped (%d frames captured)", self._frames_captured)

    async def aclose(self, answer_timeout: float | None = 5.0) -> None:
        await self.stop_recording()
        await self._responder.aclose(cancel_pending=False, timeout=answer_timeout)

    def on_session_closed(self, error: Exception | None) -> None:
        if error is None or not self._recording:
            return
        logger.error("Live session ended after failed recovery: %s", error)
        self._stop_task = asyncio.create_task(self.stop_recording())

    async def _audio_loop(self, session: LiveSession) -> None:
        async for frame in self._capture.read_frames():
            if session.state is SessionState.CLOSED:
                break
            await session.send_audio(frame)
            self._frames_captured += 1

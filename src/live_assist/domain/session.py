import asyncio
import logging
from collections.abc import Callable

from live_assist.domain.audio import AudioFrame, convert_to_wire
from live_assist.domain.errors import (
    ProviderError,
    SessionCancelledError,
    SessionError,
    SetupTimeout,
    TransportClosed,
    TransportFailure,
)
from live_assist.domain.events import (
    DecodeFailure,
    LiveEvent,
    ModelOutput,
    ProviderErrorEvent,
    SetupComplete,
    TranscriptDelta,
    TurnComplete,
    Unrecognized,
)
from live_assist.domain.signal import CompletionSignal
from live_assist.domain.state import SessionState, validate_transition
from live_assist.domain.transcript import TranscriptAssembler
from live_assist.ports.answer import AnswerStreamerPort
from live_assist.ports.codec import LiveCodecPort, SessionSetup
from live_assist.ports.listener import SessionListener
from live_assist.ports.transport import TransportPort

logger = logging.getLogger(__name__)

DEFAULT_SETUP_TIMEOUT_SECONDS = 10.0
DEFAULT_RECONNECT_MAX_ATTEMPTS = 5
DEFAULT_RECONNECT_INITIAL_DELAY_SECONDS = 2.0
DEFAULT_RECONNECT_MAX_DELAY_SECONDS = 30.0
DEFAULT_DISCONNECT_TIMEOUT_SECONDS = 2.0


def backoff_schedule(initial: float, maximum: float, attempts: int) -> list[float]:
    """Delays slept between consecutive reconnect attempts."""
    delays: list[float] = []
    delay = initial
    for _ in range(max(attempts - 1, 0)):
        delays.append(min(delay, maximum))
        delay = min(delay * 2, maximum)
    return delays


class LiveSession:
    """One live connection to a streaming transcription provider.

    Owns the transport exclusively. The receive loop runs as a background task
    for the lifetime of each connection; dropped connections are retried with
    bounded exponential backoff before the session gives up and closes.
    """

    def __init__(
        self,
        codec: LiveCodecPort,
        transport_factory: Callable[[], TransportPort],
        api_key: str,
        setup: SessionSetup,
        answer_streamer: AnswerStreamerPort | None = None,
        setup_timeout_seconds: float = DEFAULT_SETUP_TIMEOUT_SECONDS,
        reconnect_max_attempts: int = DEFAULT_RECONNECT_MAX_ATTEMPTS,
        reconnect_initial_delay_seconds: float = DEFAULT_RECONNECT_INITIAL_DELAY_SECONDS,
        reconnect_max_delay_seconds: float = DEFAULT_RECONNECT_MAX_DELAY_SECONDS,
        disconnect_timeout_seconds: float = DEFAULT_DISCONNECT_TIMEOUT_SECONDS,
        cumulative_transcripts: bool | None = None,
    ) -> None:
        self._codec = codec
        self._transport_factory = transport_factory
        self._api_key = api_key
        self._setup = setup
        self._answer_streamer = answer_streamer
        self._setup_timeout = setup_timeout_seconds
        self._reconnect_max_attempts = reconnect_max_attempts
        self._reconnect_initial_delay = reconnect_initial_delay_seconds
        self._reconnect_max_delay = reconnect_max_delay_seconds
        self._disconnect_timeout = disconnect_timeout_seconds

        if cumulative_transcripts is None:
            cumulative_transcripts = codec.cumulative_transcripts
        self._assembler = TranscriptAssembler(cumulative=cumulative_transcripts)
        self._listeners: list[SessionListener] = []

        self._state = SessionState.IDLE
        self._transport: TransportPort | None = None
        self._setup_signal: CompletionSignal | None = None
        self._receive_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._cancel_event = asyncio.Event()
        self._closed_event = asyncio.Event()
        self._closed_error: Exception | None = None
        self._last_server_error: str | None = None
        self._reconnect_attempts = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def last_server_error(self) -> str | None:
        return self._last_server_error

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def transcript(self) -> TranscriptAssembler:
        return self._assembler

    def subscribe(self, listener: SessionListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def connect(self) -> None:
        self._transition_to(SessionState.CONNECTING)
        self._assembler.reset()
        try:
            await self._open_connection()
            if self._cancel_event.is_set():
                await self._discard_connection()
                raise SessionCancelledError("Session disconnected while connecting")
            self._transition_to(SessionState.AWAITING_SETUP)
            await self._start_session_setup()
        except TransportFailure as exc:
            logger.error("Failed to connect: %s", exc.detail)
            if self._setup_signal is not None:
                self._setup_signal.fail(exc)
            await self._discard_connection()
            self._close(exc)
            raise
        logger.info("Setup sent; waiting for acknowledgement")

    async def wait_for_setup_complete(self, timeout: float | None = None) -> None:
        if self._setup_signal is None:
            raise SessionError("Session setup has not started; call connect() first")
        await self._setup_signal.wait(self._setup_timeout if timeout is None else timeout)
        logger.info("Setup wait completed")

    async def send_audio(self, frame: AudioFrame) -> None:
        transport = self._transport
        if self._state is not SessionState.STREAMING or transport is None:
            return

        pcm = convert_to_wire(frame, self._codec.wire_format)
        if not pcm:
            return

        try:
            await transport.send(self._codec.encode_audio(pcm, self._codec.wire_format))
        except TransportFailure as exc:
            logger.warning("Failed to send audio frame: %s", exc.detail)

    async def disconnect(self) -> None:
        try:
            await self._shutdown()
        except Exception:
            logger.exception("Error during disconnect")

    async def wait_closed(self) -> Exception | None:
        await self._closed_event.wait()
        return self._closed_error

    async def stream_answer_for_question(
        self,
        question: str,
        on_chunk: Callable[[str], None],
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        if not question or not question.strip():
            return
        if self._answer_streamer is None:
            logger.warning("No answer streamer configured, skipping question: %s", question)
            return

        token = cancel_event if cancel_event is not None else self._cancel_event
        logger.info("Streaming answer for: %s", question)
        chunks = self._answer_streamer.stream(question, token)
        try:
            async for chunk in chunks:
                if token.is_set():
                    break
                on_chunk(chunk)
        except SessionError as exc:
            self._last_server_error = exc.detail
            logger.error("Answer streaming failed: %s", exc.detail)
        except Exception as exc:
            self._last_server_error = str(exc)
            logger.exception("Answer streaming failed")
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

    async def answer_for_question(
        self,
        question: str,
        cancel_event: asyncio.Event | None = None,
    ) -> str | None:
        chunks: list[str] = []
        await self.stream_answer_for_question(question, chunks.append, cancel_event)
        answer = "".join(chunks).strip()
        return answer or None

    def _transition_to(self, target: SessionState) -> None:
        validate_transition(self._state, target)
        logger.info("State: %s -> %s", self._state.name, target.name)
        self._state = target

    async def _open_connection(self) -> None:
        self._setup_signal = CompletionSignal()
        transport = self._transport_factory()
        await transport.connect(
            self._codec.endpoint(self._api_key, self._setup.model),
            self._codec.headers(self._api_key),
        )
        self._transport = transport
        logger.info("Connected to live endpoint")

    async def _start_session_setup(self) -> None:
        transport = self._transport
        if transport is None:
            raise TransportFailure("Transport is not connected")
        self._receive_task = asyncio.create_task(self._receive_loop(transport))
        await transport.send(self._codec.encode_setup(self._setup))
        logger.debug("Setup message sent (model=%s)", self._setup.model)

    async def _receive_loop(self, transport: TransportPort) -> None:
        try:
            while not self._cancel_event.is_set():
                raw = await transport.receive()
                for event in self._codec.decode(raw):
                    self._dispatch(event)
            return
        except TransportClosed as exc:
            logger.warning("Connection closed by server: code=%s reason=%s", exc.code, exc.reason)
            error: SessionError = exc
        except TransportFailure as exc:
            logger.error("Receive error: %s", exc.detail)
            error = exc

        await self._on_connection_lost(transport, error)

    async def _on_connection_lost(self, transport: TransportPort, error: SessionError) -> None:
        if self._cancel_event.is_set() or transport is not self._transport:
            return

        if self._setup_signal is not None:
            self._setup_signal.fail(error)

        if self._state is SessionState.STREAMING:
            logger.info("Connection lost, reconnecting...")
            self._reconnect_task = asyncio.create_task(self._reconnect(error))
        elif self._state is SessionState.AWAITING_SETUP:
            await self._discard_connection()
            self._close(error)

    async def _reconnect(self, cause: SessionError) -> None:
        self._transition_to(SessionState.RECONNECTING)
        await self._discard_connection()

        delays = backoff_schedule(
            self._reconnect_initial_delay,
            self._reconnect_max_delay,
            self._reconnect_max_attempts,
        )
        last_error: SessionError = cause

        for attempt in range(1, self._reconnect_max_attempts + 1):
            if self._cancel_event.is_set():
                return

            self._reconnect_attempts = attempt
            self._assembler.clear_turn()
            logger.info("Reconnect attempt %d/%d", attempt, self._reconnect_max_attempts)

            try:
                await self._open_connection()
                await self._start_session_setup()
                await self._setup_signal.wait(self._setup_timeout)
                if self._receive_task is None or self._receive_task.done():
                    raise TransportFailure("Connection lost during setup")
            except SessionCancelledError:
                return
            except ProviderError as exc:
                logger.error("Reconnect attempt %d rejected by provider: %s", attempt, exc.detail)
                last_error = exc
                break
            except (TransportFailure, SetupTimeout) as exc:
                last_error = exc
                await self._discard_connection()
                if attempt == self._reconnect_max_attempts:
                    logger.error("All reconnect attempts failed: %s", exc.detail)
                    break
                delay = delays[attempt - 1]
                logger.warning(
                    "Reconnect attempt %d failed: %s. Retrying in %.1fs...",
                    attempt, exc.detail, delay,
                )
                if not await self._wait_before_retry(delay):
                    return
                continue

            self._reconnect_attempts = 0
            self._transition_to(SessionState.STREAMING)
            logger.info("Reconnected successfully")
            return

        await self._discard_connection()
        self._close(last_error)

    async def _wait_before_retry(self, delay: float) -> bool:
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False

    def _dispatch(self, event: LiveEvent) -> None:
        if isinstance(event, SetupComplete):
            logger.info("Setup complete, ready to stream audio")
            signal = self._setup_signal
            if signal is not None and signal.resolve() and self._state is SessionState.AWAITING_SETUP:
                self._transition_to(SessionState.STREAMING)

        elif isinstance(event, TranscriptDelta):
            text = self._assembler.on_delta(event.text)
            if text:
                logger.debug("Input chunk: %s", text)
                self._emit("on_input_transcript", text)

        elif isinstance(event, ModelOutput):
            logger.debug("Model output: %s", event.text)
            self._emit("on_model_output", event.text)

        elif isinstance(event, TurnComplete):
            turn = self._assembler.on_turn_complete(event.transcript)
            if turn:
                logger.info("Turn complete: %s", turn)
            else:
                logger.info("Turn complete (no transcript)")
            self._emit("on_turn_complete", turn)

        elif isinstance(event, ProviderErrorEvent):
            self._last_server_error = event.detail
            logger.error("Provider error: %s", event.detail)
            if self._setup_signal is not None:
                self._setup_signal.fail(ProviderError(event.detail))

        elif isinstance(event, DecodeFailure):
            logger.warning("Undecodable message (%s): %.200s", event.detail, event.raw)

        elif isinstance(event, Unrecognized):
            logger.debug("Provider message: %.200s", event.raw)

    def _emit(self, callback_name: str, *args) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, callback_name)(*args)
            except Exception:
                logger.exception("Listener %s.%s failed", type(listener).__name__, callback_name)

    def _close(self, error: Exception | None) -> None:
        if self._state is SessionState.CLOSED:
            return
        self._transition_to(SessionState.CLOSED)
        self._closed_error = error
        self._closed_event.set()
        if error is not None:
            logger.error("Session closed: %s", error)
        self._emit("on_session_closed", error)

    async def _discard_connection(self) -> None:
        task = self._receive_task
        self._receive_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.wait([task], timeout=self._disconnect_timeout)

        transport = self._transport
        self._transport = None
        if transport is not None:
            try:
                await transport.close()
            except Exception:
                logger.warning("Error closing transport", exc_info=True)

    async def _shutdown(self) -> None:
        already_closed = self._state is SessionState.CLOSED and self._transport is None
        self._cancel_event.set()
        if self._setup_signal is not None:
            self._setup_signal.fail(SessionCancelledError("Session disconnected"))

        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._reconnect_task, self._receive_task)
            if task is not None and task is not current and not task.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks, timeout=self._disconnect_timeout)
        self._reconnect_task = None
        self._receive_task = None

        transport = self._transport
        self._transport = None
        if transport is not None:
            try:
                await transport.close()
            except Exception:
                logger.warning("Error closing transport during disconnect", exc_info=True)

        if not already_closed:
            self._close(None)
            logger.info("Disconnected")

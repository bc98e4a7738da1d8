import asyncio
import json
from collections.abc import AsyncIterator

import numpy as np
import pytest

from live_assist.adapters.gemini_codec import GeminiLiveCodec
from live_assist.domain.audio import AudioFormat, AudioFrame
from live_assist.domain.errors import TransportClosed, TransportFailure
from live_assist.domain.session import LiveSession
from live_assist.ports.codec import SessionSetup
from live_assist.ports.listener import AnswerListener, SessionListener

SAMPLE_RATE = 16000
FRAME_DURATION_MS = 100

SETUP_COMPLETE = json.dumps({"setupComplete": {}})


def gemini_transcript(text: str) -> str:
    return json.dumps({"serverContent": {"inputTranscription": {"text": text}}})


def gemini_turn_complete() -> str:
    return json.dumps({"serverContent": {"turnComplete": True}})


def gemini_error(message: str = "invalid model", code: int = 400) -> str:
    return json.dumps({"error": {"code": code, "message": message}})


def generate_sine_frame(
    frequency: float = 440.0,
    duration_ms: int = FRAME_DURATION_MS,
    sample_rate: int = SAMPLE_RATE,
) -> AudioFrame:
    num_samples = int(sample_rate * duration_ms / 1000)
    t = np.arange(num_samples) / sample_rate
    signal = np.sin(2 * np.pi * frequency * t) * 0.5
    pcm = (signal * 32767).astype(np.int16).tobytes()
    return AudioFrame(data=pcm, format=AudioFormat(sample_rate=sample_rate))


class FakeTransport:
    """Queue-backed transport. The first message sent is treated as setup and
    answered with ``setup_reply`` unless it is None."""

    def __init__(
        self,
        setup_reply: str | None = SETUP_COMPLETE,
        connect_error: Exception | None = None,
    ) -> None:
        self._setup_reply = setup_reply
        self._connect_error = connect_error
        self._incoming: asyncio.Queue[str | Exception] = asyncio.Queue()
        self.url: str | None = None
        self.headers: dict[str, str] | None = None
        self.sent: list[str] = []
        self.connected = False
        self.closed = False

    @property
    def is_open(self) -> bool:
        return self.connected and not self.closed

    async def connect(self, url: str, headers: dict[str, str]) -> None:
        if self._connect_error is not None:
            raise self._connect_error
        self.url = url
        self.headers = headers
        self.connected = True

    async def send(self, message: str) -> None:
        if self.closed:
            raise TransportFailure("send on closed transport")
        first = not self.sent
        self.sent.append(message)
        if first and self._setup_reply is not None:
            self.push(self._setup_reply)

    async def receive(self) -> str:
        item = await self._incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def push(self, raw: str) -> None:
        self._incoming.put_nowait(raw)

    def drop(self, code: int = 1006, reason: str = "abnormal closure") -> None:
        self._incoming.put_nowait(TransportClosed(code=code, reason=reason))

    @property
    def audio_messages(self) -> list[dict]:
        return [json.loads(m) for m in self.sent[1:]]


class FakeTransportFactory:
    """Creates one FakeTransport per connection attempt, consuming ``plan``
    entries as constructor options; extra attempts get default transports."""

    def __init__(self, plan: list[dict] | None = None) -> None:
        self.plan = list(plan or [])
        self.transports: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        options = self.plan.pop(0) if self.plan else {}
        transport = FakeTransport(**options)
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]


class FakeAnswerStreamer:
    def __init__(self, chunks: list[str] | None = None, error: Exception | None = None) -> None:
        self._chunks = chunks if chunks is not None else ["Paris", " is the capital."]
        self._error = error
        self.questions: list[str] = []

    async def stream(self, question: str, cancel_event: asyncio.Event) -> AsyncIterator[str]:
        self.questions.append(question)
        for chunk in self._chunks:
            if cancel_event.is_set():
                return
            yield chunk
            await asyncio.sleep(0)
        if self._error is not None:
            raise self._error


class RecordingListener(SessionListener, AnswerListener):
    def __init__(self) -> None:
        self.transcripts: list[str] = []
        self.turns: list[str] = []
        self.model_outputs: list[str] = []
        self.closed: list[Exception | None] = []
        self.questions: list[str] = []
        self.chunks: list[tuple[str, str]] = []
        self.completed: list[str] = []

    def on_input_transcript(self, text: str) -> None:
        self.transcripts.append(text)

    def on_turn_complete(self, text: str) -> None:
        self.turns.append(text)

    def on_model_output(self, text: str) -> None:
        self.model_outputs.append(text)

    def on_session_closed(self, error: Exception | None) -> None:
        self.closed.append(error)

    def on_question_detected(self, question: str) -> None:
        self.questions.append(question)

    def on_answer_chunk(self, question: str, chunk: str) -> None:
        self.chunks.append((question, chunk))

    def on_answer_complete(self, question: str) -> None:
        self.completed.append(question)

    def answer_for(self, question: str) -> str:
        return "".join(chunk for q, chunk in self.chunks if q == question)


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def answer_streamer():
    return FakeAnswerStreamer()


@pytest.fixture
def recording_listener():
    return RecordingListener()


@pytest.fixture
def sine_frames():
    return [generate_sine_frame() for _ in range(5)]


@pytest.fixture
def make_session(transport_factory, answer_streamer):
    def build(**overrides) -> LiveSession:
        options = {
            "codec": GeminiLiveCodec(),
            "transport_factory": transport_factory,
            "api_key": "test-key",
            "setup": SessionSetup(model="models/test-live"),
            "answer_streamer": answer_streamer,
            "setup_timeout_seconds": 1.0,
        }
        options.update(overrides)
        return LiveSession(**options)

    return build


@pytest.fixture
def wait_until():
    async def poll(predicate, timeout: float = 2.0) -> None:
        async def loop() -> None:
            while not predicate():
                await asyncio.sleep(0.005)

        await asyncio.wait_for(loop(), timeout=timeout)

    return poll


@pytest.fixture
def wire():
    class Wire:
        setup_complete = SETUP_COMPLETE
        transcript = staticmethod(gemini_transcript)
        turn_complete = staticmethod(gemini_turn_complete)
        error = staticmethod(gemini_error)

    return Wire


@pytest.fixture
def refused():
    def make(count: int) -> list[dict]:
        return [{"connect_error": TransportFailure("connection refused")} for _ in range(count)]

    return make

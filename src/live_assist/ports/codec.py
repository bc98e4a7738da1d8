from dataclasses import dataclass, field
from typing import Protocol

from live_assist.domain.audio import AudioFormat
from live_assist.domain.events import LiveEvent


@dataclass(frozen=True)
class SessionSetup:
    model: str
    system_instruction: str = ""
    response_modalities: list[str] = field(default_factory=list)
    transcription_model: str = ""


class LiveCodecPort(Protocol):
    wire_format: AudioFormat
    cumulative_transcripts: bool

    def endpoint(self, api_key: str, model: str) -> str: ...
    def headers(self, api_key: str) -> dict[str, str]: ...
    def encode_setup(self, setup: SessionSetup) -> str: ...
    def encode_audio(self, pcm: bytes, audio_format: AudioFormat) -> str: ...
    def decode(self, raw: str) -> tuple[LiveEvent, ...]: ...
    def answer_endpoint(self, model: str) -> str: ...
    def answer_headers(self, api_key: str) -> dict[str, str]: ...
    def encode_question(self, question: str, model: str) -> dict: ...
    def decode_answer_chunk(self, data: str) -> str | None: ...

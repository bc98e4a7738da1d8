import base64
import json
import logging

from live_assist.domain.audio import AudioFormat
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
from live_assist.domain.questions import build_answer_prompt
from live_assist.ports.codec import SessionSetup

logger = logging.getLogger(__name__)

LIVE_ENDPOINT = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1alpha.GenerativeService.BidiGenerateContent"
)
REST_BASE_URL = "https://generativelanguage.googleapis.com/v1"
DEFAULT_LIVE_MODEL = "models/gemini-2.5-flash-native-audio-preview-12-2025"
DEFAULT_ANSWER_MODEL = "gemini-2.5-flash"
DEFAULT_SYSTEM_INSTRUCTION = "Listen to the user and do not speak"


class GeminiLiveCodec:
    wire_format = AudioFormat(sample_rate=16000, bits_per_sample=16, channels=1)
    cumulative_transcripts = False

    def endpoint(self, api_key: str, model: str) -> str:
        return f"{LIVE_ENDPOINT}?key={api_key}"

    def headers(self, api_key: str) -> dict[str, str]:
        return {}

    def encode_setup(self, setup: SessionSetup) -> str:
        payload = {
            "setup": {
                "model": setup.model or DEFAULT_LIVE_MODEL,
                "generationConfig": {
                    "responseModalities": setup.response_modalities or ["AUDIO"],
                },
                "inputAudioTranscription": {},
                "systemInstruction": {
                    "parts": [{"text": setup.system_instruction or DEFAULT_SYSTEM_INSTRUCTION}],
                },
            }
        }
        return json.dumps(payload)

    def encode_audio(self, pcm: bytes, audio_format: AudioFormat) -> str:
        payload = {
            "realtimeInput": {
                "mediaChunks": [
                    {
                        "mimeType": audio_format.mime_type,
                        "data": base64.b64encode(pcm).decode("ascii"),
                    }
                ]
            }
        }
        return json.dumps(payload)

    def decode(self, raw: str) -> tuple[LiveEvent, ...]:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as exc:
            return (DecodeFailure(raw=str(raw), detail=str(exc)),)
        if not isinstance(message, dict):
            return (DecodeFailure(raw=raw, detail="Message is not a JSON object"),)

        try:
            events = _decode_message(message)
        except (AttributeError, TypeError) as exc:
            return (DecodeFailure(raw=raw, detail=f"Unexpected message shape: {exc}"),)

        return tuple(events) or (Unrecognized(raw=raw),)

    def answer_endpoint(self, model: str) -> str:
        return f"{REST_BASE_URL}/models/{model or DEFAULT_ANSWER_MODEL}:streamGenerateContent?alt=sse"

    def answer_headers(self, api_key: str) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": api_key}

    def encode_question(self, question: str, model: str) -> dict:
        return {"contents": [{"parts": [{"text": build_answer_prompt(question)}]}]}

    def decode_answer_chunk(self, data: str) -> str | None:
        try:
            chunk = json.loads(data)
            text = chunk["candidates"][0]["content"]["parts"][0]["text"]
        except (json.JSONDecodeError, KeyError, IndexError, TypeError):
            logger.debug("Skipping answer chunk without text: %s", data[:200])
            return None
        return text or None


def _decode_message(message: dict) -> list[LiveEvent]:
    events: list[LiveEvent] = []

    if "setupComplete" in message:
        events.append(SetupComplete())

    server_content = message.get("serverContent")
    if isinstance(server_content, dict):
        transcription = server_content.get("inputTranscription") or {}
        text = transcription.get("text")
        if text:
            events.append(TranscriptDelta(text=text))

        model_turn = server_content.get("modelTurn") or {}
        for part in model_turn.get("parts") or []:
            part_text = part.get("text")
            if part_text and part_text.strip():
                events.append(ModelOutput(text=part_text))

        if server_content.get("turnComplete") is True:
            events.append(TurnComplete())

    if "error" in message:
        events.append(ProviderErrorEvent(detail=json.dumps(message["error"])))

    return events

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

REALTIME_ENDPOINT = "wss://api.openai.com/v1/realtime"
RESPONSES_ENDPOINT = "https://api.openai.com/v1/responses"
DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview"
DEFAULT_TRANSCRIPTION_MODEL = "gpt-4o-mini-transcribe"
DEFAULT_ANSWER_MODEL = "gpt-4o-mini"
DEFAULT_INSTRUCTIONS = "Provide verbatim transcription of the user audio. Do not answer or summarize."

SETUP_EVENTS = {"session.created", "session.updated"}
TRANSCRIPT_DELTA_EVENT = "conversation.item.input_audio_transcription.delta"
TRANSCRIPT_COMPLETED_EVENT = "conversation.item.input_audio_transcription.completed"
RESPONSE_TEXT_EVENT = "response.text.delta"
ANSWER_DELTA_EVENT = "response.output_text.delta"


class OpenAiRealtimeCodec:
    wire_format = AudioFormat(sample_rate=24000, bits_per_sample=16, channels=1)
    cumulative_transcripts = False

    def endpoint(self, api_key: str, model: str) -> str:
        return f"{REALTIME_ENDPOINT}?model={model or DEFAULT_REALTIME_MODEL}"

    def headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

    def encode_setup(self, setup: SessionSetup) -> str:
        payload = {
            "type": "session.update",
            "session": {
                "modalities": [m.lower() for m in setup.response_modalities] or ["text"],
                "instructions": setup.system_instruction or DEFAULT_INSTRUCTIONS,
                "input_audio_format": "pcm16",
                "input_audio_transcription": {
                    "model": setup.transcription_model or DEFAULT_TRANSCRIPTION_MODEL,
                },
                "turn_detection": {"type": "server_vad"},
            },
        }
        return json.dumps(payload)

    def encode_audio(self, pcm: bytes, audio_format: AudioFormat) -> str:
        payload = {
            "type": "input_audio_buffer.append",
            "audio": base64.b64encode(pcm).decode("ascii"),
        }
        return json.dumps(payload)

    def decode(self, raw: str) -> tuple[LiveEvent, ...]:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as exc:
            return (DecodeFailure(raw=str(raw), detail=str(exc)),)
        if not isinstance(message, dict):
            return (DecodeFailure(raw=raw, detail="Message is not a JSON object"),)

        event_type = message.get("type")
        if not isinstance(event_type, str) or not event_type:
            return (Unrecognized(raw=raw),)

        if event_type in SETUP_EVENTS:
            return (SetupComplete(),)

        if event_type == "error":
            return (ProviderErrorEvent(detail=json.dumps(message.get("error", message))),)

        if event_type == TRANSCRIPT_DELTA_EVENT:
            delta = message.get("delta")
            if isinstance(delta, str) and delta:
                return (TranscriptDelta(text=delta),)
            return ()

        if event_type == TRANSCRIPT_COMPLETED_EVENT:
            transcript = message.get("transcript")
            return (TurnComplete(transcript=transcript if isinstance(transcript, str) else None),)

        if event_type == RESPONSE_TEXT_EVENT:
            delta = message.get("delta")
            if isinstance(delta, str) and delta.strip():
                return (ModelOutput(text=delta),)
            return ()

        return (Unrecognized(raw=raw),)

    def answer_endpoint(self, model: str) -> str:
        return RESPONSES_ENDPOINT

    def answer_headers(self, api_key: str) -> dict[str, str]:
        return {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"}

    def encode_question(self, question: str, model: str) -> dict:
        return {
            "model": model or DEFAULT_ANSWER_MODEL,
            "input": build_answer_prompt(question),
            "stream": True,
        }

    def decode_answer_chunk(self, data: str) -> str | None:
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError as exc:
            logger.warning("OpenAI answer chunk parse error: %s", exc)
            return None
        if not isinstance(chunk, dict) or chunk.get("type") != ANSWER_DELTA_EVENT:
            return None
        delta = chunk.get("delta")
        return delta if isinstance(delta, str) and delta else None

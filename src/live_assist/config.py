from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class LiveAssistConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LIVE_ASSIST_")

    provider: Literal["gemini", "openai"] = "gemini"
    answer_engine: Literal["live", "anthropic"] = "live"

    api_key_file: str = ""
    anthropic_api_key_file: str = ""

    gemini_live_model: str = "models/gemini-2.5-flash-native-audio-preview-12-2025"
    gemini_answer_model: str = "gemini-2.5-flash"
    openai_realtime_model: str = "gpt-4o-realtime-preview"
    openai_transcription_model: str = "gpt-4o-mini-transcribe"
    openai_answer_model: str = "gpt-4o-mini"
    anthropic_model: str = "claude-sonnet-4-5"

    system_instruction: str = ""

    setup_timeout_seconds: float = 10.0
    reconnect_max_attempts: int = 5
    reconnect_initial_delay_seconds: float = 2.0
    reconnect_max_delay_seconds: float = 30.0
    disconnect_timeout_seconds: float = 2.0
    answer_timeout_seconds: float = 120.0

    capture_device: str = ""
    capture_gain: float = 1.0
    sample_rate: int = 16000
    frame_duration_ms: int = 100

    show_transcript: bool = True
    # overrides the codec default when set
    cumulative_transcripts: bool | None = None

    socket_path: str = "/tmp/live-assist.sock"
    log_file: str = "/tmp/live-assist.log"

    @property
    def live_model(self) -> str:
        return self.gemini_live_model if self.provider == "gemini" else self.openai_realtime_model

    @property
    def answer_model(self) -> str:
        if self.answer_engine == "anthropic":
            return self.anthropic_model
        return self.gemini_answer_model if self.provider == "gemini" else self.openai_answer_model

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

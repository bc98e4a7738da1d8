import logging
from collections.abc import Callable

from live_assist.adapters.console_output import ConsoleListener
from live_assist.adapters.gemini_codec import GeminiLiveCodec
from live_assist.adapters.openai_codec import OpenAiRealtimeCodec
from live_assist.adapters.sounddevice_audio import SounddeviceCapture
from live_assist.adapters.unix_control import UnixControlServer
from live_assist.adapters.websocket_transport import WebsocketTransport
from live_assist.config import LiveAssistConfig
from live_assist.domain.assistant import LiveAssistant
from live_assist.domain.question_trigger import QuestionResponder
from live_assist.domain.session import LiveSession
from live_assist.ports.answer import AnswerStreamerPort
from live_assist.ports.codec import LiveCodecPort, SessionSetup

logger = logging.getLogger(__name__)


def create_codec(config: LiveAssistConfig) -> LiveCodecPort:
    if config.provider == "openai":
        return OpenAiRealtimeCodec()
    return GeminiLiveCodec()


def create_setup(config: LiveAssistConfig) -> SessionSetup:
    return SessionSetup(
        model=config.live_model,
        system_instruction=config.system_instruction,
        transcription_model=config.openai_transcription_model if config.provider == "openai" else "",
    )


def create_answer_streamer(config: LiveAssistConfig, codec: LiveCodecPort, api_key: str) -> AnswerStreamerPort:
    if config.answer_engine == "anthropic":
        from live_assist.adapters.anthropic_answers import AnthropicAnswerStreamer

        anthropic_api_key = config.read_secret(config.anthropic_api_key_file)
        return AnthropicAnswerStreamer(api_key=anthropic_api_key, model=config.anthropic_model)

    from live_assist.adapters.http_answers import HttpAnswerStreamer

    return HttpAnswerStreamer(
        codec=codec,
        api_key=api_key,
        model=config.answer_model,
        timeout_seconds=config.answer_timeout_seconds,
    )


def create_session_factory(config: LiveAssistConfig) -> Callable[[], LiveSession]:
    api_key = config.read_secret(config.api_key_file)
    codec = create_codec(config)
    setup = create_setup(config)
    answer_streamer = create_answer_streamer(config, codec, api_key)

    def session_factory() -> LiveSession:
        return LiveSession(
            codec=codec,
            transport_factory=WebsocketTransport,
            api_key=api_key,
            setup=setup,
            answer_streamer=answer_streamer,
            setup_timeout_seconds=config.setup_timeout_seconds,
            reconnect_max_attempts=config.reconnect_max_attempts,
            reconnect_initial_delay_seconds=config.reconnect_initial_delay_seconds,
            reconnect_max_delay_seconds=config.reconnect_max_delay_seconds,
            disconnect_timeout_seconds=config.disconnect_timeout_seconds,
            cumulative_transcripts=config.cumulative_transcripts,
        )

    return session_factory


def create_capture(config: LiveAssistConfig) -> SounddeviceCapture:
    return SounddeviceCapture(
        device=config.capture_device,
        sample_rate=config.sample_rate,
        frame_duration_ms=config.frame_duration_ms,
        gain=config.capture_gain,
    )


def create_assistant(config: LiveAssistConfig) -> tuple[LiveAssistant, UnixControlServer]:
    console = ConsoleListener(show_transcript=config.show_transcript)
    responder = QuestionResponder(answer_listener=console)

    assistant = LiveAssistant(
        capture=create_capture(config),
        session_factory=create_session_factory(config),
        responder=responder,
        listener=console,
        setup_timeout_seconds=config.setup_timeout_seconds,
    )
    control = UnixControlServer(socket_path=config.socket_path)
    logger.debug("Assistant created (provider=%s, answers=%s)", config.provider, config.answer_engine)
    return assistant, control

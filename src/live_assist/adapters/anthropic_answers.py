import asyncio
import logging
from collections.abc import AsyncIterator

import anthropic

from live_assist.domain.errors import ProviderError, TransportFailure
from live_assist.domain.questions import build_answer_prompt

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5"


class AnthropicAnswerStreamer:
    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, max_tokens: int = 1024) -> None:
        self._client = anthropic.AsyncAnthropic(api_key=api_key or None)
        self._model = model.removeprefix("anthropic/")
        self._max_tokens = max_tokens

    async def stream(self, question: str, cancel_event: asyncio.Event) -> AsyncIterator[str]:
        kwargs: dict = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": build_answer_prompt(question)}],
        }

        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    if cancel_event.is_set():
                        logger.debug("Anthropic answer stream cancelled")
                        break
                    yield text
        except anthropic.APIStatusError as exc:
            raise ProviderError(f"Anthropic API error {exc.status_code}: {exc.message}") from exc
        except anthropic.APIConnectionError as exc:
            raise TransportFailure(f"Anthropic connection failed: {exc}") from exc

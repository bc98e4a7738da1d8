import asyncio
import logging
from collections.abc import AsyncIterator

import httpx
from httpx_sse import aconnect_sse

from live_assist.domain.errors import ProviderError, TransportFailure
from live_assist.ports.codec import LiveCodecPort

logger = logging.getLogger(__name__)


class HttpAnswerStreamer:
    """Streams answers over server-sent events using the provider codec's wire format."""

    def __init__(
        self,
        codec: LiveCodecPort,
        api_key: str,
        model: str = "",
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._codec = codec
        self._api_key = api_key
        self._model = model
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    async def stream(self, question: str, cancel_event: asyncio.Event) -> AsyncIterator[str]:
        payload = self._codec.encode_question(question, self._model)
        url = self._codec.answer_endpoint(self._model)
        headers = self._codec.answer_headers(self._api_key)

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                async with aconnect_sse(client, "POST", url, json=payload, headers=headers) as event_source:
                    response = event_source.response
                    if response.status_code >= 400:
                        body = (await response.aread()).decode(errors="replace")
                        raise ProviderError(f"Answer request failed ({response.status_code}): {body}")

                    async for sse in event_source.aiter_sse():
                        if cancel_event.is_set():
                            logger.debug("Answer stream cancelled")
                            break
                        if sse.data == "[DONE]":
                            break
                        chunk = self._codec.decode_answer_chunk(sse.data)
                        if chunk:
                            yield chunk
            except httpx.TransportError as exc:
                raise TransportFailure(f"Answer stream failed: {exc}") from exc

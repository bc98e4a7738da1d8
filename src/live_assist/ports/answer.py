import asyncio
from typing import Protocol, AsyncIterator


class AnswerStreamerPort(Protocol):
    def stream(self, question: str, cancel_event: asyncio.Event) -> AsyncIterator[str]: ...

import asyncio
from dataclasses import dataclass, field
from typing import AsyncIterator, Protocol

CONTROL_ACTIONS = ("start", "stop", "status")


@dataclass(frozen=True)
class ControlRequest:
    action: str
    payload: dict | None = None
    reply: asyncio.Future = field(default_factory=lambda: asyncio.get_running_loop().create_future(), compare=False)

    def respond(self, data: dict) -> None:
        if not self.reply.done():
            self.reply.set_result(data)


class ControlServerPort(Protocol):
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    def requests(self) -> AsyncIterator[ControlRequest]: ...

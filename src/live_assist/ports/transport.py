from typing import Protocol


class TransportPort(Protocol):
    @property
    def is_open(self) -> bool: ...
    async def connect(self, url: str, headers: dict[str, str]) -> None: ...
    async def send(self, message: str) -> None: ...
    async def receive(self) -> str: ...
    async def close(self) -> None: ...

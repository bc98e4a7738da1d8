from typing import Protocol, AsyncIterator

from live_assist.domain.audio import AudioFrame


class FrameSourcePort(Protocol):
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    def read_frames(self) -> AsyncIterator[AudioFrame]: ...

import asyncio
import logging
import os
from collections.abc import AsyncIterator

import janus
import numpy as np
import sounddevice as sd

from live_assist.domain.audio import AudioFormat, AudioFrame

logger = logging.getLogger(__name__)

QUEUE_MAX_FRAMES = 100
READ_POLL_SECONDS = 1.0


def find_input_device(name: str) -> tuple[int, str] | None:
    """Index and full name of the first input device whose name contains ``name``."""
    needle = name.lower()
    for index, info in enumerate(sd.query_devices()):
        if needle in info["name"].lower() and info["max_input_channels"] > 0:
            return index, info["name"]
    return None


class SounddeviceCapture:
    def __init__(
        self,
        device: str | int | None = None,
        sample_rate: int = 16000,
        frame_duration_ms: int = 100,
        gain: float = 1.0,
    ) -> None:
        self._device = device if device != "" else None
        self._format = AudioFormat(sample_rate=sample_rate, bits_per_sample=16, channels=1)
        self._frame_duration_ms = frame_duration_ms
        self._blocksize = int(sample_rate * frame_duration_ms / 1000)
        self._gain = gain
        self._stream: sd.InputStream | None = None
        self._frames: janus.Queue[AudioFrame] | None = None
        self._overflow_count = 0

    @property
    def audio_format(self) -> AudioFormat:
        return self._format

    @property
    def frame_size(self) -> int:
        return self._blocksize

    @property
    def dropped_frames(self) -> int:
        return self._overflow_count

    async def start(self) -> None:
        self._frames = janus.Queue(maxsize=QUEUE_MAX_FRAMES)
        self._overflow_count = 0

        device = self._resolve_device()
        self._stream = sd.InputStream(
            device=device,
            samplerate=self._format.sample_rate,
            channels=1,
            dtype="float32",
            blocksize=self._blocksize,
            callback=self._on_block,
        )
        self._stream.start()
        logger.info(
            "Capturing from %s at %d Hz in %d ms frames",
            device if device is not None else "default input", self._format.sample_rate, self._frame_duration_ms,
        )

    async def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()

        frames, self._frames = self._frames, None
        if frames is not None:
            frames.close()
            await frames.wait_closed()

        if self._overflow_count:
            logger.warning("Capture queue overflowed, %d frames dropped", self._overflow_count)

    async def read_frames(self) -> AsyncIterator[AudioFrame]:
        frames = self._frames
        if frames is None:
            return
        while True:
            try:
                yield await asyncio.wait_for(frames.async_q.get(), timeout=READ_POLL_SECONDS)
            except asyncio.TimeoutError:
                continue
            except janus.AsyncQueueShutDown:
                return

    def _on_block(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            logger.warning("Input stream status: %s", status)
        queue = self._frames
        if queue is None:
            return
        mono = np.clip(indata[:, 0] * self._gain, -1.0, 1.0)
        frame = AudioFrame(data=(mono * 32767).astype(np.int16).tobytes(), format=self._format)
        try:
            queue.sync_q.put_nowait(frame)
        except janus.SyncQueueFull:
            self._overflow_count += 1

    def _resolve_device(self) -> int | None:
        if self._device is None:
            return None
        if isinstance(self._device, int):
            return self._device
        if self._device.isdigit():
            return int(self._device)

        match = find_input_device(self._device)
        if match is not None:
            logger.info("Input device '%s' resolved to #%d (%s)", self._device, *match)
            return match[0]

        # PipeWire-only sources are reachable through the default device
        os.environ["PIPEWIRE_NODE"] = self._device
        logger.info("'%s' is not a PortAudio device, routing through PIPEWIRE_NODE", self._device)
        return None

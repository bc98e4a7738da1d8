import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioFormat:
    sample_rate: int = 16000
    bits_per_sample: int = 16
    channels: int = 1

    @property
    def bytes_per_frame(self) -> int:
        return self.bits_per_sample // 8 * self.channels

    @property
    def mime_type(self) -> str:
        return f"audio/pcm;rate={self.sample_rate}"


CANONICAL_FORMAT = AudioFormat(sample_rate=16000, bits_per_sample=16, channels=1)


@dataclass(frozen=True)
class AudioFrame:
    data: bytes
    format: AudioFormat = CANONICAL_FORMAT

    @property
    def duration_ms(self) -> float:
        if not self.data or self.format.bytes_per_frame == 0:
            return 0.0
        samples = len(self.data) // self.format.bytes_per_frame
        return samples * 1000 / self.format.sample_rate


def convert_to_wire(frame: AudioFrame, target: AudioFormat = CANONICAL_FORMAT) -> bytes:
    if frame.format == target:
        return frame.data

    try:
        samples = _decode_samples(frame.data, frame.format)
    except ValueError as exc:
        logger.warning("Unsupported audio format %s (%s), sending original bytes", frame.format, exc)
        return frame.data

    if frame.format.channels > 1:
        samples = samples.reshape(-1, frame.format.channels).mean(axis=1)

    if frame.format.sample_rate != target.sample_rate and len(samples) > 0:
        samples = _resample(samples, frame.format.sample_rate, target.sample_rate)

    pcm = np.clip(samples * 32767, -32768, 32767).astype("<i2")
    return pcm.tobytes()


def _decode_samples(data: bytes, audio_format: AudioFormat) -> np.ndarray:
    if audio_format.bits_per_sample == 16:
        dtype = "<i2"
        scale = 32768.0
    elif audio_format.bits_per_sample == 32:
        dtype = "<f4"
        scale = 1.0
    else:
        raise ValueError(f"{audio_format.bits_per_sample}-bit samples")

    item_size = audio_format.bits_per_sample // 8
    usable = len(data) - len(data) % (item_size * audio_format.channels)
    samples = np.frombuffer(data[:usable], dtype=dtype).astype(np.float32)
    return samples / scale


def _resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    target_length = int(round(len(samples) * target_rate / source_rate))
    if target_length == 0:
        return np.zeros(0, dtype=np.float32)
    source_positions = np.arange(len(samples)) / source_rate
    target_positions = np.arange(target_length) / target_rate
    return np.interp(target_positions, source_positions, samples).astype(np.float32)

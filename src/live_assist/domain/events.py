from dataclasses import dataclass, field
from time import time


@dataclass(frozen=True)
class LiveEvent:
    timestamp: float = field(default_factory=time)


@dataclass(frozen=True)
class SetupComplete(LiveEvent):
    pass


@dataclass(frozen=True)
class TranscriptDelta(LiveEvent):
    text: str = ""


@dataclass(frozen=True)
class ModelOutput(LiveEvent):
    text: str = ""


@dataclass(frozen=True)
class TurnComplete(LiveEvent):
    transcript: str | None = None


@dataclass(frozen=True)
class ProviderErrorEvent(LiveEvent):
    detail: str = ""


@dataclass(frozen=True)
class Unrecognized(LiveEvent):
    raw: str = ""


@dataclass(frozen=True)
class DecodeFailure(LiveEvent):
    raw: str = ""
    detail: str = ""

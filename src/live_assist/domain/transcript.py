import logging
import threading

logger = logging.getLogger(__name__)


class TurnBuffer:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._parts: list[str] = []

    @property
    def text(self) -> str:
        with self._lock:
            return "".join(self._parts)

    def append(self, text: str) -> None:
        with self._lock:
            self._parts.append(text)

    def drain_and_clear(self) -> str:
        with self._lock:
            text = "".join(self._parts)
            self._parts.clear()
        return text

    def clear(self) -> None:
        with self._lock:
            self._parts.clear()


class OverlapMerger:
    """Rolling view over providers that resend growing cumulative text.

    ``merge`` returns only the part of each snapshot that has not been shown
    yet. The running text never shrinks. Rules are applied in order and the
    first match wins:

    1. same text ignoring case: nothing new
    2. new text extends the running text: emit the extension
    3. new text is a prefix of the running text: nothing new
    4. longest suffix of the running text that prefixes the new text: emit the rest
    5. new text already appears inside the running text: nothing new
    6. unrelated text: emit it on a new line
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._text = ""

    @property
    def text(self) -> str:
        return self._text

    def merge(self, new_text: str) -> str | None:
        if not new_text:
            return None

        with self._lock:
            previous = self._text

            if new_text.lower() == previous.lower():
                return None

            if new_text.startswith(previous):
                self._text = new_text
                return new_text[len(previous) :] or None

            if previous.startswith(new_text):
                return None

            for overlap in range(min(len(previous), len(new_text)), 0, -1):
                if previous.endswith(new_text[:overlap]):
                    delta = new_text[overlap:]
                    if not delta:
                        return None
                    self._text = previous + delta
                    return delta

            if new_text in previous:
                return None

            delta = "\n" + new_text
            self._text = previous + delta
            return delta

    def reset(self) -> None:
        with self._lock:
            self._text = ""


class TranscriptAssembler:
    def __init__(self, cumulative: bool = False) -> None:
        self._cumulative = cumulative
        self._turn = TurnBuffer()
        self._view = OverlapMerger()

    @property
    def cumulative(self) -> bool:
        return self._cumulative

    @property
    def current_turn(self) -> str:
        return self._turn.text

    @property
    def rolling_text(self) -> str:
        return self._view.text

    def on_delta(self, text: str) -> str | None:
        if self._cumulative:
            merged = self._view.merge(text)
            if not merged:
                return None
            text = merged
        elif not text:
            return None

        self._turn.append(text)
        return text

    def on_turn_complete(self, provider_transcript: str | None = None) -> str:
        buffered = self._turn.drain_and_clear().strip()
        if provider_transcript and provider_transcript.strip():
            return provider_transcript.strip()
        return buffered

    def clear_turn(self) -> None:
        dropped = self._turn.drain_and_clear()
        if dropped.strip():
            logger.debug("Discarded partial turn: %s", dropped.strip())

    def reset(self) -> None:
        self._turn.clear()
        self._view.reset()

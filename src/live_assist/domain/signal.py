import asyncio

from live_assist.domain.errors import SetupTimeout


class CompletionSignal:
    """Single-fire completion shared between the receive loop and setup waiters.

    Ends in exactly one of three outcomes: resolved, failed with an error, or
    timed out. A timeout is recorded as a ``SetupTimeout`` failure so later
    waiters observe the same outcome.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._error: BaseException | None = None

    @property
    def done(self) -> bool:
        return self._event.is_set()

    @property
    def succeeded(self) -> bool:
        return self._event.is_set() and self._error is None

    @property
    def error(self) -> BaseException | None:
        return self._error

    def resolve(self) -> bool:
        if self._event.is_set():
            return False
        self._event.set()
        return True

    def fail(self, error: BaseException) -> bool:
        if self._event.is_set():
            return False
        self._error = error
        self._event.set()
        return True

    async def wait(self, timeout: float | None = None) -> None:
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            self.fail(SetupTimeout(f"Setup not acknowledged within {timeout:.1f}s"))
        if self._error is not None:
            raise self._error

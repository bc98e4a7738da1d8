class SessionError(Exception):
    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail


class TransportFailure(SessionError):
    pass


class TransportClosed(TransportFailure):
    def __init__(self, detail: str = "", code: int | None = None, reason: str = "") -> None:
        super().__init__(detail or f"Connection closed (code={code}, reason={reason!r})")
        self.code = code
        self.reason = reason


class SetupTimeout(SessionError):
    pass


class ProviderError(SessionError):
    pass


class SessionCancelledError(SessionError):
    pass

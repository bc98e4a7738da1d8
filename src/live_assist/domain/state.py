from enum import Enum, auto


class SessionState(Enum):
    IDLE = auto()
    CONNECTING = auto()
    AWAITING_SETUP = auto()
    STREAMING = auto()
    RECONNECTING = auto()
    CLOSED = auto()


VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.CONNECTING, SessionState.CLOSED},
    SessionState.CONNECTING: {SessionState.AWAITING_SETUP, SessionState.CLOSED},
    SessionState.AWAITING_SETUP: {SessionState.STREAMING, SessionState.CLOSED},
    SessionState.STREAMING: {SessionState.RECONNECTING, SessionState.CLOSED},
    SessionState.RECONNECTING: {SessionState.STREAMING, SessionState.CLOSED},
    SessionState.CLOSED: set(),
}


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: SessionState, target: SessionState) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")

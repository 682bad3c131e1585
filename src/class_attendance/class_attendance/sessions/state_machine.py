from __future__ import annotations

from ..core.enums import SessionEvent, SessionState
from ..core.exceptions import InvalidTransitionError

_TRANSITIONS = {
    (SessionState.SCHEDULED, SessionEvent.OPEN): SessionState.OPEN,
    (SessionState.OPEN, SessionEvent.CLOSE): SessionState.CLOSED,
}

_REJECTIONS = {
    (SessionState.OPEN, SessionEvent.OPEN): "Attendance is already open",
    (SessionState.CLOSED, SessionEvent.OPEN): "Attendance is already closed",
    (SessionState.SCHEDULED, SessionEvent.CLOSE): "Attendance is not open",
    (SessionState.CLOSED, SessionEvent.CLOSE): "Attendance is already closed",
}


def transition(state: SessionState, event: SessionEvent) -> SessionState:
    """Return the state reached from `state` on `event`.

    Raises InvalidTransitionError for every pair not in the table.
    """

    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(_REJECTIONS.get((state, event), f"Cannot {event.value} a {state.value} session"))

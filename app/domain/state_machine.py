from app.domain.enums import ConnectionAction, ConnectionState
from app.domain.exceptions import InvalidConnectionTransition


class ConnectionLifecycle:
    """State machine for a connection: connecting -> open <-> in_session -> closed."""

    _allowed_transitions: dict[tuple[ConnectionState, ConnectionAction], ConnectionState] = {
        (ConnectionState.CONNECTING, ConnectionAction.REGISTER): ConnectionState.OPEN,
        (ConnectionState.OPEN, ConnectionAction.JOIN_SESSION): ConnectionState.IN_SESSION,
        (ConnectionState.IN_SESSION, ConnectionAction.LEAVE_SESSION): ConnectionState.OPEN,
        (ConnectionState.CONNECTING, ConnectionAction.DISCONNECT): ConnectionState.CLOSED,
        (ConnectionState.OPEN, ConnectionAction.DISCONNECT): ConnectionState.CLOSED,
        (ConnectionState.IN_SESSION, ConnectionAction.DISCONNECT): ConnectionState.CLOSED,
    }

    @classmethod
    def transition(cls, current: ConnectionState, action: ConnectionAction) -> ConnectionState:
        # Switching sessions and repeated leaves are idempotent.
        if current == ConnectionState.IN_SESSION and action == ConnectionAction.JOIN_SESSION:
            return ConnectionState.IN_SESSION
        if current == ConnectionState.OPEN and action == ConnectionAction.LEAVE_SESSION:
            return ConnectionState.OPEN

        next_state = cls._allowed_transitions.get((current, action))
        if not next_state:
            raise InvalidConnectionTransition(current=current, action=action)
        return next_state

    @staticmethod
    def accepts_frames(state: ConnectionState) -> bool:
        return state in (ConnectionState.OPEN, ConnectionState.IN_SESSION)

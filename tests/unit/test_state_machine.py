import pytest

from app.domain.enums import ConnectionAction, ConnectionState
from app.domain.exceptions import InvalidConnectionTransition
from app.domain.state_machine import ConnectionLifecycle


def test_register_opens_connection() -> None:
    next_state = ConnectionLifecycle.transition(
        ConnectionState.CONNECTING, ConnectionAction.REGISTER
    )
    assert next_state == ConnectionState.OPEN


def test_join_and_leave_round_trip() -> None:
    joined = ConnectionLifecycle.transition(ConnectionState.OPEN, ConnectionAction.JOIN_SESSION)
    left = ConnectionLifecycle.transition(joined, ConnectionAction.LEAVE_SESSION)

    assert joined == ConnectionState.IN_SESSION
    assert left == ConnectionState.OPEN


def test_switching_sessions_stays_in_session() -> None:
    next_state = ConnectionLifecycle.transition(
        ConnectionState.IN_SESSION, ConnectionAction.JOIN_SESSION
    )
    assert next_state == ConnectionState.IN_SESSION


def test_idempotent_leave_without_session() -> None:
    next_state = ConnectionLifecycle.transition(
        ConnectionState.OPEN, ConnectionAction.LEAVE_SESSION
    )
    assert next_state == ConnectionState.OPEN


@pytest.mark.parametrize(
    "state",
    [ConnectionState.CONNECTING, ConnectionState.OPEN, ConnectionState.IN_SESSION],
)
def test_disconnect_closes_from_any_live_state(state: ConnectionState) -> None:
    assert (
        ConnectionLifecycle.transition(state, ConnectionAction.DISCONNECT)
        == ConnectionState.CLOSED
    )


@pytest.mark.parametrize("action", list(ConnectionAction))
def test_closed_is_terminal(action: ConnectionAction) -> None:
    with pytest.raises(InvalidConnectionTransition):
        ConnectionLifecycle.transition(ConnectionState.CLOSED, action)


def test_join_before_register_raises() -> None:
    with pytest.raises(InvalidConnectionTransition):
        ConnectionLifecycle.transition(ConnectionState.CONNECTING, ConnectionAction.JOIN_SESSION)


def test_frame_acceptance_rules() -> None:
    assert ConnectionLifecycle.accepts_frames(ConnectionState.OPEN)
    assert ConnectionLifecycle.accepts_frames(ConnectionState.IN_SESSION)
    assert not ConnectionLifecycle.accepts_frames(ConnectionState.CONNECTING)
    assert not ConnectionLifecycle.accepts_frames(ConnectionState.CLOSED)

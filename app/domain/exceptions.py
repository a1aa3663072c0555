from app.domain.enums import ConnectionAction, ConnectionState, SessionType


class InvalidConnectionTransition(ValueError):
    def __init__(self, current: ConnectionState, action: ConnectionAction) -> None:
        super().__init__(
            f"Cannot apply action '{action.value}' from state '{current.value}'."
        )
        self.current = current
        self.action = action


class DuplicateConnectionIdError(ValueError):
    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Connection '{connection_id}' is already registered")
        self.connection_id = connection_id


class ConnectionNotFoundError(LookupError):
    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Connection '{connection_id}' not found")
        self.connection_id = connection_id


class MalformedMessageError(ValueError):
    def __init__(self, reason: str) -> None:
        super().__init__("Invalid message format")
        self.reason = reason


class UnknownMessageTypeError(LookupError):
    def __init__(self, message_type: str) -> None:
        super().__init__(f"Unknown message type: {message_type}")
        self.message_type = message_type


class SessionTypeMismatchError(PermissionError):
    def __init__(
        self,
        message_type: str,
        required: SessionType,
        actual: SessionType | None,
    ) -> None:
        actual_label = actual.value if actual is not None else "none"
        super().__init__(
            f"Message '{message_type}' requires a '{required.value}' session, "
            f"connection is in '{actual_label}'"
        )
        self.message_type = message_type
        self.required = required
        self.actual = actual


class TransportWriteError(RuntimeError):
    def __init__(self, connection_id: str | None, reason: str) -> None:
        super().__init__(f"Failed to write to connection '{connection_id}': {reason}")
        self.connection_id = connection_id
        self.reason = reason

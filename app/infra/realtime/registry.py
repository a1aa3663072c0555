from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from app.domain.enums import ConnectionAction, ConnectionState, SessionType
from app.domain.exceptions import DuplicateConnectionIdError
from app.domain.state_machine import ConnectionLifecycle
from app.infra.realtime.sessions import SessionIndex
from app.infra.realtime.transport import Transport

logger = structlog.get_logger(__name__)


@dataclass(slots=True, eq=False)
class Connection:
    id: str
    transport: Transport
    student_id: str | None = None
    session_type: SessionType | None = None
    session_id: str | None = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))
    state: ConnectionState = ConnectionState.CONNECTING

    def touch(self, now: datetime | None = None) -> None:
        now = now or datetime.now(UTC)
        if now > self.last_activity:
            self.last_activity = now

    def apply(self, action: ConnectionAction) -> None:
        self.state = ConnectionLifecycle.transition(self.state, action)


class ConnectionSnapshot:
    """Restartable view over the connections registered when it was taken."""

    def __init__(self, connections: list[Connection]) -> None:
        self._connections = connections

    def __iter__(self) -> Iterator[Connection]:
        return iter(self._connections)

    def __len__(self) -> int:
        return len(self._connections)


class ConnectionRegistry:
    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self.sessions = SessionIndex(self)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def register(self, connection: Connection) -> Connection:
        if connection.id in self._connections:
            raise DuplicateConnectionIdError(connection.id)
        connection.apply(ConnectionAction.REGISTER)
        self._connections[connection.id] = connection
        logger.info("realtime.connection.registered", connection_id=connection.id)
        return connection

    def unregister(self, connection_id: str) -> Connection | None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return None

        if connection.session_id is not None:
            self.sessions.leave(connection.session_id, connection_id)

        del self._connections[connection_id]
        connection.apply(ConnectionAction.DISCONNECT)
        logger.info("realtime.connection.unregistered", connection_id=connection_id)
        return connection

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def all(self) -> ConnectionSnapshot:
        return ConnectionSnapshot(list(self._connections.values()))

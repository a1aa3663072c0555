from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol

import structlog

from app.domain.enums import ConnectionAction, SessionType
from app.domain.exceptions import ConnectionNotFoundError

if TYPE_CHECKING:
    from app.infra.realtime.registry import Connection

logger = structlog.get_logger(__name__)


class ConnectionLookup(Protocol):
    def get(self, connection_id: str) -> "Connection | None": ...


class SessionIndex:
    """Session id -> member connection ids.

    Holds ids only; connection records stay in the registry. A session exists
    exactly while it has at least one member.
    """

    def __init__(self, connections: ConnectionLookup) -> None:
        self._connections = connections
        self._members: dict[str, set[str]] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._members

    def __len__(self) -> int:
        return len(self._members)

    def members(self, session_id: str) -> frozenset[str]:
        return frozenset(self._members.get(session_id, ()))

    def join(
        self,
        session_id: str,
        connection_id: str,
        session_type: SessionType | None = None,
    ) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)

        if session_type is None:
            session_type = connection.session_type

        previous = connection.session_id
        if previous is not None and previous != session_id:
            self.leave(previous, connection_id)

        self._members.setdefault(session_id, set()).add(connection_id)
        connection.session_id = session_id
        connection.session_type = session_type
        connection.apply(ConnectionAction.JOIN_SESSION)
        logger.info(
            "realtime.session.joined",
            session_id=session_id,
            connection_id=connection_id,
            session_type=session_type.value if session_type else None,
        )

    def leave(self, session_id: str, connection_id: str) -> bool:
        """Remove a member; returns False when it was not a member."""
        members = self._members.get(session_id)
        if members is None or connection_id not in members:
            return False

        members.discard(connection_id)
        if not members:
            del self._members[session_id]

        connection = self._connections.get(connection_id)
        if connection is not None and connection.session_id == session_id:
            connection.session_id = None
            connection.session_type = None
            connection.apply(ConnectionAction.LEAVE_SESSION)

        logger.info(
            "realtime.session.left",
            session_id=session_id,
            connection_id=connection_id,
        )
        return True

    def members_excluding(
        self, session_id: str, exclude_ids: Iterable[str] = ()
    ) -> list[str]:
        members = self._members.get(session_id)
        if not members:
            return []
        excluded = set(exclude_ids)
        return [member for member in members if member not in excluded]

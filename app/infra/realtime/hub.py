from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import structlog

from app.domain.enums import SessionType
from app.infra.realtime.broadcast import BroadcastEngine
from app.infra.realtime.events import RealtimeEvent
from app.infra.realtime.messages import stamped
from app.infra.realtime.reaper import (
    DEFAULT_INACTIVITY_THRESHOLD_SECONDS,
    DEFAULT_REAP_INTERVAL_SECONDS,
    InactivityReaper,
)
from app.infra.realtime.registry import Connection, ConnectionRegistry
from app.infra.realtime.router import MessageRouter
from app.infra.realtime.transport import Transport

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class HubStats:
    total_connections: int
    active_sessions: int
    connections_by_type: dict[str, int]
    average_connection_duration: float


class RealtimeHub:
    """In-process session hub for websocket fanout.

    One instance owns the connection registry and the session index; the
    router, broadcast engine and reaper all share it by reference.
    """

    def __init__(
        self,
        reap_interval_seconds: float = DEFAULT_REAP_INTERVAL_SECONDS,
        inactivity_threshold_seconds: float = DEFAULT_INACTIVITY_THRESHOLD_SECONDS,
    ) -> None:
        self.connections = ConnectionRegistry()
        self.sessions = self.connections.sessions
        self.broadcast = BroadcastEngine(self.connections)
        self.router = MessageRouter(self.connections, self.broadcast)
        self.reaper = InactivityReaper(
            self.connections,
            evict=self.evict,
            interval_seconds=reap_interval_seconds,
            threshold_seconds=inactivity_threshold_seconds,
        )

    def start(self) -> None:
        self.reaper.start()

    async def stop(self) -> None:
        await self.reaper.stop()

    def connect(self, transport: Transport, connection_id: str | None = None) -> Connection:
        connection = Connection(id=connection_id or str(uuid4()), transport=transport)
        self.connections.register(connection)
        self.broadcast.send_direct(
            connection.id,
            RealtimeEvent.CONNECTION_ESTABLISHED,
            stamped({"clientId": connection.id}),
        )
        return connection

    def handle_frame(self, connection_id: str, raw: str | bytes) -> None:
        self.router.handle_frame(connection_id, raw)

    def disconnect(self, connection_id: str) -> None:
        """Tear down a connection whose transport has gone away. Idempotent."""
        connection = self.connections.get(connection_id)
        if connection is None:
            return

        session_id = connection.session_id
        if session_id is not None:
            self.sessions.leave(session_id, connection_id)
            self.broadcast.broadcast_session(
                session_id,
                RealtimeEvent.PARTICIPANT_DISCONNECTED,
                stamped({"clientId": connection_id, "studentId": connection.student_id}),
                exclude_ids=[connection_id],
            )

        self.connections.unregister(connection_id)
        logger.info(
            "realtime.connection.closed",
            connection_id=connection_id,
            session_id=session_id,
        )

    def evict(self, connection_id: str) -> None:
        connection = self.connections.get(connection_id)
        if connection is None:
            return
        self.disconnect(connection_id)
        connection.transport.close()

    def broadcast_all(
        self,
        event: RealtimeEvent | str,
        data: Mapping[str, Any],
        exclude_ids: Iterable[str] = (),
    ) -> int:
        return self.broadcast.broadcast_all(event, stamped(dict(data)), exclude_ids)

    def send_intervention_notification(
        self, session_id: str, intervention: Mapping[str, Any]
    ) -> int:
        return self.broadcast.broadcast_session(
            session_id, RealtimeEvent.INTERVENTION_TRIGGERED, stamped(dict(intervention))
        )

    def send_focus_alert(self, session_id: str, alert: Mapping[str, Any]) -> int:
        return self.broadcast.broadcast_session(
            session_id, RealtimeEvent.FOCUS_ALERT, stamped(dict(alert))
        )

    def get_stats(self, now: datetime | None = None) -> HubStats:
        now = now or datetime.now(UTC)
        connections = list(self.connections.all())
        by_type = {session_type.value: 0 for session_type in SessionType}
        for connection in connections:
            if connection.session_type is not None:
                by_type[connection.session_type.value] += 1

        average_minutes = 0.0
        if connections:
            total_seconds = sum(
                (now - connection.connected_at).total_seconds() for connection in connections
            )
            average_minutes = total_seconds / len(connections) / 60

        return HubStats(
            total_connections=len(connections),
            active_sessions=len(self.sessions),
            connections_by_type=by_type,
            average_connection_duration=average_minutes,
        )

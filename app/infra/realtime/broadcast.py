from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from app.infra.realtime.events import RealtimeEvent
from app.infra.realtime.messages import OutboundMessage, utc_timestamp
from app.infra.realtime.registry import ConnectionRegistry

logger = structlog.get_logger(__name__)


class BroadcastEngine:
    """Fans outbound messages out to one connection, a session, or everyone.

    Delivery is best effort: a failed write is logged and skipped, the
    connection stays registered, and the remaining recipients still get
    their copy.
    """

    def __init__(self, connections: ConnectionRegistry) -> None:
        self.connections = connections

    def send_direct(
        self,
        connection_id: str,
        event: RealtimeEvent | str,
        data: Mapping[str, Any],
    ) -> bool:
        connection = self.connections.get(connection_id)
        if connection is None:
            return False

        message = OutboundMessage(
            type=event.value if isinstance(event, RealtimeEvent) else event,
            data=dict(data),
            timestamp=utc_timestamp(),
            client_id=connection_id,
        )
        try:
            connection.transport.send(message.to_frame())
        except Exception:
            logger.exception(
                "realtime.broadcast.write_failed",
                connection_id=connection_id,
                message_type=message.type,
            )
            return False
        return True

    def broadcast_session(
        self,
        session_id: str,
        event: RealtimeEvent | str,
        data: Mapping[str, Any],
        exclude_ids: Iterable[str] = (),
    ) -> int:
        recipients = self.connections.sessions.members_excluding(session_id, exclude_ids)
        return self._deliver(recipients, event, data)

    def broadcast_all(
        self,
        event: RealtimeEvent | str,
        data: Mapping[str, Any],
        exclude_ids: Iterable[str] = (),
    ) -> int:
        excluded = set(exclude_ids)
        recipients = [
            connection.id
            for connection in self.connections.all()
            if connection.id not in excluded
        ]
        return self._deliver(recipients, event, data)

    def _deliver(
        self,
        recipients: Iterable[str],
        event: RealtimeEvent | str,
        data: Mapping[str, Any],
    ) -> int:
        delivered = 0
        for connection_id in recipients:
            if self.send_direct(connection_id, event, data):
                delivered += 1
        return delivered

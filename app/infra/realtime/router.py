from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import ValidationError

from app.domain.enums import InboundMessageType, SessionType
from app.domain.exceptions import (
    MalformedMessageError,
    SessionTypeMismatchError,
    UnknownMessageTypeError,
)
from app.domain.state_machine import ConnectionLifecycle
from app.infra.realtime.broadcast import BroadcastEngine
from app.infra.realtime.events import RealtimeEvent
from app.infra.realtime.messages import (
    EmptyPayload,
    FocusEventPayload,
    GameUpdatePayload,
    HomeworkProgressPayload,
    InboundEnvelope,
    InboundPayload,
    JoinSessionPayload,
    WritingUpdatePayload,
    parse_frame,
    percentage,
    stamped,
)
from app.infra.realtime.registry import Connection, ConnectionRegistry

logger = structlog.get_logger(__name__)

FOCUS_INTERVENTION_THRESHOLD = 0.3
HINT_AFTER_SECONDS_ON_STEP = 300
GAME_BREAK_SECONDS = 180

Handler = Callable[[Connection, Any], None]


@dataclass(frozen=True, slots=True)
class Route:
    payload_model: type[InboundPayload]
    handler: Handler
    requires: SessionType | None = None


class MessageRouter:
    """Parses inbound frames and dispatches them by ``type``.

    Handlers run synchronously and only enqueue outbound frames, so one
    dispatch never waits on another connection's socket.
    """

    def __init__(self, connections: ConnectionRegistry, broadcast: BroadcastEngine) -> None:
        self.connections = connections
        self.sessions = connections.sessions
        self.broadcast = broadcast
        self._routes: dict[str, Route] = {}

        self.register(InboundMessageType.JOIN_SESSION, JoinSessionPayload, self._handle_join_session)
        self.register(InboundMessageType.LEAVE_SESSION, EmptyPayload, self._handle_leave_session)
        self.register(InboundMessageType.PING, EmptyPayload, self._handle_ping)
        self.register(
            InboundMessageType.FOCUS_EVENT,
            FocusEventPayload,
            self._handle_focus_event,
            requires=SessionType.FOCUS,
        )
        self.register(
            InboundMessageType.GAME_UPDATE,
            GameUpdatePayload,
            self._handle_game_update,
            requires=SessionType.GAME,
        )
        self.register(
            InboundMessageType.HOMEWORK_PROGRESS,
            HomeworkProgressPayload,
            self._handle_homework_progress,
            requires=SessionType.HOMEWORK,
        )
        self.register(
            InboundMessageType.WRITING_UPDATE,
            WritingUpdatePayload,
            self._handle_writing_update,
            requires=SessionType.WRITING,
        )

    @property
    def message_types(self) -> list[str]:
        return list(self._routes)

    def register(
        self,
        message_type: InboundMessageType | str,
        payload_model: type[InboundPayload],
        handler: Handler,
        requires: SessionType | None = None,
    ) -> None:
        key = message_type.value if isinstance(message_type, InboundMessageType) else message_type
        self._routes[key] = Route(payload_model=payload_model, handler=handler, requires=requires)

    def handle_frame(self, connection_id: str, raw: str | bytes) -> None:
        try:
            envelope = parse_frame(raw)
        except MalformedMessageError as exc:
            logger.warning(
                "realtime.router.malformed_frame",
                connection_id=connection_id,
                reason=exc.reason,
            )
            self._send_error(connection_id, str(exc))
            return

        connection = self.connections.get(connection_id)
        if connection is None or not ConnectionLifecycle.accepts_frames(connection.state):
            logger.debug(
                "realtime.router.unknown_sender",
                connection_id=connection_id,
                message_type=envelope.type,
            )
            return

        connection.touch()
        logger.debug(
            "realtime.router.received",
            connection_id=connection_id,
            message_type=envelope.type,
        )

        try:
            self.dispatch(connection, envelope)
        except UnknownMessageTypeError as exc:
            logger.warning(
                "realtime.router.unknown_message_type",
                connection_id=connection_id,
                message_type=exc.message_type,
            )
            self._send_error(connection_id, str(exc))
        except MalformedMessageError as exc:
            logger.warning(
                "realtime.router.malformed_payload",
                connection_id=connection_id,
                reason=exc.reason,
            )
            self._send_error(connection_id, str(exc))
        except SessionTypeMismatchError as exc:
            # Dropped without a reply; sessions of other types stay opaque.
            logger.debug(
                "realtime.router.session_type_mismatch",
                connection_id=connection_id,
                detail=str(exc),
            )

    def dispatch(self, connection: Connection, envelope: InboundEnvelope) -> None:
        route = self._routes.get(envelope.type)
        if route is None:
            raise UnknownMessageTypeError(envelope.type)
        if route.requires is not None and connection.session_type != route.requires:
            raise SessionTypeMismatchError(
                envelope.type, route.requires, connection.session_type
            )

        try:
            payload = route.payload_model.model_validate(envelope.data)
        except ValidationError as exc:
            raise MalformedMessageError(str(exc)) from exc
        route.handler(connection, payload)

    def _send_error(self, connection_id: str, error: str) -> None:
        self.broadcast.send_direct(connection_id, RealtimeEvent.ERROR, stamped({"error": error}))

    def _handle_join_session(self, connection: Connection, payload: JoinSessionPayload) -> None:
        if payload.student_id is not None:
            connection.student_id = payload.student_id
        if payload.session_id is not None:
            self.sessions.join(payload.session_id, connection.id, payload.session_type)

        session_type = connection.session_type.value if connection.session_type else None
        self.broadcast.send_direct(
            connection.id,
            RealtimeEvent.SESSION_JOINED,
            stamped({"sessionId": payload.session_id, "sessionType": session_type}),
        )

        if payload.session_id is not None:
            self.broadcast.broadcast_session(
                payload.session_id,
                RealtimeEvent.PARTICIPANT_JOINED,
                stamped(
                    {
                        "clientId": connection.id,
                        "studentId": connection.student_id,
                        "sessionType": session_type,
                    }
                ),
                exclude_ids=[connection.id],
            )

    def _handle_leave_session(self, connection: Connection, _payload: EmptyPayload) -> None:
        session_id = connection.session_id
        if session_id is None:
            return

        self.sessions.leave(session_id, connection.id)
        self.broadcast.broadcast_session(
            session_id,
            RealtimeEvent.PARTICIPANT_LEFT,
            stamped({"clientId": connection.id, "studentId": connection.student_id}),
            exclude_ids=[connection.id],
        )

    def _handle_ping(self, connection: Connection, _payload: EmptyPayload) -> None:
        self.broadcast.send_direct(connection.id, RealtimeEvent.PONG, stamped({}))

    def _handle_focus_event(self, connection: Connection, payload: FocusEventPayload) -> None:
        if (
            payload.focus_score is not None
            and payload.focus_score < FOCUS_INTERVENTION_THRESHOLD
            and payload.event_type == "distraction_detected"
        ):
            self.broadcast.send_direct(
                connection.id,
                RealtimeEvent.INTERVENTION_SUGGESTED,
                stamped(
                    {
                        "type": "game_break",
                        "reason": "Low focus score detected",
                        "estimatedDuration": GAME_BREAK_SECONDS,
                    }
                ),
            )

        if connection.session_id is not None:
            self.broadcast.broadcast_session(
                connection.session_id,
                RealtimeEvent.FOCUS_METRICS_UPDATE,
                stamped(
                    {
                        "studentId": connection.student_id,
                        "focusScore": payload.focus_score,
                        "attentionLevel": payload.attention_level,
                    }
                ),
                exclude_ids=[connection.id],
            )

    def _handle_game_update(self, connection: Connection, payload: GameUpdatePayload) -> None:
        self.broadcast.send_direct(
            connection.id,
            RealtimeEvent.GAME_FEEDBACK,
            stamped(
                {
                    "correct": payload.correct,
                    "score": payload.score,
                    "streak": payload.streak,
                    "encouragement": "Great job!" if payload.correct else "Keep trying!",
                }
            ),
        )

        # The game may be an intervention launched from a separate focus session.
        if payload.focus_session_id:
            self.broadcast.broadcast_session(
                payload.focus_session_id,
                RealtimeEvent.INTERVENTION_PROGRESS,
                stamped(
                    {
                        "gameProgress": percentage(payload.current_step, payload.total_steps),
                        "focusImprovement": payload.focus_improvement or 0,
                    }
                ),
                exclude_ids=[connection.id],
            )

    def _handle_homework_progress(
        self, connection: Connection, payload: HomeworkProgressPayload
    ) -> None:
        if payload.step_completed:
            next_step = payload.step_number + 1 if payload.step_number is not None else None
            self.broadcast.send_direct(
                connection.id,
                RealtimeEvent.STEP_COMPLETED,
                stamped(
                    {
                        "stepNumber": payload.step_number,
                        "feedback": "Well done! Moving to the next step.",
                        "nextStep": next_step,
                        "progress": percentage(payload.step_number, payload.total_steps),
                    }
                ),
            )

        if (
            payload.struggling_indicator
            and payload.time_on_step is not None
            and payload.time_on_step > HINT_AFTER_SECONDS_ON_STEP
        ):
            self.broadcast.send_direct(
                connection.id,
                RealtimeEvent.HINT_AVAILABLE,
                stamped(
                    {
                        "message": "It looks like you might need a hint. Would you like some help?",
                        "hintAvailable": True,
                    }
                ),
            )

    def _handle_writing_update(
        self, connection: Connection, payload: WritingUpdatePayload
    ) -> None:
        if connection.session_id is not None and payload.collaborative:
            self.broadcast.broadcast_session(
                connection.session_id,
                RealtimeEvent.DOCUMENT_UPDATED,
                stamped(
                    {
                        "documentId": payload.document_id,
                        "changes": payload.changes,
                        "author": connection.student_id,
                    }
                ),
                exclude_ids=[connection.id],
            )

        if payload.request_feedback:
            self.broadcast.send_direct(
                connection.id,
                RealtimeEvent.WRITING_FEEDBACK,
                stamped(
                    {
                        "suggestions": [
                            {
                                "type": "grammar",
                                "position": payload.cursor_position,
                                "suggestion": "Consider checking this sentence structure",
                                "severity": "low",
                            }
                        ],
                        "wordCount": payload.word_count,
                        "readabilityScore": 0.75,
                    }
                ),
            )

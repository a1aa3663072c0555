"""Wire models for the realtime hub.

Inbound frames are parsed in two steps: the envelope first (``type`` plus a
``data`` object), then ``data`` against the payload model registered for that
type. Payload fields are lenient: a value of the wrong JSON type is treated as
absent rather than rejected, so a sloppy client never gets a validation error
for an otherwise recognised message.
"""

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictStr,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from app.domain.enums import SessionType
from app.domain.exceptions import MalformedMessageError


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat()


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _as_number(value: Any) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return value


def _as_session_type(value: Any) -> SessionType | None:
    if not isinstance(value, str):
        return None
    try:
        return SessionType(value)
    except ValueError:
        return None


LenientStr = Annotated[str | None, BeforeValidator(_as_str)]
LenientNumber = Annotated[int | float | None, BeforeValidator(_as_number)]
LenientSessionType = Annotated[SessionType | None, BeforeValidator(_as_session_type)]
Flag = Annotated[bool, BeforeValidator(bool)]


class InboundEnvelope(BaseModel):
    type: StrictStr
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _null_data_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


def parse_frame(raw: str | bytes) -> InboundEnvelope:
    try:
        return InboundEnvelope.model_validate_json(raw)
    except ValidationError as exc:
        raise MalformedMessageError(str(exc)) from exc


class InboundPayload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class EmptyPayload(InboundPayload):
    pass


class JoinSessionPayload(InboundPayload):
    session_id: LenientStr = None
    session_type: LenientSessionType = None
    student_id: LenientStr = None


class FocusEventPayload(InboundPayload):
    focus_score: LenientNumber = None
    event_type: LenientStr = None
    attention_level: Any = None


class GameUpdatePayload(InboundPayload):
    game_id: Any = None
    correct: Any = None
    score: Any = None
    streak: Any = None
    focus_session_id: LenientStr = None
    current_step: LenientNumber = None
    total_steps: LenientNumber = None
    focus_improvement: Any = None


class HomeworkProgressPayload(InboundPayload):
    step_completed: Flag = False
    step_number: LenientNumber = None
    total_steps: LenientNumber = None
    struggling_indicator: Flag = False
    time_on_step: LenientNumber = None


class WritingUpdatePayload(InboundPayload):
    document_id: Any = None
    changes: Any = None
    collaborative: Flag = False
    request_feedback: Flag = False
    cursor_position: Any = None
    word_count: Any = None


class OutboundMessage(BaseModel):
    type: str
    data: dict[str, Any]
    timestamp: str
    client_id: str = Field(serialization_alias="clientId")

    def to_frame(self) -> str:
        return self.model_dump_json(by_alias=True)


def percentage(part: int | float | None, whole: int | float | None) -> float | None:
    if part is None or not whole:
        return None
    return part / whole * 100


def stamped(data: dict[str, Any]) -> dict[str, Any]:
    return {**data, "timestamp": utc_timestamp()}

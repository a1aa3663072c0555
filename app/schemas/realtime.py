from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class RealtimeStats(CamelModel):
    total_connections: int
    active_sessions: int
    connections_by_type: dict[str, int]
    average_connection_duration: float


class RealtimeHealth(CamelModel):
    status: str
    timestamp: datetime
    connections: RealtimeStats


class ConnectionInstructions(CamelModel):
    connect: str
    join: str
    message_format: str


class RealtimeInfo(CamelModel):
    websocket_path: str
    protocols: list[str]
    connection_instructions: ConnectionInstructions
    supported_message_types: list[str]


class BroadcastRequest(BaseModel):
    type: str = Field(default="system_message", min_length=1, max_length=64)
    data: dict[str, Any] = Field(default_factory=dict)


class DeliveryResponse(BaseModel):
    detail: str
    delivered: int
    timestamp: datetime

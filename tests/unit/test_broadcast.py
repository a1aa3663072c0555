import json
from datetime import datetime
from typing import Any

from app.domain.enums import SessionType
from app.domain.exceptions import TransportWriteError
from app.infra.realtime.broadcast import BroadcastEngine
from app.infra.realtime.events import RealtimeEvent
from app.infra.realtime.registry import Connection, ConnectionRegistry


class RecordingTransport:
    def __init__(self) -> None:
        self.frames: list[dict[str, Any]] = []

    def send(self, frame: str) -> None:
        self.frames.append(json.loads(frame))

    def close(self) -> None:
        return None


class FailingTransport:
    def __init__(self) -> None:
        self.attempts = 0

    def send(self, frame: str) -> None:
        self.attempts += 1
        raise TransportWriteError(None, "socket gone")

    def close(self) -> None:
        return None


def build_engine(**transports: Any) -> tuple[BroadcastEngine, ConnectionRegistry]:
    registry = ConnectionRegistry()
    for connection_id, transport in transports.items():
        registry.register(Connection(id=connection_id, transport=transport))
    return BroadcastEngine(registry), registry


def test_send_direct_stamps_timestamp_and_recipient() -> None:
    transport = RecordingTransport()
    engine, _ = build_engine(a=transport)

    assert engine.send_direct("a", RealtimeEvent.PONG, {"x": 1}) is True

    [frame] = transport.frames
    assert frame["type"] == "pong"
    assert frame["data"] == {"x": 1}
    assert frame["clientId"] == "a"
    datetime.fromisoformat(frame["timestamp"])


def test_send_direct_to_unknown_connection_is_noop() -> None:
    engine, _ = build_engine()

    assert engine.send_direct("ghost", RealtimeEvent.PONG, {}) is False


def test_broadcast_session_never_reaches_excluded_members() -> None:
    a, b, c = RecordingTransport(), RecordingTransport(), RecordingTransport()
    engine, registry = build_engine(a=a, b=b, c=c)
    for connection_id in ("a", "b", "c"):
        registry.sessions.join("s1", connection_id, SessionType.WRITING)

    delivered = engine.broadcast_session("s1", RealtimeEvent.DOCUMENT_UPDATED, {}, ["a", "c"])

    assert delivered == 1
    assert a.frames == []
    assert c.frames == []
    assert [frame["clientId"] for frame in b.frames] == ["b"]


def test_broadcast_session_to_missing_session_sends_nothing() -> None:
    a = RecordingTransport()
    engine, _ = build_engine(a=a)

    assert engine.broadcast_session("nope", RealtimeEvent.FOCUS_ALERT, {}) == 0
    assert a.frames == []


def test_broadcast_stamps_each_recipient_id() -> None:
    a, b = RecordingTransport(), RecordingTransport()
    engine, registry = build_engine(a=a, b=b)
    registry.sessions.join("s1", "a", SessionType.FOCUS)
    registry.sessions.join("s1", "b", SessionType.FOCUS)

    engine.broadcast_session("s1", RealtimeEvent.FOCUS_ALERT, {"level": "high"})

    assert a.frames[0]["clientId"] == "a"
    assert b.frames[0]["clientId"] == "b"


def test_write_failure_does_not_stop_other_recipients() -> None:
    broken = FailingTransport()
    healthy = RecordingTransport()
    engine, registry = build_engine(broken=broken, healthy=healthy)
    registry.sessions.join("s1", "broken", SessionType.GAME)
    registry.sessions.join("s1", "healthy", SessionType.GAME)

    delivered = engine.broadcast_session("s1", RealtimeEvent.INTERVENTION_TRIGGERED, {})

    assert delivered == 1
    assert broken.attempts == 1
    assert len(healthy.frames) == 1
    # A failed write leaves the connection registered.
    assert registry.get("broken") is not None


def test_broadcast_all_respects_exclusions() -> None:
    a, b, c = RecordingTransport(), RecordingTransport(), RecordingTransport()
    engine, _ = build_engine(a=a, b=b, c=c)

    delivered = engine.broadcast_all("system_message", {"text": "maintenance"}, {"b"})

    assert delivered == 2
    assert b.frames == []
    assert a.frames[0]["type"] == "system_message"
    assert c.frames[0]["data"] == {"text": "maintenance"}


class ClosedFileTransport:
    def send(self, frame: str) -> None:
        raise ValueError("I/O operation on closed file")

    def close(self) -> None:
        return None


def test_unexpected_transport_error_is_contained() -> None:
    healthy = RecordingTransport()
    engine, registry = build_engine(bad=ClosedFileTransport(), healthy=healthy)
    registry.sessions.join("s1", "bad", SessionType.FOCUS)
    registry.sessions.join("s1", "healthy", SessionType.FOCUS)

    assert engine.send_direct("bad", RealtimeEvent.PONG, {}) is False
    assert engine.broadcast_session("s1", RealtimeEvent.FOCUS_ALERT, {}) == 1
    assert engine.broadcast_all(RealtimeEvent.SYSTEM_MESSAGE, {}) == 1
    assert len(healthy.frames) == 2
    assert registry.get("bad") is not None

import asyncio
import json
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from app.infra.realtime.hub import RealtimeHub


class RecordingTransport:
    def __init__(self) -> None:
        self.frames: list[dict[str, Any]] = []
        self.closed = False

    def send(self, frame: str) -> None:
        self.frames.append(json.loads(frame))

    def close(self) -> None:
        self.closed = True


def connect(hub: RealtimeHub, connection_id: str, idle_minutes: float) -> RecordingTransport:
    transport = RecordingTransport()
    connection = hub.connect(transport, connection_id=connection_id)
    connection.last_activity = datetime.now(UTC) - timedelta(minutes=idle_minutes)
    return transport


def test_sweep_evicts_only_stale_connections() -> None:
    hub = RealtimeHub(inactivity_threshold_seconds=30 * 60)
    stale = connect(hub, "stale", idle_minutes=31)
    fresh = connect(hub, "fresh", idle_minutes=10)

    evicted = hub.reaper.sweep()

    assert evicted == ["stale"]
    assert hub.connections.get("stale") is None
    assert hub.connections.get("fresh") is not None
    assert stale.closed is True
    assert fresh.closed is False


def test_sweep_uses_supplied_clock() -> None:
    hub = RealtimeHub(inactivity_threshold_seconds=30 * 60)
    connect(hub, "a", idle_minutes=0)

    assert hub.reaper.sweep(now=datetime.now(UTC) + timedelta(minutes=29)) == []
    assert hub.reaper.sweep(now=datetime.now(UTC) + timedelta(minutes=31)) == ["a"]


def test_eviction_runs_disconnect_teardown() -> None:
    hub = RealtimeHub(inactivity_threshold_seconds=30 * 60)
    stale = connect(hub, "stale", idle_minutes=0)
    peer = connect(hub, "peer", idle_minutes=0)
    for connection_id in ("stale", "peer"):
        hub.handle_frame(
            connection_id,
            json.dumps(
                {"type": "join_session", "data": {"sessionId": "s1", "sessionType": "focus"}}
            ),
        )
    hub.connections.get("stale").last_activity = datetime.now(UTC) - timedelta(minutes=45)
    stale.frames.clear()
    peer.frames.clear()

    hub.reaper.sweep()

    assert [frame["type"] for frame in peer.frames] == ["participant_disconnected"]
    assert peer.frames[0]["data"]["clientId"] == "stale"
    assert stale.frames == []
    assert hub.sessions.members("s1") == frozenset({"peer"})


def test_empty_session_is_removed_on_eviction() -> None:
    hub = RealtimeHub(inactivity_threshold_seconds=60)
    connect(hub, "solo", idle_minutes=0)
    hub.handle_frame(
        "solo",
        json.dumps({"type": "join_session", "data": {"sessionId": "s1", "sessionType": "game"}}),
    )
    hub.connections.get("solo").last_activity = datetime.now(UTC) - timedelta(minutes=5)

    hub.reaper.sweep()

    assert "s1" not in hub.sessions


@pytest.mark.asyncio
async def test_reaper_task_runs_on_interval_and_stops() -> None:
    hub = RealtimeHub(reap_interval_seconds=0.01, inactivity_threshold_seconds=60)
    transport = connect(hub, "idle", idle_minutes=120)

    hub.start()
    assert hub.reaper.running
    for _ in range(100):
        if hub.connections.get("idle") is None:
            break
        await asyncio.sleep(0.01)
    await hub.stop()

    assert hub.connections.get("idle") is None
    assert transport.closed is True
    assert not hub.reaper.running


@pytest.mark.asyncio
async def test_reaper_start_is_idempotent_and_stop_is_safe() -> None:
    hub = RealtimeHub(reap_interval_seconds=60)

    await hub.stop()
    hub.start()
    first_task = hub.reaper._task
    hub.start()

    assert hub.reaper._task is first_task
    await hub.stop()
    assert hub.reaper._task is None

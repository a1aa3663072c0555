"""Realtime session hub (WebSocket) adapters."""

from app.infra.realtime.hub import HubStats, RealtimeHub

__all__ = ["HubStats", "RealtimeHub"]

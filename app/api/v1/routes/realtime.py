import asyncio
import contextlib
from dataclasses import asdict
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request, WebSocket, status
from starlette.websockets import WebSocketDisconnect

from app.core.config import get_settings
from app.infra.realtime import RealtimeHub
from app.infra.realtime.transport import WebSocketTransport
from app.schemas.realtime import (
    BroadcastRequest,
    ConnectionInstructions,
    DeliveryResponse,
    RealtimeHealth,
    RealtimeInfo,
    RealtimeStats,
)

router = APIRouter()
settings = get_settings()

PROTOCOLS = [
    "focus-monitoring",
    "game-updates",
    "homework-assistance",
    "writing-collaboration",
]


def _get_hub(request: Request) -> RealtimeHub:
    hub = getattr(request.app.state, "realtime_hub", None)
    if hub is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Realtime hub not initialized",
        )
    return hub


@router.websocket("/ws")
async def realtime_ws(websocket: WebSocket) -> None:
    hub = getattr(websocket.app.state, "realtime_hub", None)
    if hub is None:
        await websocket.close(code=1011, reason="Realtime hub not initialized")
        return

    await websocket.accept()
    transport = WebSocketTransport(
        websocket, max_queue_size=settings.realtime_outbound_queue_size
    )
    writer = asyncio.create_task(transport.run())
    connection = hub.connect(transport)
    transport.connection_id = connection.id

    # Outbound write failures do not end the read loop; only the peer's
    # disconnect (or an eviction closing the socket) does.
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw_message = message.get("text")
            if raw_message is None:
                raw_message = message.get("bytes")
            if raw_message is None:
                continue
            hub.handle_frame(connection.id, raw_message)
    except (RuntimeError, WebSocketDisconnect):
        pass
    finally:
        hub.disconnect(connection.id)
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer


@router.get("", response_model=RealtimeInfo)
async def realtime_info(request: Request) -> RealtimeInfo:
    hub = _get_hub(request)
    return RealtimeInfo(
        websocket_path=f"{request.scope.get('root_path', '')}/api/v1/realtime/ws",
        protocols=PROTOCOLS,
        connection_instructions=ConnectionInstructions(
            connect="Open a WebSocket to websocket_path",
            join="Send join_session with sessionId, sessionType and studentId",
            message_format="JSON text frames shaped as {type, data}",
        ),
        supported_message_types=hub.router.message_types,
    )


@router.get("/health", response_model=RealtimeHealth)
async def realtime_health(request: Request) -> RealtimeHealth:
    hub = _get_hub(request)
    return RealtimeHealth(
        status="healthy",
        timestamp=datetime.now(UTC),
        connections=RealtimeStats.model_validate(asdict(hub.get_stats())),
    )


@router.post("/broadcast", response_model=DeliveryResponse)
async def broadcast(request: Request, payload: BroadcastRequest) -> DeliveryResponse:
    if not settings.admin_broadcast_enabled:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Broadcast endpoint is disabled",
        )
    hub = _get_hub(request)
    delivered = hub.broadcast_all(payload.type, payload.data)
    return DeliveryResponse(
        detail="Message broadcasted",
        delivered=delivered,
        timestamp=datetime.now(UTC),
    )


@router.post("/sessions/{session_id}/interventions", response_model=DeliveryResponse)
async def trigger_intervention(
    request: Request,
    session_id: str,
    intervention: dict[str, Any] = Body(...),
) -> DeliveryResponse:
    hub = _get_hub(request)
    delivered = hub.send_intervention_notification(session_id, intervention)
    return DeliveryResponse(
        detail="Intervention sent",
        delivered=delivered,
        timestamp=datetime.now(UTC),
    )


@router.post("/sessions/{session_id}/focus-alerts", response_model=DeliveryResponse)
async def focus_alert(
    request: Request,
    session_id: str,
    alert: dict[str, Any] = Body(...),
) -> DeliveryResponse:
    hub = _get_hub(request)
    delivered = hub.send_focus_alert(session_id, alert)
    return DeliveryResponse(
        detail="Focus alert sent",
        delivered=delivered,
        timestamp=datetime.now(UTC),
    )

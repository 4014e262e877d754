"""
WebSocket endpoint streaming lifecycle events to dashboards.
"""

import asyncio

import structlog
from fastapi import HTTPException, WebSocket, WebSocketDisconnect, status

from insight_engine.api.deps import websocket_user_id
from insight_engine.services.event_hub import EventHub, Subscription, event_hub

logger = structlog.get_logger(__name__)


class ConnectionManager:
    """Manages WebSocket connections and their event subscriptions."""

    def __init__(self, hub: EventHub):
        self.hub = hub
        self.active_connections: dict[str, WebSocket] = {}
        self.subscriptions: dict[str, Subscription] = {}

    async def connect(self, websocket: WebSocket, client_id: str, user_id: str) -> Subscription:
        """Accept a connection and subscribe it to lifecycle events."""
        await websocket.accept()
        self.active_connections[client_id] = websocket
        subscription = self.hub.subscribe(user_id=user_id)
        self.subscriptions[client_id] = subscription
        logger.info("WebSocket connected", client_id=client_id, user_id=user_id)
        return subscription

    def disconnect(self, client_id: str) -> None:
        """Remove a connection and drop its subscription."""
        subscription = self.subscriptions.pop(client_id, None)
        if subscription:
            subscription.close()
        if self.active_connections.pop(client_id, None) is not None:
            logger.info("WebSocket disconnected", client_id=client_id)

    async def send_message(self, client_id: str, message: dict) -> None:
        """Send message to specific client."""
        websocket = self.active_connections.get(client_id)
        if websocket:
            await websocket.send_json(message)


# Global connection manager
manager = ConnectionManager(event_hub)


async def _forward_events(client_id: str, subscription: Subscription) -> None:
    async for event in subscription:
        await manager.send_message(
            client_id,
            {"type": "dashboard_update", **event.model_dump(mode="json")},
        )


async def websocket_endpoint(websocket: WebSocket, client_id: str):
    """
    WebSocket endpoint for lifecycle updates.

    Authenticate with `?token=<jwt>` or an Authorization header; the
    connection only receives the authenticated user's events. Failed
    authentication closes the handshake with 1008.

    Events (type "dashboard_update"):
    - question_submitted: a question was stored (queued or waiting for answers)
    - clarification_completed: answers were collected and the question queued
    - question_ready: an analysis result was attached
    - question_cancelled: a question was cancelled
    """
    try:
        user_id = websocket_user_id(websocket)
    except HTTPException as e:
        logger.warning("WebSocket authentication failed", client_id=client_id, reason=e.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    subscription = await manager.connect(websocket, client_id, user_id)
    forwarder = asyncio.create_task(_forward_events(client_id, subscription))

    try:
        while True:
            data = await websocket.receive_json()
            message_type = data.get("type")

            if message_type == "ping":
                await manager.send_message(client_id, {"type": "pong"})
            else:
                await manager.send_message(
                    client_id,
                    {"type": "error", "message": f"Unknown message type: {message_type}"},
                )

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error", error=str(e), client_id=client_id)
    finally:
        forwarder.cancel()
        manager.disconnect(client_id)

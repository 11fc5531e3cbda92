"""WebSocket connection manager pushing state events to the UI."""

from typing import List

from fastapi import WebSocket

from creditsync.core.logger.logger import logger
from creditsync.core.service.events.channel import EventChannel, Subscription
from creditsync.core.service.events.models import Event, EventType


class ConnectionManager:
    """Manages WebSocket connections and broadcasting."""

    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self._subscriptions: List[Subscription] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        await websocket.send_json({"type": "connected"})
        logger.info("New WebSocket client connected")

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info("WebSocket client disconnected")

    async def broadcast(self, data: dict):
        """
        Broadcast a message to all connected clients.

        Args:
            data: JSON-serializable payload
        """
        disconnected = []
        for connection in self.active_connections:
            try:
                await connection.send_json(data)
            except Exception as e:
                logger.debug("WebSocket send failed", extra={"error": str(e)})
                disconnected.append(connection)

        for connection in disconnected:
            self.disconnect(connection)

    async def broadcast_event(self, event: Event):
        await self.broadcast(event.model_dump(mode="json"))

    def attach(self, events: EventChannel) -> None:
        """Forward UI-facing events from the channel to every client"""
        for event_type in (EventType.STATE_CHANGED, EventType.SUBSCRIPTION_EXPIRED):
            self._subscriptions.append(events.subscribe(event_type, self.broadcast_event))

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def get_connection_count(self) -> int:
        return len(self.active_connections)

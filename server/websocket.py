"""
Siteadmin - WebSocket Manager
=============================
Manages WebSocket connections for pushing events from the backend to
every connected admin console.

Message types (server -> client):
    - "welcome"          : Greeting sent once, right after connecting
    - "notification"     : A new entry in the notification log
    - "update_available" : A newer release was found by the update checker

Message format:
    {
        "type": "notification",
        "data": { ... },
        "timestamp": "2026-02-08T12:00:00+00:00"
    }

Messages sent by clients are accepted and logged, never interpreted.

Usage:
    await ws_manager.broadcast("notification", {"id": 1, ...})

    @app.websocket("/ws")
    async def ws_endpoint(websocket: WebSocket):
        await ws_manager.connect(websocket)
        try:
            while True:
                ws_manager.on_message(await websocket.receive_text())
        except WebSocketDisconnect:
            ws_manager.disconnect(websocket)
"""

import json
import logging
from datetime import datetime, timezone
from fastapi import WebSocket
from starlette.websockets import WebSocketState
from typing import Any

from server.stats import StatisticsRecorder


logger = logging.getLogger(__name__)

GREETING = "Hello from server"


class WebSocketManager:
    """
    Registry of live WebSocket connections with best-effort broadcasting.

    This is a simple in-memory manager for single-process deployment.
    All connected clients receive all broadcast messages.

    Attributes:
        active_connections: Set of currently registered WebSocket instances.
        stats:              Recorder notified of connection lifecycle and errors.
        version:            Server version announced in the greeting.
    """

    def __init__(self, stats: StatisticsRecorder, version: str = ""):
        self.active_connections: set[WebSocket] = set()
        self.stats = stats
        self.version = version

    async def connect(self, websocket: WebSocket) -> None:
        """
        Accept a new WebSocket connection, register it and greet it.

        Args:
            websocket: The incoming WebSocket connection to accept.
        """
        await websocket.accept()
        self.active_connections.add(websocket)
        self.stats.record_connection_opened()
        logger.info("[WS] Client connected (%d open)", self.client_count)

        await websocket.send_text(self._encode("welcome", {
            "message": GREETING,
            "version": self.version,
        }))

    def disconnect(self, websocket: WebSocket) -> None:
        """
        Remove a WebSocket connection from the registry.

        Calling this for a connection that is not registered does nothing.
        """
        if websocket not in self.active_connections:
            return
        self.active_connections.discard(websocket)
        self.stats.record_connection_closed()
        logger.info("[WS] Client disconnected (%d open)", self.client_count)

    def on_error(self, websocket: WebSocket, error: BaseException) -> None:
        """Record an error raised by a single connection."""
        message = str(error) or error.__class__.__name__
        logger.warning("[WS] Connection error: %s", message)
        self.stats.record_error(f"WebSocket error: {message}")

    def on_message(self, message: str) -> None:
        logger.debug("[WS] Received: %s", message)

    async def broadcast(self, event_type: str, data: Any) -> None:
        """
        Send an event to all connected WebSocket clients.

        Connections that are not in the connected state are skipped. A failed
        send is reported through on_error and does not stop delivery to the
        remaining connections. The registry is copied before iterating, so
        connects and disconnects during delivery are safe.

        Args:
            event_type: Value of the "type" field.
            data:       JSON-serializable payload for the "data" field.
        """
        payload = self._encode(event_type, data)

        for ws in list(self.active_connections):
            if ws.client_state != WebSocketState.CONNECTED:
                continue
            try:
                await ws.send_text(payload)
            except Exception as e:
                self.on_error(ws, e)

    @staticmethod
    def _encode(event_type: str, data: Any) -> str:
        return json.dumps({
            "type": event_type,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }, ensure_ascii=False)

    @property
    def client_count(self) -> int:
        """Return the number of currently connected clients."""
        return len(self.active_connections)

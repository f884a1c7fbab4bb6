from typing import Dict, Set, Optional, Any
from fastapi import WebSocket
import asyncio
from datetime import datetime
import structlog

from .schema.events import BaseEvent, ConnectionEvent, ErrorEvent

logger = structlog.get_logger(__name__)

STALE_AFTER_SECONDS = 300


class ConnectionManager:
    """Tracks one WebSocket per chat session and routes events to it"""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.session_metadata: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, session_id: str, user_id: Optional[str] = None):
        """Accept a new WebSocket connection"""
        await websocket.accept()

        async with self._lock:
            previous = self.active_connections.get(session_id)
            self.active_connections[session_id] = websocket
            self.session_metadata[session_id] = {
                "user_id": user_id,
                "connected_at": datetime.utcnow(),
                "last_activity": datetime.utcnow()
            }

        if previous is not None and previous is not websocket:
            logger.info("Replacing existing connection", session_id=session_id)
            await self._close_quietly(previous, session_id)

        await self.send_event(
            session_id,
            ConnectionEvent(
                status="connected",
                session_id=session_id
            )
        )

        logger.info("WebSocket connected", session_id=session_id, user_id=user_id)

    async def disconnect(self, session_id: str, websocket: Optional[WebSocket] = None):
        """Disconnect a session; with a websocket given, only if it is still the active one"""
        async with self._lock:
            current = self.active_connections.get(session_id)
            if current is None or (websocket is not None and current is not websocket):
                return
            self.active_connections.pop(session_id)
            self.session_metadata.pop(session_id, None)

        await self._close_quietly(current, session_id)
        logger.info("WebSocket disconnected", session_id=session_id)

    async def send_event(self, session_id: str, event: BaseEvent) -> bool:
        """Send an event to a specific session"""
        websocket = self.active_connections.get(session_id)
        if websocket is None:
            logger.warning("Attempted to send to disconnected session", session_id=session_id)
            return False

        if event.session_id is None:
            event.session_id = session_id

        try:
            await websocket.send_json(event.model_dump(mode="json"))

            if session_id in self.session_metadata:
                self.session_metadata[session_id]["last_activity"] = datetime.utcnow()

            return True

        except Exception as e:
            logger.error("Failed to send event", session_id=session_id, error=str(e))
            await self.disconnect(session_id, websocket)
            return False

    async def send_error(self, session_id: str, error_message: str, error_code: Optional[str] = None):
        """Send an error event to a session"""
        error_event = ErrorEvent(
            payload={"message": error_message},
            error_code=error_code,
            session_id=session_id
        )
        await self.send_event(session_id, error_event)

    def get_session_metadata(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Get metadata for a session"""
        return self.session_metadata.get(session_id)

    def get_active_sessions(self, user_id: Optional[str] = None) -> Set[str]:
        """Get active session IDs, optionally filtered by user"""
        if user_id:
            return {
                session_id
                for session_id, metadata in self.session_metadata.items()
                if metadata.get("user_id") == user_id
            }
        return set(self.active_connections.keys())

    async def health_check(self):
        """Periodic health check to clean up stale connections"""
        while True:
            try:
                current_time = datetime.utcnow()
                stale_sessions = [
                    session_id
                    for session_id, metadata in list(self.session_metadata.items())
                    if (current_time - metadata["last_activity"]).total_seconds() > STALE_AFTER_SECONDS
                ]

                for session_id in stale_sessions:
                    logger.warning("Disconnecting stale session", session_id=session_id)
                    await self.disconnect(session_id)

            except Exception as e:
                logger.error("Health check error", error=str(e))

            await asyncio.sleep(60)

    async def _close_quietly(self, websocket: WebSocket, session_id: str):
        try:
            await websocket.close()
        except Exception as e:
            logger.debug("Error closing WebSocket", session_id=session_id, error=str(e))

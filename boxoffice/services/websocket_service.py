"""
WebSocket Service for Real-time Seat Updates
Relays the seat change feed to browsers viewing a showtime's seat map
"""

from fastapi import WebSocket
from typing import Dict, Optional, Set
import asyncio
import logging
from datetime import datetime, timezone
from uuid import UUID

from boxoffice.core.exceptions import TransientNetworkError
from boxoffice.services.seat_feed import SeatChangeFeed, seat_feed

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections per showtime, one feed relay per showtime"""

    def __init__(self, feed: Optional[SeatChangeFeed] = None):
        self.feed = feed or seat_feed
        self.active_connections: Dict[UUID, Set[WebSocket]] = {}
        self.relays: Dict[UUID, asyncio.Task] = {}

    async def connect(self, websocket: WebSocket, showtime_id: UUID):
        """Accept and register a new WebSocket connection"""
        await websocket.accept()
        self.active_connections.setdefault(showtime_id, set()).add(websocket)
        logger.info(f"Viewer connected to showtime {showtime_id}")

        if showtime_id not in self.relays:
            self.relays[showtime_id] = asyncio.create_task(self._relay(showtime_id))

        await websocket.send_json({
            "type": "connection",
            "status": "connected",
            "showtime_id": str(showtime_id),
            "timestamp": datetime.now(timezone.utc).isoformat()
        })

    def disconnect(self, websocket: WebSocket, showtime_id: UUID):
        """Remove a WebSocket connection; stop the relay when nobody is watching"""
        connections = self.active_connections.get(showtime_id)
        if connections is not None:
            connections.discard(websocket)
            if not connections:
                del self.active_connections[showtime_id]
                relay = self.relays.pop(showtime_id, None)
                if relay is not None:
                    relay.cancel()
        logger.info(f"Viewer disconnected from showtime {showtime_id}")

    async def broadcast_to_showtime(self, showtime_id: UUID, message: Dict):
        """Broadcast a message to all clients watching a showtime"""
        disconnected = []
        for websocket in list(self.active_connections.get(showtime_id, ())):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.error(f"Error broadcasting to showtime {showtime_id}: {e}")
                disconnected.append(websocket)

        for websocket in disconnected:
            self.disconnect(websocket, showtime_id)

    async def _relay(self, showtime_id: UUID):
        try:
            async for hint in self.feed.hints(showtime_id):
                await self.broadcast_to_showtime(showtime_id, {
                    "type": "seat_booked",
                    **hint.to_payload(),
                    "timestamp": datetime.now(timezone.utc).isoformat()
                })
        except asyncio.CancelledError:
            raise
        except TransientNetworkError as e:
            logger.error(f"Seat feed for showtime {showtime_id} unavailable: {e.message}")
            await self._announce_outage(showtime_id)
        except Exception:
            logger.exception(f"Seat feed relay for showtime {showtime_id} failed")
            await self._announce_outage(showtime_id)
        finally:
            if self.relays.get(showtime_id) is asyncio.current_task():
                del self.relays[showtime_id]

    async def _announce_outage(self, showtime_id: UUID):
        await self.broadcast_to_showtime(showtime_id, {
            "type": "feed_unavailable",
            "showtime_id": str(showtime_id),
            "message": "Live seat updates paused; refresh the seat map before booking",
        })


# Global connection manager
connection_manager = ConnectionManager()

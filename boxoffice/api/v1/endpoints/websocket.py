"""
WebSocket endpoint for live seat map updates
"""

from uuid import UUID
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends

from boxoffice.core.database import DatabaseManager, db_manager
from boxoffice.core.exceptions import BoxOfficeException
from boxoffice.services.seat_map import SeatMap
from boxoffice.services.websocket_service import connection_manager
from boxoffice.api.v1.endpoints.seats import load_seat_map

logger = logging.getLogger(__name__)
router = APIRouter()


def get_db_manager() -> DatabaseManager:
    return db_manager


async def snapshot_seat_map(database: DatabaseManager, showtime_id: UUID) -> SeatMap:
    """Read the seat map and release the connection before the socket starts streaming"""
    async with database.read_session() as db:
        return await load_seat_map(db, showtime_id)


@router.websocket("/showtimes/{showtime_id}/seats")
async def seat_updates(
    websocket: WebSocket,
    showtime_id: UUID,
    database: DatabaseManager = Depends(get_db_manager)
):
    """
    Sends the current seat map, then a "seat_booked" message for every seat
    sold while connected. Messages are hints; clients should refetch the seat
    map after a reconnect or a "feed_unavailable" message.
    """
    try:
        seat_map = await snapshot_seat_map(database, showtime_id)
    except BoxOfficeException as e:
        await websocket.accept()
        await websocket.send_json({"type": "error", "code": e.code, "message": e.message})
        await websocket.close(code=1008)
        return

    await connection_manager.connect(websocket, showtime_id)
    try:
        await websocket.send_json({"type": "snapshot", "seat_map": seat_map.to_dict()})
        while True:
            data = await websocket.receive_json()
            if data.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        connection_manager.disconnect(websocket, showtime_id)

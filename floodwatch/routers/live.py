from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from floodwatch.deps import get_connection_manager, get_publisher
from floodwatch.services.broadcast import DEVICE_DATA_EVENT, ConnectionManager, LivePublisher

router = APIRouter(tags=["live"])


@router.websocket("/ws")
async def device_data_stream(
    websocket: WebSocket,
    connections: ConnectionManager = Depends(get_connection_manager),
    publisher: LivePublisher = Depends(get_publisher),
):
    """Push channel for ``deviceData`` snapshots; client messages are ignored."""
    await connections.connect(websocket)
    try:
        if publisher.last_payload is not None:
            await websocket.send_json({"event": DEVICE_DATA_EVENT, "data": publisher.last_payload})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        connections.disconnect(websocket)

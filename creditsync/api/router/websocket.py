"""WebSocket router pushing state changes to the UI."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from creditsync.core.logger.logger import logger

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Clients receive ``stateChanged`` and ``subscriptionExpired`` events.
    Incoming messages are only logged.
    """
    manager = websocket.app.state.ws_manager

    await manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()
            logger.debug("Received via WebSocket", extra={"data": data})
    except WebSocketDisconnect:
        manager.disconnect(websocket)
    except Exception as e:
        logger.error("WebSocket error", extra={"error": str(e)})
        manager.disconnect(websocket)

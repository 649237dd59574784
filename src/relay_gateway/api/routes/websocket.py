"""
WebSocket endpoint carrying both the control and the signaling protocol.
"""
import logging

from fastapi import APIRouter, WebSocket

from ...services.gateway import Gateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


@router.websocket("/")
@router.websocket("/ws")
async def relay_socket(websocket: WebSocket) -> None:
    """
    Serve one client connection.

    Frames are handled strictly in arrival order. Binary frames are decoded as
    UTF-8 text. Teardown runs on every exit path.
    """
    gateway: Gateway = websocket.app.state.gateway
    await websocket.accept()
    connection = gateway.connections.open(websocket.send_text)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            text = message.get("text")
            if text is None and message.get("bytes") is not None:
                text = message["bytes"].decode("utf-8", errors="replace")
            if text is None:
                continue

            await gateway.dispatcher.dispatch(connection, text)
    except Exception as e:
        logger.warning(f"Connection {connection.connection_id} failed: {e}")
    finally:
        await gateway.connections.close(connection)

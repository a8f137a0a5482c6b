"""WebSocket endpoint serving the market data protocol to browser clients."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..config.logging import get_logger
from ..exceptions import AuthenticationError
from ..services.market_data.gateway import get_gateway
from ..utils.tracing import clear_trace_id

router = APIRouter()
logger = get_logger(__name__)


@router.websocket("/ws/market-data")
async def market_data_stream(websocket: WebSocket) -> None:
    """Serve one client: authenticate, then handle requests until the socket closes."""
    gateway = get_gateway()
    try:
        connection = await gateway.connect(websocket)
    except AuthenticationError:
        clear_trace_id()
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.debug("client_socket_closed", code=message.get("code"))
                break
            text = message.get("text")
            # Binary frames are rejected by the gateway with an error event
            await gateway.handle_message(connection, text if text is not None else message.get("bytes"))
    except WebSocketDisconnect as e:
        logger.debug("client_socket_closed", code=e.code)
    finally:
        await gateway.disconnect(connection)
        clear_trace_id()

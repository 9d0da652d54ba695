import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from docchat.api.deps import get_widget
from docchat.services.widget import ChatWidget

logger = logging.getLogger(__name__)

router = APIRouter()


def _finish_command(task: asyncio.Task, in_flight: set) -> None:
    in_flight.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error("Host command failed", exc_info=task.exception())


def log_in_flight(in_flight: set) -> int:
    """Log commands still running when their connection closed; they finish on their own."""
    pending = sum(1 for task in in_flight if not task.done())
    if pending:
        logger.warning("Host disconnected with %d command(s) still in flight", pending)
    return pending


async def host_disconnected(widget: ChatWidget, websocket: WebSocket, in_flight: set) -> bool:
    """
    Drop a closed host connection. The session is torn down only when
    no other host connection remains.

    Returns:
        True if the session was torn down
    """
    await widget.event_bus.disconnect(websocket)
    log_in_flight(in_flight)
    if widget.event_bus.connections:
        logger.info("Host connection closed; %d still open", len(widget.event_bus.connections))
        return False

    logger.info("Last host disconnected; tearing down session")
    widget.session.teardown()
    return True


# TODO: [SECURITY] Add WebSocket authentication before production deployment
# See: https://fastapi.tiangolo.com/advanced/websockets/#handling-disconnections-and-multiple-clients
@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    widget = get_widget(websocket.app)
    origin = websocket.headers.get("origin")
    await widget.event_bus.connect(websocket)

    # Commands start in arrival order but do not wait for each other
    in_flight: set[asyncio.Task] = set()
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Dropping non-JSON message from host")
                continue

            task = asyncio.create_task(widget.protocol.handle(data, origin=origin))
            in_flight.add(task)
            task.add_done_callback(lambda t: _finish_command(t, in_flight))
    except WebSocketDisconnect:
        await host_disconnected(widget, websocket, in_flight)

"""WebSocket router for real-time status streaming.

Every connected client receives all node status events. Clients may also
send requests:
- ping
- execute_workflow (nodes, edges): runs in the background, events stream back
- cancel_execution (execution_id)
- get_active_executions

All client requests may include a request_id; the response echoes it.
"""

import asyncio
import time
import weakref
from typing import Dict, Any, Callable, Awaitable, Set

import orjson
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from core.container import container
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["websocket"])

# =============================================================================
# Concurrent Send Protection
# =============================================================================
# Use WeakKeyDictionary to auto-cleanup when WebSocket is garbage collected
_send_locks: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()


async def _safe_send(websocket: WebSocket, data: dict):
    """WebSocket send with a per-socket lock to prevent concurrent writes."""
    if websocket not in _send_locks:
        _send_locks[websocket] = asyncio.Lock()
    async with _send_locks[websocket]:
        try:
            await websocket.send_text(orjson.dumps(data).decode())
        except Exception as e:
            logger.error("WebSocket send error", error=str(e))


# Type for message handlers
MessageHandler = Callable[[Dict[str, Any], WebSocket], Awaitable[Dict[str, Any]]]


def ws_handler(*required_fields: str):
    """Simple decorator for WebSocket handlers. Validates required fields and wraps errors."""
    def decorator(func: MessageHandler) -> MessageHandler:
        async def wrapper(data: Dict[str, Any], websocket: WebSocket) -> Dict[str, Any]:
            for field in required_fields:
                if not data.get(field):
                    return {"success": False, "error": f"{field} required"}
            try:
                result = await func(data, websocket)
                if "success" not in result:
                    result = {"success": True, **result}
                return result
            except Exception as e:
                logger.error("Handler error", error=str(e), exc_info=True)
                return {"success": False, "error": str(e)}
        return wrapper
    return decorator


# ============================================================================
# Message Handlers
# ============================================================================

async def handle_ping(data: Dict[str, Any], websocket: WebSocket) -> Dict[str, Any]:
    """Handle ping request."""
    return {"type": "pong", "timestamp": time.time()}


@ws_handler("nodes")
async def handle_execute_workflow(data: Dict[str, Any], websocket: WebSocket) -> Dict[str, Any]:
    """Run a workflow; status events arrive through the subscription."""
    executor = container.workflow_executor()
    state = await executor.run_workflow(data["nodes"], data.get("edges", []),
                                        execution_id=data.get("execution_id"))
    return state.to_dict()


@ws_handler("execution_id")
async def handle_cancel_execution(data: Dict[str, Any], websocket: WebSocket) -> Dict[str, Any]:
    executor = container.workflow_executor()
    cancelled = executor.cancel(data["execution_id"])
    return {"success": cancelled, "execution_id": data["execution_id"]}


@ws_handler()
async def handle_get_active_executions(data: Dict[str, Any], websocket: WebSocket) -> Dict[str, Any]:
    return {"execution_ids": container.workflow_executor().get_active_executions()}


MESSAGE_HANDLERS: Dict[str, MessageHandler] = {
    "ping": handle_ping,
    "execute_workflow": handle_execute_workflow,
    "cancel_execution": handle_cancel_execution,
    "get_active_executions": handle_get_active_executions,
}


async def _process_message(data: Dict[str, Any], websocket: WebSocket):
    msg_type = data.get("type", "")
    request_id = data.get("request_id")

    handler = MESSAGE_HANDLERS.get(msg_type)
    if handler is None:
        result = {"success": False, "error": f"Unknown message type: {msg_type}"}
    else:
        result = await handler(data, websocket)

    response = {"type": f"{msg_type}_result", **result}
    if request_id:
        response["request_id"] = request_id
    await _safe_send(websocket, response)


@router.websocket("/ws/status")
async def websocket_status_endpoint(websocket: WebSocket):
    """WebSocket endpoint for status streaming and workflow requests.

    A forwarder task drains this client's bounded event queue while the
    receive loop spawns a task per request, so a long-running workflow never
    blocks a cancel message.
    """
    await websocket.accept()
    broadcaster = container.status_broadcaster()
    queue = broadcaster.subscribe()
    handler_tasks: Set[asyncio.Task] = set()

    await _safe_send(websocket, {
        "type": "initial_status",
        "data": {"active_executions": container.workflow_executor().get_active_executions()},
    })

    async def forward_events():
        while True:
            event = await queue.get()
            await _safe_send(websocket, event.to_dict())

    forward_task = asyncio.create_task(forward_events())
    try:
        while True:
            data = await websocket.receive_json()
            task = asyncio.create_task(_process_message(data, websocket))
            handler_tasks.add(task)
            task.add_done_callback(handler_tasks.discard)
    except WebSocketDisconnect:
        logger.info("WebSocket client disconnected")
    finally:
        forward_task.cancel()
        for task in list(handler_tasks):
            task.cancel()
        broadcaster.unsubscribe(queue)

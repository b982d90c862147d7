from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from vsdc_sim.api import deps
from vsdc_sim.core.simulator.runtime import SimulatorRuntime
from vsdc_sim.utils.exceptions import SimulatorException


router = APIRouter()

logger = logging.getLogger(__name__)


def _error_frame(code: str, message: Optional[str] = None) -> dict[str, Any]:
    frame: dict[str, Any] = {"type": "error", "error": code}
    if message:
        frame["message"] = message
    return frame


def _set_offline(runtime: SimulatorRuntime, msg: dict) -> Optional[dict]:
    value = msg.get("value")
    if not isinstance(value, bool):
        return _error_frame("invalid_value")
    runtime.set_offline(value)
    return None


def _set_latency(runtime: SimulatorRuntime, msg: dict) -> Optional[dict]:
    value = msg.get("value")
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return _error_frame("invalid_value")
    runtime.set_latency(value)
    return None


def _simulate_initialization(runtime: SimulatorRuntime, msg: dict) -> Optional[dict]:
    runtime.trigger_initialization_run()
    return None


def _simulate_transaction(runtime: SimulatorRuntime, msg: dict) -> Optional[dict]:
    runtime.trigger_transaction_run()
    return None


# Control messages: handler returns an error frame, or None on success.
_COMMANDS: dict[str, Callable[[SimulatorRuntime, dict], Optional[dict]]] = {
    "set_offline": _set_offline,
    "set_latency": _set_latency,
    "simulate_initialization": _simulate_initialization,
    "simulate_transaction": _simulate_transaction,
}


def _dispatch(runtime: SimulatorRuntime, raw: str) -> Optional[dict]:
    try:
        msg = json.loads(raw)
    except ValueError:
        return _error_frame("invalid_json")
    if not isinstance(msg, dict):
        return _error_frame("invalid_message")

    handler = _COMMANDS.get(str(msg.get("type") or ""))
    if handler is None:
        return _error_frame("unknown_message")
    try:
        return handler(runtime, msg)
    except SimulatorException as exc:
        return _error_frame(exc.code, exc.message)


async def _forward_events(websocket: WebSocket, queue: "asyncio.Queue[dict[str, Any]]") -> None:
    while True:
        await websocket.send_json(await queue.get())


@router.websocket("/ws/simulator")
async def ws_simulator(websocket: WebSocket):
    """Observer feed plus operator control surface over one socket.

    The first frame is the current `system_state`; every feed event follows.
    Text `ping` is answered with `pong`.
    """
    runtime = deps.get_runtime(websocket)
    await websocket.accept()

    try:
        sub = await runtime.subscribe(name="ws")
    except SimulatorException as exc:
        logger.warning("simulator.ws.rejected code=%s message=%s", exc.code, exc.message)
        await websocket.send_json(_error_frame(exc.code, exc.message))
        await websocket.close(code=1013)
        return

    forwarder = asyncio.create_task(_forward_events(websocket, sub.queue), name="simulator-ws-forward")
    try:
        while True:
            raw = await websocket.receive_text()
            if raw == "ping":
                await websocket.send_text("pong")
                continue
            err = _dispatch(runtime, raw)
            if err is not None:
                await websocket.send_json(err)
    except WebSocketDisconnect:
        logger.debug("simulator.ws.disconnected")
    finally:
        forwarder.cancel()
        await asyncio.gather(forwarder, return_exceptions=True)
        await runtime.unsubscribe(sub)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()

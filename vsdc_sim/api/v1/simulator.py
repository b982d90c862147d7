from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, Depends, Query, status
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

from vsdc_sim.api import deps
from vsdc_sim.core.simulator.models import TransactionRun, _Subscription
from vsdc_sim.core.simulator.runtime import SimulatorRuntime
from vsdc_sim.schemas.simulator import (
    ActiveRunItem,
    ActiveRunsResponse,
    CommandAcceptedResponse,
    RunTriggeredResponse,
    SetLatencyRequest,
    SetOfflineRequest,
    SystemStateResponse,
)

router = APIRouter(prefix="/simulator")

logger = logging.getLogger("uvicorn.error")

KEEP_ALIVE_SECONDS = 15.0


def _run_triggered(run: TransactionRun) -> RunTriggeredResponse:
    return RunTriggeredResponse(tx_id=run.tx_id, kind=run.kind)


def _run_item(run: TransactionRun) -> ActiveRunItem:
    return ActiveRunItem(
        tx_id=run.tx_id,
        kind=run.kind,
        cursor=run.cursor,
        started_at=run.started_at,
        diverged=run.diverged,
    )


# -----------------------------
# Operator commands
# -----------------------------


@router.get("/state", response_model=SystemStateResponse)
async def get_state(runtime: SimulatorRuntime = Depends(deps.get_runtime)):
    state = runtime.get_state()
    return SystemStateResponse(offline=state.offline, latency_ms=state.latency_ms)


@router.post("/offline", response_model=CommandAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def set_offline(
    body: SetOfflineRequest,
    runtime: SimulatorRuntime = Depends(deps.get_runtime),
):
    runtime.set_offline(body.offline)
    return CommandAcceptedResponse()


@router.post("/latency", response_model=CommandAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def set_latency(
    body: SetLatencyRequest,
    runtime: SimulatorRuntime = Depends(deps.get_runtime),
):
    runtime.set_latency(body.latency_ms)
    return CommandAcceptedResponse()


@router.post(
    "/runs/initialization",
    response_model=RunTriggeredResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_initialization_run(runtime: SimulatorRuntime = Depends(deps.get_runtime)):
    return _run_triggered(runtime.trigger_initialization_run())


@router.post(
    "/runs/transaction",
    response_model=RunTriggeredResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_transaction_run(runtime: SimulatorRuntime = Depends(deps.get_runtime)):
    return _run_triggered(runtime.trigger_transaction_run())


@router.get("/runs", response_model=ActiveRunsResponse)
async def list_active_runs(runtime: SimulatorRuntime = Depends(deps.get_runtime)):
    items = [_run_item(r) for r in runtime.list_active_runs()]
    items.sort(key=lambda x: x.started_at)
    return ActiveRunsResponse(items=items)


@router.get("/runs/{tx_id}", response_model=ActiveRunItem)
async def get_run(tx_id: str, runtime: SimulatorRuntime = Depends(deps.get_runtime)):
    return _run_item(runtime.get_run(tx_id))


# -----------------------------
# Observer feed (SSE)
# -----------------------------


def _sse_format(*, payload: dict[str, Any], event_id: str) -> str:
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"id: {event_id}\nevent: simulator.event\ndata: {data}\n\n"


def _parse_stop_after_types(raw: Optional[str]) -> Optional[set[str]]:
    types = {p.strip() for p in (raw or "").split(",")} - {""}
    return types or None


async def observer_events_stream(
    runtime: SimulatorRuntime,
    sub: _Subscription,
    *,
    stop_after_types: Optional[set[str]] = None,
    keep_alive_seconds: float = KEEP_ALIVE_SECONDS,
) -> AsyncIterator[str]:
    try:
        while True:
            try:
                evt = await asyncio.wait_for(sub.queue.get(), timeout=keep_alive_seconds)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue

            yield _sse_format(payload=evt, event_id=str(evt.get("event_id") or ""))

            if stop_after_types and str(evt.get("type") or "") in stop_after_types:
                return
    finally:
        await runtime.unsubscribe(sub)


@router.get("/events")
async def events_stream(
    stop_after_types: Optional[str] = Query(None),
    runtime: SimulatorRuntime = Depends(deps.get_runtime),
):
    stop_types = _parse_stop_after_types(stop_after_types)
    # Before the response starts, so the observer cap surfaces as a 429.
    # The queue already holds the current system_state snapshot.
    sub = await runtime.subscribe(name="sse")
    logger.info("simulator.sse.connect stop_after_types=%s", sorted(stop_types) if stop_types else None)
    return StreamingResponse(
        observer_events_stream(runtime, sub, stop_after_types=stop_types),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        # Also releases the slot when the client leaves before the first chunk.
        background=BackgroundTask(runtime.unsubscribe, sub),
    )

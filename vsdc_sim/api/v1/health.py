from __future__ import annotations

import time
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version as _dist_version

from fastapi import APIRouter, Depends

from vsdc_sim.api import deps
from vsdc_sim.config import settings
from vsdc_sim.core.simulator.runtime import SimulatorRuntime


router = APIRouter()

_STARTED_MONOTONIC = time.monotonic()

try:
    _VERSION = _dist_version("vsdc-clearance-simulator")
except PackageNotFoundError:
    _VERSION = "dev"


@router.get("/health")
async def health_check(runtime: SimulatorRuntime = Depends(deps.get_runtime)):
    """Liveness plus a summary of the simulated outage state."""
    state = runtime.get_state()
    return {
        "status": "ok",
        "version": _VERSION,
        "environment": settings.ENV,
        "uptime_seconds": int(time.monotonic() - _STARTED_MONOTONIC),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "simulator": {
            "offline": state.offline,
            "latencyMs": state.latency_ms,
            "active_runs": len(runtime.list_active_runs()),
            "observers": runtime.broadcaster.observer_count,
        },
    }


@router.get("/healthz")
async def healthz_check():
    return {"status": "ok"}

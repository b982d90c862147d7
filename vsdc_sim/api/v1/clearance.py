from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from vsdc_sim.api import deps
from vsdc_sim.core.clearance import Unavailable
from vsdc_sim.core.simulator.runtime import SimulatorRuntime
from vsdc_sim.schemas.clearance import (
    ClearanceRequest,
    ClearanceResponse,
    ClearanceUnavailableResponse,
)


router = APIRouter(prefix="/vsdc")


@router.post(
    "/clearance",
    response_model=ClearanceResponse,
    responses={503: {"model": ClearanceUnavailableResponse}},
    summary="Clear an invoice",
)
async def clear_invoice(
    body: ClearanceRequest,
    runtime: SimulatorRuntime = Depends(deps.get_runtime),
):
    result = await runtime.clear(body)
    if isinstance(result, Unavailable):
        return JSONResponse(status_code=result.http_status, content=result.to_response())
    return ClearanceResponse.model_validate(result.to_response())

from fastapi import APIRouter, Depends

from vsdc_sim.api import deps
from vsdc_sim.api.v1 import clearance, health, simulator, tax, websocket

api_router = APIRouter()

_http_deps = [Depends(deps.rate_limit)]

api_router.include_router(clearance.router, tags=["Clearance"], dependencies=_http_deps)
api_router.include_router(simulator.router, tags=["Simulator"], dependencies=_http_deps)
api_router.include_router(tax.router, tags=["Tax"], dependencies=_http_deps)
api_router.include_router(health.router, tags=["Health"], dependencies=_http_deps)
api_router.include_router(websocket.router, tags=["WebSocket"])

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from vsdc_sim.api.router import api_router
from vsdc_sim.config import settings
from vsdc_sim.core.simulator.runtime import SimulatorRuntime
from vsdc_sim.utils.error_codes import ErrorCode
from vsdc_sim.utils.exceptions import SimulatorException
from vsdc_sim.utils.observability import new_request_id, request_id_var, validate_request_id


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.getLogger("vsdc_sim").setLevel(str(settings.LOG_LEVEL or "INFO").upper())

    runtime = SimulatorRuntime.from_settings(settings)
    app.state.runtime = runtime
    state = runtime.get_state()
    logger.info(
        "lifespan.simulator_started env=%s offline=%s latency_ms=%d time_scale=%s",
        settings.ENV,
        state.offline,
        state.latency_ms,
        settings.SIMULATOR_TIME_SCALE,
    )

    try:
        yield
    finally:
        current = getattr(app.state, "runtime", None)
        app.state.runtime = None
        if current is not None:
            try:
                await current.shutdown()
            except Exception:
                logger.exception("lifespan.simulator_shutdown_failed")


app = FastAPI(title="VSDC Clearance Simulator", debug=settings.DEBUG, lifespan=lifespan)

# Browser visualizers run from a local dev server.
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=settings.CORS_ALLOW_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = validate_request_id(request.headers.get("X-Request-ID")) or new_request_id()
    token = request_id_var.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)

    response.headers["X-Request-ID"] = rid
    return response


def _route_label(request: Request) -> str:
    # Route template (e.g. /api/v1/simulator/runs/{tx_id}) keeps label cardinality bounded.
    path = getattr(request.scope.get("route"), "path", None)
    return path if isinstance(path, str) and path else "__unmatched__"


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    if not settings.METRICS_ENABLED:
        return await call_next(request)

    from vsdc_sim.utils.metrics import HTTP_REQUEST_DURATION_SECONDS, HTTP_REQUESTS_TOTAL

    started = time.perf_counter()
    status = "500"
    try:
        response = await call_next(request)
        status = str(response.status_code)
        return response
    finally:
        route = _route_label(request)
        HTTP_REQUESTS_TOTAL.labels(method=request.method, path=route, status=status).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=request.method, path=route).observe(
            time.perf_counter() - started
        )


@app.exception_handler(SimulatorException)
async def simulator_exception_handler(request: Request, exc: SimulatorException):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    # Body/query validation failures share the E002 envelope, with HTTP 422.
    err = SimulatorException(
        code=ErrorCode.E002,
        status_code=422,
        details={"errors": jsonable_encoder(exc.errors())},
    )
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


app.include_router(api_router, prefix="/api/v1")


if settings.METRICS_ENABLED:

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        from vsdc_sim.utils.metrics import render_metrics

        payload, content_type = render_metrics()
        return Response(content=payload, media_type=content_type)

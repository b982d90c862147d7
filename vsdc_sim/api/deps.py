import asyncio
import time

from starlette.requests import HTTPConnection, Request

from vsdc_sim.config import settings
from vsdc_sim.core.simulator.runtime import SimulatorRuntime
from vsdc_sim.utils.exceptions import ServiceUnavailableException, TooManyRequestsException


# The observer feed is one long-lived request per client; never throttled.
_UNTHROTTLED_PATHS: frozenset[str] = frozenset({"/api/v1/simulator/events"})


class _FixedWindowLimiter:
    """Per-(client, route group) request counter over fixed time windows.

    In-memory and per process; counters of expired windows are dropped lazily.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._hits: dict[tuple[str, str], tuple[int, int]] = {}

    async def hit(self, client: str, group: str, *, window_seconds: int) -> int:
        """Counts one request; returns the count in the current window."""
        window = int(time.monotonic() // window_seconds)
        async with self._lock:
            prev_window, count = self._hits.get((client, group), (window, 0))
            count = count + 1 if prev_window == window else 1
            self._hits[(client, group)] = (window, count)
        return count

    def reset(self) -> None:
        self._hits.clear()


_limiter = _FixedWindowLimiter()


def _route_group(path: str) -> str:
    # /api/v1/vsdc/clearance -> "vsdc"; POS clearance traffic is budgeted apart from operator commands.
    parts = [p for p in path.split("/") if p]
    return parts[2] if len(parts) > 2 else "root"


async def rate_limit(request: Request) -> None:
    if not settings.RATE_LIMIT_ENABLED:
        return

    path = request.url.path
    if path in _UNTHROTTLED_PATHS:
        return

    client = request.client.host if request.client and request.client.host else "unknown"
    window_seconds = max(1, int(settings.RATE_LIMIT_WINDOW_SECONDS))
    limit = max(1, int(settings.RATE_LIMIT_REQUESTS_PER_WINDOW))

    group = _route_group(path)
    count = await _limiter.hit(client, group, window_seconds=window_seconds)
    if count > limit:
        raise TooManyRequestsException(
            details={"group": group, "limit": limit, "window_seconds": window_seconds}
        )


def get_runtime(conn: HTTPConnection) -> SimulatorRuntime:
    """Returns the process-wide simulator runtime built in the app lifespan."""
    runtime = getattr(conn.app.state, "runtime", None)
    if runtime is None:
        raise ServiceUnavailableException("Simulator runtime is not started")
    return runtime

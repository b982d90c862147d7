"""
VSDC simulator - pytest fixtures.

Provides:
- Runtime factories wired to the virtual clock
- A FastAPI TestClient with a fast, real-time runtime
"""
from typing import Any, Callable, Generator

import pytest
from fastapi.testclient import TestClient

from tests.virtual_clock import VirtualClock
from vsdc_sim.config import settings
from vsdc_sim.core.simulator.runtime import SimulatorRuntime


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def make_runtime(clock: VirtualClock) -> Callable[..., SimulatorRuntime]:
    """Factory for a runtime driven by the virtual clock."""

    def _make(*, offline: bool = False, latency_ms: int = 0, **kwargs: Any) -> SimulatorRuntime:
        return SimulatorRuntime(
            initial_offline=offline,
            initial_latency_ms=latency_ms,
            clock_ms=clock.time_ms,
            sleep=clock.sleep,
            **kwargs,
        )

    return _make


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    """TestClient whose runtime plays sequences at 1/1000 of narrative pacing.

    The lifespan builds the runtime from settings, so patch settings before
    requesting this fixture to change it.
    """
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False, raising=False)
    monkeypatch.setattr(settings, "SIMULATOR_TIME_SCALE", 0.001, raising=False)

    from vsdc_sim.main import app

    with TestClient(app) as c:
        yield c

import asyncio
import random
import time
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from vsdc_sim.core.clearance import UNAVAILABLE_MESSAGE, ClearanceResponder, Cleared, Unavailable
from vsdc_sim.core.simulator.state import SystemStateStore
from vsdc_sim.schemas.clearance import ClearanceRequest

_FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _request(total: str = "6000") -> ClearanceRequest:
    return ClearanceRequest(
        uuid="inv-0001",
        company_tin="C0000000001",
        items=[{"name": "Rice", "qty": 2, "price": 3000}],
        total=Decimal(total),
        flag="INVOICE",
    )


class _RecordingSleep:
    def __init__(self, on_sleep=None) -> None:
        self.calls: list[float] = []
        self._on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._on_sleep is not None:
            self._on_sleep()


@pytest.mark.asyncio
async def test_online_clearance_returns_signed_metadata() -> None:
    state = SystemStateStore()
    sleep = _RecordingSleep()
    responder = ClearanceResponder(
        state=state,
        verify_url_base="https://verify.example/",
        sleep=sleep,
        rng=random.Random(7),
        utc_now=lambda: _FIXED_NOW,
    )

    result = await responder.clear(_request())

    assert isinstance(result, Cleared)
    body = result.to_response()
    assert body["status"] == "CLEARED"
    assert body["distributor_tin"] == "C0000000001"
    assert body["num"] == f"INV-{int(_FIXED_NOW.timestamp() * 1000)}"
    assert body["ysdcid"].startswith("SDC-") and len(body["ysdcid"]) == 12
    assert 0 <= body["ysdcrecnum"] < 10000
    assert body["ysdcintdata"].startswith("INT-")
    assert body["ysdcregsig"].startswith("SIG-")
    assert body["ysdcmrctim"] == _FIXED_NOW.isoformat()
    assert body["ysdctime"] == body["ysdcmrctim"]
    assert body["qr_code"].startswith("https://verify.example/")
    assert body["computed_taxes"]["total_tax"] == "1000.00"

    # Zero latency: no delay applied.
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_each_clearance_gets_fresh_identifiers() -> None:
    responder = ClearanceResponder(state=SystemStateStore(), sleep=_RecordingSleep())

    a = await responder.clear(_request())
    b = await responder.clear(_request())

    assert isinstance(a, Cleared) and isinstance(b, Cleared)
    assert a.sdc_id != b.sdc_id
    assert a.signature != b.signature
    assert a.verify_url != b.verify_url


@pytest.mark.asyncio
async def test_latency_is_applied_before_responding() -> None:
    state = SystemStateStore(latency_ms=1500)
    sleep = _RecordingSleep()
    responder = ClearanceResponder(state=state, sleep=sleep)

    result = await responder.clear(_request())

    assert isinstance(result, Cleared)
    assert sleep.calls == [1.5]


@pytest.mark.asyncio
async def test_offline_returns_unavailable_after_latency() -> None:
    state = SystemStateStore(offline=True, latency_ms=200)
    sleep = _RecordingSleep()
    responder = ClearanceResponder(state=state, sleep=sleep)

    result = await responder.clear(_request())

    assert isinstance(result, Unavailable)
    assert result.http_status == 503
    assert result.to_response() == {"error": UNAVAILABLE_MESSAGE}
    assert sleep.calls == [0.2]


@pytest.mark.asyncio
async def test_offline_flag_is_read_after_the_delay() -> None:
    state = SystemStateStore(latency_ms=100)
    sleep = _RecordingSleep(on_sleep=lambda: state.set_offline(True))
    responder = ClearanceResponder(state=state, sleep=sleep)

    result = await responder.clear(_request())

    assert isinstance(result, Unavailable)


@pytest.mark.asyncio
async def test_latency_change_during_delay_does_not_extend_it() -> None:
    state = SystemStateStore(latency_ms=100)
    sleep = _RecordingSleep(on_sleep=lambda: state.set_latency(5000))
    responder = ClearanceResponder(state=state, sleep=sleep)

    result = await responder.clear(_request())

    assert isinstance(result, Cleared)
    assert sleep.calls == [0.1]


@pytest.mark.asyncio
async def test_real_sleep_respects_latency_lower_bound() -> None:
    state = SystemStateStore(latency_ms=50)
    responder = ClearanceResponder(state=state, sleep=asyncio.sleep)

    start = time.perf_counter()
    result = await responder.clear(_request())
    elapsed = time.perf_counter() - start

    assert isinstance(result, Cleared)
    assert elapsed >= 0.045

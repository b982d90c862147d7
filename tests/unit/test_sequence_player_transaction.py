import pytest

from tests.virtual_clock import VIRTUAL_START_MS, completions_of, drain, packets_of
from vsdc_sim.core.simulator.topology import TRANSACTION_HOPS

START = int(VIRTUAL_START_MS)

_EXPECTED_EDGES = [
    ("customer", "pos"),
    ("pos", "vsdc"),
    ("vsdc", "gateway"),
    ("gateway", "validation_engine"),
    ("validation_engine", "state_db"),
    ("validation_engine", "gateway"),
    ("gateway", "vsdc"),
    ("vsdc", "pos"),
    ("pos", "customer"),
]


@pytest.mark.asyncio
async def test_online_transaction_plays_nine_hops_then_commits(clock, make_runtime) -> None:
    runtime = make_runtime()
    sub = await runtime.subscribe(name="test")
    run = runtime.trigger_transaction_run()

    await clock.run_until_idle()
    events = drain(sub.queue)

    assert events[0]["type"] == "system_state"

    packets = packets_of(events, run.tx_id)
    assert [(p["source"], p["target"]) for p in packets] == _EXPECTED_EDGES
    assert [p["timestampMs"] for p in packets] == [START + 4000 * i for i in range(1, 10)]
    assert all(p["status"] == "PROCESSING" for p in packets)
    assert "error" not in packets[0]
    assert packets[2]["payload"] == {"step": "5. HTTPS POST", "data": "Sample Payload Data"}
    assert [p["payload"]["step"] for p in packets] == [h.label for h in TRANSACTION_HOPS]

    done = completions_of(events, run.tx_id)
    assert len(done) == 1
    assert done[0]["status"] == "COMMITTED"
    assert events[-1] is done[0]

    assert run.terminal_status is not None and run.terminal_status.value == "COMMITTED"
    assert runtime.list_active_runs() == []


@pytest.mark.asyncio
async def test_terminal_event_fires_one_interval_after_last_hop(clock, make_runtime) -> None:
    runtime = make_runtime()
    sub = await runtime.subscribe(name="test")
    run = runtime.trigger_transaction_run()

    await clock.advance(39_999)
    events = drain(sub.queue)
    assert len(packets_of(events, run.tx_id)) == 9
    assert completions_of(events) == []

    await clock.advance(1)
    assert completions_of(drain(sub.queue), run.tx_id)[0]["status"] == "COMMITTED"


@pytest.mark.asyncio
async def test_latency_stretches_interval(clock, make_runtime) -> None:
    runtime = make_runtime(latency_ms=1000)
    sub = await runtime.subscribe(name="test")
    run = runtime.trigger_transaction_run()

    assert run.interval_ms == 4200

    await clock.run_until_idle()
    packets = packets_of(drain(sub.queue), run.tx_id)

    assert [p["timestampMs"] for p in packets] == [START + 4200 * i for i in range(1, 10)]
    assert clock.now_ms == START + 42_000


@pytest.mark.asyncio
async def test_interval_is_frozen_when_latency_changes_mid_run(clock, make_runtime) -> None:
    runtime = make_runtime()
    sub = await runtime.subscribe(name="test")
    first = runtime.trigger_transaction_run()

    clock.call_at(START + 6000, lambda: runtime.set_latency(5000))
    await clock.advance(7000)
    second = runtime.trigger_transaction_run()

    await clock.run_until_idle()
    events = drain(sub.queue)

    assert first.interval_ms == 4000
    assert second.interval_ms == 5000
    assert [p["timestampMs"] for p in packets_of(events, first.tx_id)] == [
        START + 4000 * i for i in range(1, 10)
    ]
    second_start = START + 7000
    assert [p["timestampMs"] for p in packets_of(events, second.tx_id)] == [
        second_start + 5000 * i for i in range(1, 10)
    ]


@pytest.mark.asyncio
async def test_going_offline_after_gateway_hop_still_commits(clock, make_runtime) -> None:
    runtime = make_runtime()
    sub = await runtime.subscribe(name="test")
    run = runtime.trigger_transaction_run()

    clock.call_at(START + 13_000, lambda: runtime.set_offline(True))
    await clock.run_until_idle()
    events = drain(sub.queue)

    packets = packets_of(events, run.tx_id)
    assert len(packets) == 9
    assert all(p["status"] == "PROCESSING" for p in packets)
    assert completions_of(events, run.tx_id)[0]["status"] == "COMMITTED"
    assert run.diverged is False


@pytest.mark.asyncio
async def test_concurrent_runs_are_independent(clock, make_runtime) -> None:
    runtime = make_runtime()
    sub = await runtime.subscribe(name="test")
    a = runtime.trigger_transaction_run()
    await clock.advance(1000)
    b = runtime.trigger_transaction_run()

    assert a.tx_id != b.tx_id
    assert {r.tx_id for r in runtime.list_active_runs()} == {a.tx_id, b.tx_id}

    await clock.run_until_idle()
    events = drain(sub.queue)

    for run in (a, b):
        assert len(packets_of(events, run.tx_id)) == 9
        assert completions_of(events, run.tx_id)[0]["status"] == "COMMITTED"
    assert packets_of(events, b.tx_id)[0]["timestampMs"] == START + 5000


@pytest.mark.asyncio
async def test_event_ids_are_monotonic(clock, make_runtime) -> None:
    runtime = make_runtime()
    sub = await runtime.subscribe(name="test")
    runtime.trigger_transaction_run()

    await clock.run_until_idle()
    ids = [e["event_id"] for e in drain(sub.queue)]

    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)

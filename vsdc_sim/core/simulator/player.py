from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from vsdc_sim.core.simulator.broadcast import EventEmitter
from vsdc_sim.core.simulator.models import TransactionRun
from vsdc_sim.core.simulator.state import SystemStateStore
from vsdc_sim.core.simulator.topology import (
    RUN_PROFILES,
    OfflineFallbackPolicy,
    PacketStatus,
    RunKind,
    TerminalStatus,
)
from vsdc_sim.utils.metrics import SIMULATOR_PACKETS_TOTAL, SIMULATOR_RUNS_TOTAL


def _wall_clock_ms() -> float:
    return time.time() * 1000.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_tx_id(kind: RunKind) -> str:
    if kind == RunKind.INITIALIZATION:
        return f"INIT-{uuid.uuid4().hex[:8]}"
    return str(uuid.uuid4())


class SequencePlayer:
    """Timed packet sequence engine.

    Each run walks its profile's hop tuple, one hop per interval tick, then
    emits a terminal event on the following tick. Tick deadlines are absolute
    from run start. The interval is frozen when the run starts, while the
    offline flag is read live right before the hop that models the outbound
    gateway call; if it is set there the run switches to the profile's
    scripted fallback and never re-checks the flag.

    Runs cannot be cancelled individually; re-triggering starts an independent
    concurrent run.
    """

    def __init__(
        self,
        *,
        state: SystemStateStore,
        emitter: EventEmitter,
        logger: logging.Logger,
        clock_ms: Callable[[], float] = _wall_clock_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        time_scale: float = 1.0,
        utc_now: Callable[[], datetime] = _utc_now,
    ) -> None:
        if not time_scale > 0:
            raise ValueError("time_scale must be > 0")
        self._state = state
        self._emitter = emitter
        self._logger = logger
        self._clock_ms = clock_ms
        self._sleep = sleep
        self._time_scale = float(time_scale)
        self._utc_now = utc_now

        self._runs: dict[str, TransactionRun] = {}

    def start_initialization_run(self) -> TransactionRun:
        return self.start_run(RunKind.INITIALIZATION)

    def start_transaction_run(self) -> TransactionRun:
        return self.start_run(RunKind.TRANSACTION)

    def start_run(self, kind: RunKind) -> TransactionRun:
        profile = RUN_PROFILES[kind]
        tx_id = new_tx_id(kind)
        latency_ms = self._state.latency_ms

        run = TransactionRun(
            tx_id=tx_id,
            kind=kind,
            profile=profile,
            interval_ms=profile.interval_ms(latency_ms),
            started_at=self._utc_now(),
            started_at_ms=self._clock_ms(),
        )
        self._runs[tx_id] = run

        task = asyncio.create_task(self._play(run), name=f"simulator-run:{tx_id}")
        run._task = task
        task.add_done_callback(lambda _t, _tx_id=tx_id: self._runs.pop(_tx_id, None))

        self._logger.info(
            "simulator.run.started tx_id=%s kind=%s interval_ms=%.1f latency_ms=%d",
            tx_id,
            kind.value,
            run.interval_ms,
            latency_ms,
        )
        return run

    def get_run(self, tx_id: str) -> Optional[TransactionRun]:
        return self._runs.get(tx_id)

    def list_active_runs(self) -> list[TransactionRun]:
        return [r for r in self._runs.values() if not r.terminal]

    async def shutdown(self) -> None:
        """Cancels all in-flight runs. Cancelled runs emit no terminal event."""
        tasks = [r._task for r in self._runs.values() if r._task is not None]
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._runs.clear()

    async def _sleep_until(self, anchor_ms: float, offset_ms: float) -> None:
        deadline_ms = anchor_ms + offset_ms * self._time_scale
        delay_ms = deadline_ms - self._clock_ms()
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000.0)

    async def _play(self, run: TransactionRun) -> None:
        profile = run.profile
        fallback = profile.offline_fallback
        tick = 0
        try:
            while True:
                tick += 1
                await self._sleep_until(run.started_at_ms, tick * run.interval_ms)

                if run.cursor >= len(profile.hops):
                    self._finish(run, profile.terminal_status)
                    return

                hop = profile.hops[run.cursor]
                if fallback is not None and hop.edge == fallback.trigger_edge and self._state.offline:
                    await self._play_fallback(run, fallback)
                    return

                self._emit_packet(
                    run,
                    source=hop.source,
                    target=hop.target,
                    status=PacketStatus.PROCESSING,
                    payload=profile.hop_payload(hop),
                )
                run.cursor += 1
        except asyncio.CancelledError:
            self._logger.info("simulator.run.cancelled tx_id=%s cursor=%d", run.tx_id, run.cursor)
            raise
        except Exception:
            self._logger.exception("simulator.run.failed tx_id=%s cursor=%d", run.tx_id, run.cursor)

    async def _play_fallback(self, run: TransactionRun, policy: OfflineFallbackPolicy) -> None:
        run.diverged = True
        anchor_ms = self._clock_ms()
        self._logger.warning(
            "simulator.run.offline_divergence tx_id=%s cursor=%d", run.tx_id, run.cursor
        )

        for offset_ms, step in policy.script:
            await self._sleep_until(anchor_ms, offset_ms)
            self._emit_packet(
                run,
                source=step.source,
                target=step.target,
                status=step.status,
                payload=step.payload,
                error=step.error,
            )

        self._finish(run, policy.terminal_status)

    def _emit_packet(self, run: TransactionRun, *, source, target, status: PacketStatus, payload, error=None) -> None:
        self._emitter.emit_packet(
            tx_id=run.tx_id,
            source=source,
            target=target,
            status=status,
            timestamp_ms=int(self._clock_ms()),
            payload=payload,
            error=error,
        )
        SIMULATOR_PACKETS_TOTAL.labels(status=status.value).inc()

    def _finish(self, run: TransactionRun, status: TerminalStatus) -> None:
        run.terminal = True
        run.terminal_status = status
        self._emitter.emit_transaction_complete(tx_id=run.tx_id, status=status)
        SIMULATOR_RUNS_TOTAL.labels(kind=run.kind.value, status=status.value).inc()
        self._logger.info("simulator.run.terminal tx_id=%s status=%s", run.tx_id, status.value)

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from vsdc_sim.config import Settings
from vsdc_sim.core.clearance import ClearanceResponder, ClearanceResult
from vsdc_sim.core.simulator.broadcast import EventEmitter, SessionBroadcaster
from vsdc_sim.core.simulator.models import SystemState, TransactionRun, _Subscription
from vsdc_sim.core.simulator.player import SequencePlayer, _wall_clock_ms
from vsdc_sim.core.simulator.state import SystemStateStore
from vsdc_sim.schemas.clearance import ClearanceRequest
from vsdc_sim.utils.exceptions import NotFoundException, ServiceUnavailableException

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SimulatorRuntime:
    """In-process simulator runtime.

    Owns the single SystemStateStore and hands it by reference to both the
    SequencePlayer and the ClearanceResponder. State changes are pushed to the
    SessionBroadcaster through a store listener, so every observer gets the
    latest snapshot after each operator command.
    """

    def __init__(
        self,
        *,
        initial_offline: bool = False,
        initial_latency_ms: int = 0,
        time_scale: float = 1.0,
        observer_queue_max: int = 256,
        max_observers: int = 0,
        verify_url_base: str = "https://gra.gov.gh/verify/",
        clock_ms: Callable[[], float] = _wall_clock_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._closed = False

        self.state = SystemStateStore(offline=initial_offline, latency_ms=initial_latency_ms)
        self.broadcaster = SessionBroadcaster(
            get_queue_max=lambda: observer_queue_max,
            max_observers=max_observers,
            logger=logging.getLogger("vsdc_sim.core.simulator.broadcast"),
        )
        self.emitter = EventEmitter(
            broadcaster=self.broadcaster,
            utc_now=_utc_now,
            logger=logging.getLogger("vsdc_sim.core.simulator.broadcast"),
        )
        self.player = SequencePlayer(
            state=self.state,
            emitter=self.emitter,
            logger=logging.getLogger("vsdc_sim.core.simulator.player"),
            clock_ms=clock_ms,
            sleep=sleep,
            time_scale=time_scale,
        )
        self.responder = ClearanceResponder(
            state=self.state,
            verify_url_base=verify_url_base,
        )

        # Observers attach to the broadcaster; the store listener fans state out.
        # The initial delivery happens before any observer exists and is a no-op.
        self._unsubscribe_state = self.state.subscribe(self.emitter.emit_system_state)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "SimulatorRuntime":
        kwargs: dict[str, Any] = dict(
            initial_offline=settings.SIMULATOR_INITIAL_OFFLINE,
            initial_latency_ms=settings.SIMULATOR_INITIAL_LATENCY_MS,
            time_scale=settings.SIMULATOR_TIME_SCALE,
            observer_queue_max=settings.SIMULATOR_OBSERVER_QUEUE_MAX,
            max_observers=settings.SIMULATOR_MAX_OBSERVERS,
            verify_url_base=settings.CLEARANCE_VERIFY_URL_BASE,
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    # -----------------------------
    # Operator commands
    # -----------------------------

    def get_state(self) -> SystemState:
        return self.state.get()

    def set_offline(self, offline: bool) -> None:
        self.state.set_offline(offline)

    def set_latency(self, latency_ms: int) -> None:
        self.state.set_latency(latency_ms)

    def trigger_initialization_run(self) -> TransactionRun:
        self._ensure_open()
        return self.player.start_initialization_run()

    def trigger_transaction_run(self) -> TransactionRun:
        self._ensure_open()
        return self.player.start_transaction_run()

    def list_active_runs(self) -> list[TransactionRun]:
        return self.player.list_active_runs()

    def get_run(self, tx_id: str) -> TransactionRun:
        run = self.player.get_run(tx_id)
        if run is None or run.terminal:
            raise NotFoundException("Run not found or already finished", details={"txId": tx_id})
        return run

    # -----------------------------
    # Clearance
    # -----------------------------

    async def clear(self, request: ClearanceRequest) -> ClearanceResult:
        return await self.responder.clear(request)

    # -----------------------------
    # Observers
    # -----------------------------

    async def subscribe(self, *, name: str = "") -> _Subscription:
        """Attaches an observer; its queue starts with the current system_state."""
        self._ensure_open()
        snapshot = self.emitter.system_state_event(self.state.get())
        return await self.broadcaster.subscribe(name=name, initial=[snapshot])

    async def unsubscribe(self, sub: _Subscription) -> None:
        await self.broadcaster.unsubscribe(sub)

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise ServiceUnavailableException("Simulator runtime is shutting down")

    async def shutdown(self) -> None:
        """Cancels in-flight runs and detaches all observers (best-effort)."""
        if self._closed:
            return
        self._closed = True
        active = self.player.list_active_runs()
        if active:
            logger.warning("simulator.runtime.shutdown cancelling_runs=%d", len(active))
        await self.player.shutdown()
        self._unsubscribe_state()
        self.broadcaster.close_all()


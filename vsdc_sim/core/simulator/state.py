from __future__ import annotations

import logging
from typing import Callable

from vsdc_sim.core.simulator.models import SystemState
from vsdc_sim.utils.exceptions import BadRequestException

logger = logging.getLogger(__name__)

StateListener = Callable[[SystemState], None]


class SystemStateStore:
    """Process-wide simulated outage/latency flags.

    Every mutation goes through `set_offline` / `set_latency`, which push the
    full state to all listeners. Repeated identical writes still notify.
    All access happens on the event loop thread, so no locking is done here.
    """

    def __init__(self, *, offline: bool = False, latency_ms: int = 0) -> None:
        self._state = SystemState(
            offline=self._check_offline(offline),
            latency_ms=self._check_latency(latency_ms),
        )
        self._listeners: list[StateListener] = []

    @staticmethod
    def _check_offline(value: object) -> bool:
        if not isinstance(value, bool):
            raise BadRequestException("offline must be a boolean", details={"value": repr(value)})
        return value

    @staticmethod
    def _check_latency(value: object) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise BadRequestException("latency must be an integer", details={"value": repr(value)})
        if value < 0:
            raise BadRequestException("latency must be >= 0", details={"value": value})
        return value

    def get(self) -> SystemState:
        return self._state

    @property
    def offline(self) -> bool:
        return self._state.offline

    @property
    def latency_ms(self) -> int:
        return self._state.latency_ms

    def set_offline(self, offline: bool) -> None:
        offline = self._check_offline(offline)
        self._state = SystemState(offline=offline, latency_ms=self._state.latency_ms)
        logger.info("simulator.state.set_offline offline=%s", offline)
        self._notify()

    def set_latency(self, latency_ms: int) -> None:
        latency_ms = self._check_latency(latency_ms)
        self._state = SystemState(offline=self._state.offline, latency_ms=latency_ms)
        logger.info("simulator.state.set_latency latency_ms=%d", latency_ms)
        self._notify()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Registers a listener and immediately hands it the current state.

        Returns a callable that detaches the listener.
        """
        self._listeners.append(listener)
        self._deliver(listener, self._state)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return

        return _unsubscribe

    def _notify(self) -> None:
        state = self._state
        for listener in list(self._listeners):
            self._deliver(listener, state)

    def _deliver(self, listener: StateListener, state: SystemState) -> None:
        try:
            listener(state)
        except Exception:
            # Observer failures must not undo or block a state change.
            logger.warning("simulator.state.listener_failed", exc_info=True)

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from vsdc_sim.core.simulator.models import SystemState, _Subscription
from vsdc_sim.core.simulator.topology import NodeId, PacketStatus, TerminalStatus
from vsdc_sim.schemas.simulator import (
    PacketEvent,
    SystemStateEvent,
    TransactionCompleteEvent,
)
from vsdc_sim.utils.exceptions import TooManyRequestsException
from vsdc_sim.utils.metrics import OBSERVER_QUEUE_DROPS_TOTAL

# Event types that must reach every observer; on a full queue they evict the
# oldest queued item instead of being dropped.
PRIORITY_EVENT_TYPES = frozenset({"system_state", "transaction_complete"})


class SessionBroadcaster:
    """Fan-out of observer feed events to every attached observer.

    Delivery is at-most-once and best-effort; there is no replay buffer, so an
    observer attaching mid-run only sees events emitted after it attached.
    """

    def __init__(
        self,
        *,
        get_queue_max: Callable[[], int],
        max_observers: int = 0,
        logger: logging.Logger,
    ) -> None:
        self._get_queue_max = get_queue_max
        self._max_observers = max(0, int(max_observers))
        self._logger = logger

        self._subs: list[_Subscription] = []
        self._event_seq = 0

        # In-memory drop/eviction counters, surfaced in drop warnings.
        self._queue_full_drop_total = 0
        self._queue_full_eviction_total = 0

    @property
    def observer_count(self) -> int:
        return len(self._subs)

    def next_event_id(self) -> str:
        """Allocates a monotonically increasing event id."""
        self._event_seq += 1
        return f"evt_{self._event_seq:06d}"

    def broadcast(self, payload: dict[str, Any]) -> None:
        """Broadcasts one event payload to current observers."""
        event_type = str(payload.get("type") or "")

        for sub in list(self._subs):
            try:
                sub.queue.put_nowait(payload)
                continue
            except asyncio.QueueFull:
                pass

            if event_type in PRIORITY_EVENT_TYPES:
                try:
                    _ = sub.queue.get_nowait()
                    sub.queue.put_nowait(payload)
                    self._queue_full_eviction_total += 1
                    continue
                except (asyncio.QueueEmpty, asyncio.QueueFull):
                    self._logger.debug(
                        "simulator.broadcast.priority_evict_failed event_type=%s observer=%s",
                        event_type,
                        sub.name,
                        exc_info=True,
                    )

            self._queue_full_drop_total += 1
            OBSERVER_QUEUE_DROPS_TOTAL.labels(event_type=event_type or "unknown").inc()
            self._logger.warning(
                "simulator.broadcast.queue_full_drop event_type=%s observer=%s qsize=%d qmax=%d observers=%d drops_total=%d evictions_total=%d",
                event_type,
                sub.name,
                sub.queue.qsize(),
                int(getattr(sub.queue, "maxsize", 0) or 0),
                len(self._subs),
                self._queue_full_drop_total,
                self._queue_full_eviction_total,
            )

    async def subscribe(
        self,
        *,
        name: str = "",
        initial: Optional[list[dict[str, Any]]] = None,
    ) -> _Subscription:
        """Attaches a new observer queue, pre-filled with `initial` events.

        Enforces the concurrent observer cap (`max_observers`, 0 = unlimited).
        """
        if self._max_observers > 0 and len(self._subs) >= self._max_observers:
            raise TooManyRequestsException(
                "Too many concurrent observers",
                details={"max_observers": self._max_observers, "observers": len(self._subs)},
            )

        queue_max = max(1, int(self._get_queue_max()))
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=queue_max)
        sub = _Subscription(queue=queue, name=name)

        for evt in initial or []:
            try:
                queue.put_nowait(evt)
            except asyncio.QueueFull:
                break

        self._subs.append(sub)
        self._logger.debug("simulator.broadcast.subscribed observer=%s observers=%d", name, len(self._subs))
        return sub

    async def unsubscribe(self, sub: _Subscription) -> None:
        """Detaches an observer (best-effort)."""
        try:
            self._subs.remove(sub)
        except ValueError:
            return
        self._logger.debug("simulator.broadcast.unsubscribed observer=%s observers=%d", sub.name, len(self._subs))

    def close_all(self) -> None:
        self._subs.clear()


class EventEmitter:
    """Domain-level observer feed event construction.

    SessionBroadcaster is the transport. The emitter owns serialization:
    always `model_dump(mode="json", by_alias=True)`. Broadcast failures are
    logged and never propagate to the caller.
    """

    def __init__(
        self,
        *,
        broadcaster: SessionBroadcaster,
        utc_now: Callable[[], datetime],
        logger: logging.Logger,
    ) -> None:
        self._broadcaster = broadcaster
        self._utc_now = utc_now
        self._logger = logger

    def system_state_event(self, state: SystemState) -> dict[str, Any]:
        return SystemStateEvent(
            event_id=self._broadcaster.next_event_id(),
            ts=self._utc_now(),
            offline=state.offline,
            latency_ms=state.latency_ms,
        ).model_dump(mode="json", by_alias=True)

    def emit_system_state(self, state: SystemState) -> None:
        try:
            self._broadcaster.broadcast(self.system_state_event(state))
        except Exception:
            self._logger.warning("simulator.broadcast.system_state_emit_error", exc_info=True)

    def emit_packet(
        self,
        *,
        tx_id: str,
        source: NodeId,
        target: NodeId,
        status: PacketStatus,
        timestamp_ms: int,
        payload: dict[str, Any],
        error: str | None = None,
    ) -> None:
        try:
            evt_kwargs: dict[str, Any] = {
                "event_id": self._broadcaster.next_event_id(),
                "ts": self._utc_now(),
                "tx_id": tx_id,
                "source": source,
                "target": target,
                "status": status,
                "timestamp_ms": int(timestamp_ms),
                "payload": dict(payload),
            }
            if error is not None:
                evt_kwargs["error"] = str(error)

            evt = PacketEvent(**evt_kwargs).model_dump(mode="json", by_alias=True)
            if evt.get("error") is None:
                evt.pop("error", None)
            self._broadcaster.broadcast(evt)
        except Exception:
            self._logger.warning(
                "simulator.broadcast.packet_emit_error tx_id=%s source=%s target=%s",
                tx_id,
                getattr(source, "value", source),
                getattr(target, "value", target),
                exc_info=True,
            )

    def emit_transaction_complete(self, *, tx_id: str, status: TerminalStatus) -> None:
        try:
            evt = TransactionCompleteEvent(
                event_id=self._broadcaster.next_event_id(),
                ts=self._utc_now(),
                tx_id=tx_id,
                status=status,
            ).model_dump(mode="json", by_alias=True)
            self._broadcaster.broadcast(evt)
        except Exception:
            self._logger.warning(
                "simulator.broadcast.transaction_complete_emit_error tx_id=%s",
                tx_id,
                exc_info=True,
            )

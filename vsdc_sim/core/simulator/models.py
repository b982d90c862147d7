from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from vsdc_sim.core.simulator.topology import RunKind, RunProfile, TerminalStatus


@dataclass(frozen=True)
class SystemState:
    offline: bool = False
    latency_ms: int = 0


@dataclass
class _Subscription:
    queue: "asyncio.Queue[dict[str, Any]]"
    name: str = ""


@dataclass
class TransactionRun:
    tx_id: str
    kind: RunKind
    profile: RunProfile
    interval_ms: float
    started_at: datetime
    started_at_ms: float

    # Index of the next nominal hop to emit.
    cursor: int = 0
    diverged: bool = False
    terminal: bool = False
    terminal_status: Optional[TerminalStatus] = None

    _task: Optional["asyncio.Task[None]"] = None

    async def wait(self) -> None:
        """Waits until the run reaches its terminal event (or is cancelled)."""
        if self._task is not None:
            await asyncio.shield(self._task)

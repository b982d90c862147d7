from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class NodeId(str, Enum):
    CUSTOMER = "customer"
    POS = "pos"
    VSDC = "vsdc"
    GATEWAY = "gateway"
    VALIDATION_ENGINE = "validation_engine"
    STATE_DB = "state_db"
    SKMM = "skmm"
    DAILY_KEY = "daily_key"
    LOCAL_CACHE = "local_cache"
    GRA_CLOUD = "gra_cloud"


class PacketStatus(str, Enum):
    PROCESSING = "PROCESSING"
    FAILED = "FAILED"


class RunKind(str, Enum):
    INITIALIZATION = "INIT"
    TRANSACTION = "TRANSACTION"


class TerminalStatus(str, Enum):
    INITIALIZED = "INITIALIZED"
    COMMITTED = "COMMITTED"
    QUEUED_OFFLINE = "QUEUED_OFFLINE"


@dataclass(frozen=True)
class HopDescriptor:
    source: NodeId
    target: NodeId
    label: str

    @property
    def edge(self) -> tuple[NodeId, NodeId]:
        return (self.source, self.target)


@dataclass(frozen=True)
class FallbackStep:
    """One scripted packet of the offline fallback path."""

    source: NodeId
    target: NodeId
    status: PacketStatus
    payload: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass(frozen=True)
class OfflineFallbackPolicy:
    # The hop that models the outbound gateway call; divergence is only checked here.
    trigger_edge: tuple[NodeId, NodeId]
    # (offset_ms, step) pairs, offsets absolute from the divergence instant.
    script: tuple[tuple[int, FallbackStep], ...]
    terminal_status: TerminalStatus


@dataclass(frozen=True)
class RunProfile:
    kind: RunKind
    hops: tuple[HopDescriptor, ...]
    base_interval_ms: float
    # Interval grows by latency_ms / latency_divisor; 0 disables the latency term.
    latency_divisor: float
    payload_extra: dict[str, Any]
    terminal_status: TerminalStatus
    offline_fallback: Optional[OfflineFallbackPolicy] = None

    def interval_ms(self, latency_ms: int) -> float:
        if not self.latency_divisor:
            return self.base_interval_ms
        return self.base_interval_ms + latency_ms / self.latency_divisor

    def hop_payload(self, hop: HopDescriptor) -> dict[str, Any]:
        return {"step": hop.label, **self.payload_extra}


INITIALIZATION_HOPS: tuple[HopDescriptor, ...] = (
    HopDescriptor(NodeId.POS, NodeId.SKMM, "1. Start of Day Request"),
    HopDescriptor(NodeId.SKMM, NodeId.DAILY_KEY, "2. Authorize & Issue"),
    HopDescriptor(NodeId.DAILY_KEY, NodeId.VSDC, "Loads Auth Key"),
)

TRANSACTION_HOPS: tuple[HopDescriptor, ...] = (
    HopDescriptor(NodeId.CUSTOMER, NodeId.POS, "3. Presents Items"),
    HopDescriptor(NodeId.POS, NodeId.VSDC, "4. Format JSON"),
    HopDescriptor(NodeId.VSDC, NodeId.GATEWAY, "5. HTTPS POST"),
    HopDescriptor(NodeId.GATEWAY, NodeId.VALIDATION_ENGINE, "6. Route for Clearance"),
    HopDescriptor(NodeId.VALIDATION_ENGINE, NodeId.STATE_DB, "8. Commit Transaction"),
    HopDescriptor(NodeId.VALIDATION_ENGINE, NodeId.GATEWAY, "9. Return Metadata"),
    HopDescriptor(NodeId.GATEWAY, NodeId.VSDC, "10. HTTP 200 OK"),
    HopDescriptor(NodeId.VSDC, NodeId.POS, "11. Cryptographic Clearance"),
    HopDescriptor(NodeId.POS, NodeId.CUSTOMER, "12. Print Certified Receipt"),
)

OFFLINE_FALLBACK_SCRIPT: tuple[tuple[int, FallbackStep], ...] = (
    (
        0,
        FallbackStep(
            NodeId.VSDC,
            NodeId.GATEWAY,
            PacketStatus.FAILED,
            payload={"error": "Connection Refused", "retry_after": 30},
            error="Connection Timeout (503)",
        ),
    ),
    (
        2500,
        FallbackStep(
            NodeId.GATEWAY,
            NodeId.VSDC,
            PacketStatus.FAILED,
            payload={"step": "API Timeout / Disconnect", "status": 503, "message": "Service Unavailable"},
        ),
    ),
    (
        5000,
        FallbackStep(
            NodeId.VSDC,
            NodeId.LOCAL_CACHE,
            PacketStatus.PROCESSING,
            payload={"step": "Connection Lost (>2s latency)", "action": "CACHE_TRANSACTION", "reason": "OFFLINE"},
        ),
    ),
    (
        7500,
        FallbackStep(
            NodeId.POS,
            NodeId.CUSTOMER,
            PacketStatus.PROCESSING,
            # Provisional local signature travels with the receipt.
            payload={
                "step": "12. Print Certified Receipt",
                "receipt_type": "PROVISIONAL",
                "footer": "Sync Pending",
                "signature": "LOCAL-SIG-TEMP",
                "mode": "OFFLINE",
            },
        ),
    ),
)


INITIALIZATION = RunProfile(
    kind=RunKind.INITIALIZATION,
    hops=INITIALIZATION_HOPS,
    base_interval_ms=2000,
    latency_divisor=0,
    payload_extra={"type": "SECURITY_HANDSHAKE"},
    terminal_status=TerminalStatus.INITIALIZED,
)

TRANSACTION = RunProfile(
    kind=RunKind.TRANSACTION,
    hops=TRANSACTION_HOPS,
    base_interval_ms=4000,
    latency_divisor=5,
    payload_extra={"data": "Sample Payload Data"},
    terminal_status=TerminalStatus.COMMITTED,
    offline_fallback=OfflineFallbackPolicy(
        trigger_edge=(NodeId.VSDC, NodeId.GATEWAY),
        script=OFFLINE_FALLBACK_SCRIPT,
        terminal_status=TerminalStatus.QUEUED_OFFLINE,
    ),
)

RUN_PROFILES: dict[RunKind, RunProfile] = {
    RunKind.INITIALIZATION: INITIALIZATION,
    RunKind.TRANSACTION: TRANSACTION,
}

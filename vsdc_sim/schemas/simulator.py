from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from vsdc_sim.core.simulator.topology import NodeId, PacketStatus, RunKind, TerminalStatus


# -----------------------------
# Observer feed events
# -----------------------------


class SystemStateEvent(BaseModel):
    event_id: str
    ts: datetime
    type: Literal["system_state"] = "system_state"

    offline: bool
    latency_ms: int = Field(alias="latencyMs", ge=0)

    model_config = ConfigDict(extra="forbid", populate_by_name=True, serialize_by_alias=True)


class PacketEvent(BaseModel):
    event_id: str
    ts: datetime
    type: Literal["packet"] = "packet"

    tx_id: str = Field(alias="txId")
    source: NodeId
    target: NodeId
    status: PacketStatus
    timestamp_ms: int = Field(alias="timestampMs")
    payload: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    model_config = ConfigDict(extra="forbid", populate_by_name=True, serialize_by_alias=True)


class TransactionCompleteEvent(BaseModel):
    event_id: str
    ts: datetime
    type: Literal["transaction_complete"] = "transaction_complete"

    tx_id: str = Field(alias="txId")
    status: TerminalStatus

    model_config = ConfigDict(extra="forbid", populate_by_name=True, serialize_by_alias=True)


# -----------------------------
# Operator commands
# -----------------------------


class SystemStateResponse(BaseModel):
    offline: bool
    latency_ms: int = Field(alias="latencyMs")

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


class SetOfflineRequest(BaseModel):
    offline: bool

    model_config = ConfigDict(extra="forbid")


class SetLatencyRequest(BaseModel):
    latency_ms: int = Field(alias="latencyMs", ge=0)

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class CommandAcceptedResponse(BaseModel):
    accepted: bool = True


class RunTriggeredResponse(BaseModel):
    tx_id: str = Field(alias="txId")
    kind: RunKind

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


class ActiveRunItem(BaseModel):
    tx_id: str = Field(alias="txId")
    kind: RunKind
    cursor: int
    started_at: datetime = Field(alias="startedAt")
    diverged: bool

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)


class ActiveRunsResponse(BaseModel):
    items: List[ActiveRunItem]

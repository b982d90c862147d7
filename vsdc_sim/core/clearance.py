from __future__ import annotations

import asyncio
import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Union

from vsdc_sim.core.simulator.state import SystemStateStore
from vsdc_sim.core.tax import TaxBreakdown, compute_taxes
from vsdc_sim.schemas.clearance import ClearanceRequest
from vsdc_sim.utils.metrics import CLEARANCE_REQUESTS_TOTAL
from vsdc_sim.utils.observability import log_duration

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "GRA API is currently unreachable."

RECORD_NUMBER_UPPER = 10000


@dataclass(frozen=True)
class Cleared:
    distributor_tin: Optional[str]
    invoice_num: str
    sdc_id: str
    record_num: int
    internal_data: str
    signature: str
    issued_at: datetime
    verify_url: str
    taxes: TaxBreakdown
    status: str = "CLEARED"

    def to_response(self) -> dict:
        issued = self.issued_at.isoformat()
        return {
            "distributor_tin": self.distributor_tin,
            "num": self.invoice_num,
            "ysdcid": self.sdc_id,
            "ysdcrecnum": self.record_num,
            "ysdcintdata": self.internal_data,
            "ysdcregsig": self.signature,
            "ysdcmrctim": issued,
            "ysdctime": issued,
            "qr_code": self.verify_url,
            "status": self.status,
            "computed_taxes": self.taxes.as_strings(),
        }


@dataclass(frozen=True)
class Unavailable:
    message: str = UNAVAILABLE_MESSAGE
    http_status: int = 503

    def to_response(self) -> dict:
        return {"error": self.message}


ClearanceResult = Union[Cleared, Unavailable]


class ClearanceResponder:
    """Synthetic VSDC clearance endpoint.

    Applies the simulated latency (read when the call starts), then checks the
    live offline flag. Nothing is stored; each call only reads SystemState.
    """

    def __init__(
        self,
        *,
        state: SystemStateStore,
        verify_url_base: str = "https://gra.gov.gh/verify/",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        utc_now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._state = state
        self._verify_url_base = verify_url_base
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._utc_now = utc_now

    async def clear(self, request: ClearanceRequest) -> ClearanceResult:
        latency_ms = self._state.latency_ms

        with log_duration(logger, "clearance.clear", latency_ms=latency_ms):
            if latency_ms > 0:
                await self._sleep(latency_ms / 1000.0)

            if self._state.offline:
                CLEARANCE_REQUESTS_TOTAL.labels(result="unavailable").inc()
                logger.info("clearance.unavailable uuid=%s latency_ms=%d", request.uuid, latency_ms)
                return Unavailable()

            result = self._synthesize(request)

        CLEARANCE_REQUESTS_TOTAL.labels(result="cleared").inc()
        logger.info(
            "clearance.cleared uuid=%s num=%s total=%s", request.uuid, result.invoice_num, request.total
        )
        return result

    def _synthesize(self, request: ClearanceRequest) -> Cleared:
        now = self._utc_now()
        return Cleared(
            distributor_tin=request.company_tin,
            invoice_num=f"INV-{int(now.timestamp() * 1000)}",
            sdc_id=f"SDC-{uuid.uuid4().hex[:8]}",
            record_num=self._rng.randrange(RECORD_NUMBER_UPPER),
            internal_data=f"INT-{uuid.uuid4()}",
            signature=f"SIG-{uuid.uuid4()}",
            issued_at=now,
            verify_url=f"{self._verify_url_base}{uuid.uuid4()}",
            taxes=compute_taxes(request.total),
        )

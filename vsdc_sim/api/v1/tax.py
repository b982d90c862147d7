from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Query

from vsdc_sim.core.tax import compare_tax_regimes, format_money
from vsdc_sim.schemas.tax import FlatRegimeOut, LegacyRegimeOut, TaxComparisonResponse


router = APIRouter(prefix="/tax")


def _fmt(v: Optional[Decimal]) -> Optional[str]:
    return None if v is None else format_money(v)


@router.get("/comparison", response_model=TaxComparisonResponse, summary="Cascading vs flat levies")
async def tax_comparison(base: Decimal = Query(Decimal("1000"))):
    cmp = compare_tax_regimes(base)
    return TaxComparisonResponse(
        base=format_money(cmp.base),
        legacy=LegacyRegimeOut(
            nhil=format_money(cmp.legacy.nhil),
            getfund=format_money(cmp.legacy.getfund),
            subtotal=format_money(cmp.legacy.subtotal),
            vat=format_money(cmp.legacy.vat),
            total=format_money(cmp.legacy.total),
            effective_rate=_fmt(cmp.legacy.effective_rate),
        ),
        flat=FlatRegimeOut(
            nhil=format_money(cmp.flat.nhil),
            getfund=format_money(cmp.flat.getfund),
            vat=format_money(cmp.flat.vat),
            total=format_money(cmp.flat.total),
            effective_rate=_fmt(cmp.flat.effective_rate),
        ),
    )

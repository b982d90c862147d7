from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class LegacyRegimeOut(BaseModel):
    nhil: str
    getfund: str
    subtotal: str
    vat: str
    total: str
    effective_rate: Optional[str] = None


class FlatRegimeOut(BaseModel):
    nhil: str
    getfund: str
    vat: str
    total: str
    effective_rate: Optional[str] = None


class TaxComparisonResponse(BaseModel):
    base: str
    legacy: LegacyRegimeOut
    flat: FlatRegimeOut

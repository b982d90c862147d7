from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class ClearanceItem(BaseModel):
    name: Optional[str] = None
    qty: Optional[Decimal] = None
    price: Optional[Decimal] = None

    model_config = ConfigDict(extra="allow")


class ClearanceRequest(BaseModel):
    """Invoice submitted by a POS for clearance.

    Unknown fields (flag, tax_rate, ...) are accepted and ignored.
    """

    uuid: Optional[str] = None
    company_tin: Optional[str] = None
    items: List[ClearanceItem] = Field(default_factory=list)
    total: Decimal = Field(allow_inf_nan=False)

    model_config = ConfigDict(extra="allow")


class ComputedTaxes(BaseModel):
    # 2-decimal strings, e.g. "750.00".
    base: str
    vat: str
    nhil: str
    getfund: str
    total_tax: str


class ClearanceResponse(BaseModel):
    distributor_tin: Optional[str] = None
    num: str
    ysdcid: str
    ysdcrecnum: int
    ysdcintdata: str
    ysdcregsig: str
    ysdcmrctim: str
    ysdctime: str
    qr_code: str
    status: str = "CLEARED"
    computed_taxes: ComputedTaxes


class ClearanceUnavailableResponse(BaseModel):
    error: str

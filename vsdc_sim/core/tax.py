"""Levy computation for cleared invoices (Act 1151 flat regime) and the
legacy cascading regime used by the comparison display.

Amounts are Decimal internally and rounded half-up to 2 places on output.
Negative totals (refunds) flow through the same formulas.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext, localcontext
from typing import Optional, Union

from vsdc_sim.utils.exceptions import BadRequestException

# Flat effective rate embedded in a tax-inclusive total.
EFFECTIVE_RATE = Decimal("0.20")

VAT_RATE = Decimal("0.15")
NHIL_RATE = Decimal("0.025")
GETFUND_RATE = Decimal("0.025")

MONEY_QUANT = Decimal("0.01")

# Digits kept past the integer part: 2 for cents plus headroom for the divisions.
_GUARD_DIGITS = 12

AmountLike = Union[Decimal, int, float, str]


@dataclass(frozen=True)
class TaxBreakdown:
    base: Decimal
    vat: Decimal
    nhil: Decimal
    getfund: Decimal
    total_tax: Decimal

    def as_strings(self) -> dict[str, str]:
        return {
            "base": format_money(self.base),
            "vat": format_money(self.vat),
            "nhil": format_money(self.nhil),
            "getfund": format_money(self.getfund),
            "total_tax": format_money(self.total_tax),
        }


@dataclass(frozen=True)
class LegacyRegime:
    nhil: Decimal
    getfund: Decimal
    subtotal: Decimal
    vat: Decimal
    total: Decimal
    effective_rate: Optional[Decimal]


@dataclass(frozen=True)
class FlatRegime:
    nhil: Decimal
    getfund: Decimal
    vat: Decimal
    total: Decimal
    effective_rate: Optional[Decimal]


@dataclass(frozen=True)
class TaxRegimeComparison:
    base: Decimal
    legacy: LegacyRegime
    flat: FlatRegime


def to_decimal(value: AmountLike) -> Decimal:
    """Coerce an amount to a finite Decimal.

    Floats go through `str()` so 0.1 stays 0.1 rather than its binary expansion.
    """
    if isinstance(value, bool):
        raise BadRequestException("Invalid amount", details={"value": value})
    try:
        if isinstance(value, Decimal):
            dec = value
        elif isinstance(value, float):
            dec = Decimal(str(value))
        else:
            dec = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise BadRequestException("Invalid amount", details={"value": str(value)})

    if not dec.is_finite():
        raise BadRequestException("Amount must be finite", details={"value": str(value)})
    return dec


def _money_context(value: Decimal):
    """Decimal context wide enough to carry `value` to the cent.

    The default 28-digit context cannot quantize totals from about 1e26 up.
    """
    ctx = getcontext().copy()
    digits = value.adjusted() + _GUARD_DIGITS
    ctx.prec = max(ctx.prec, digits)
    ctx.Emax = max(ctx.Emax, digits)
    return localcontext(ctx)


def round_money(value: Decimal) -> Decimal:
    with _money_context(value):
        return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    return format(round_money(value), "f")


def compute_taxes(total: AmountLike) -> TaxBreakdown:
    """Split a tax-inclusive total into its base and the three levies.

    `total_tax` is the sum of the rounded levies so a printed receipt adds up.
    """
    total_dec = to_decimal(total)
    with _money_context(total_dec):
        base = total_dec / (Decimal(1) + EFFECTIVE_RATE)

        vat = round_money(base * VAT_RATE)
        nhil = round_money(base * NHIL_RATE)
        getfund = round_money(base * GETFUND_RATE)

        return TaxBreakdown(
            base=round_money(base),
            vat=vat,
            nhil=nhil,
            getfund=getfund,
            total_tax=vat + nhil + getfund,
        )


def _effective_rate(total: Decimal, base: Decimal) -> Optional[Decimal]:
    if base == 0:
        return None
    return round_money((total - base) / base * 100)


def compare_tax_regimes(base: AmountLike) -> TaxRegimeComparison:
    """Compare the pre-2026 cascading levies (Act 870) with the flat regime.

    Cascading: NHIL and GETFund apply to the base, VAT applies to base + levies.
    Flat: all three apply to the base.
    """
    base_dec = to_decimal(base)
    with _money_context(base_dec):
        legacy_nhil = base_dec * NHIL_RATE
        legacy_getfund = base_dec * GETFUND_RATE
        legacy_subtotal = base_dec + legacy_nhil + legacy_getfund
        legacy_vat = legacy_subtotal * VAT_RATE
        legacy_total = legacy_subtotal + legacy_vat

        flat_nhil = base_dec * NHIL_RATE
        flat_getfund = base_dec * GETFUND_RATE
        flat_vat = base_dec * VAT_RATE
        flat_total = base_dec + flat_nhil + flat_getfund + flat_vat

        return TaxRegimeComparison(
            base=round_money(base_dec),
            legacy=LegacyRegime(
                nhil=round_money(legacy_nhil),
                getfund=round_money(legacy_getfund),
                subtotal=round_money(legacy_subtotal),
                vat=round_money(legacy_vat),
                total=round_money(legacy_total),
                effective_rate=_effective_rate(legacy_total, base_dec),
            ),
            flat=FlatRegime(
                nhil=round_money(flat_nhil),
                getfund=round_money(flat_getfund),
                vat=round_money(flat_vat),
                total=round_money(flat_total),
                effective_rate=_effective_rate(flat_total, base_dec),
            ),
        )

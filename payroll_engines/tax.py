"""
PAYE Tax Engine - Nigerian Pay-As-You-Earn income tax.

Pure functions with no I/O.  The statutory bands are module-level data.

Method (tax-free-threshold first):
    1. Annualize the monthly gross (x12).
    2. Subtract the annual tax-free threshold (NGN 300,000).
    3. Band the remaining taxable income progressively:

       ==================  =====
       Taxable slice       Rate
       ==================  =====
       first   300,000      7%
       next    500,000     11%
       next    500,000     15%
       next  1,600,000     19%
       remainder           21%
       ==================  =====

    4. Divide the annual tax by 12.

Every band is taxed at its own rate no matter how high income climbs, so the
function is continuous at each boundary and non-decreasing in gross pay.
Rounding to kobo happens once, on the monthly result.

Usage:
    from decimal import Decimal
    from payroll_engines.tax import calculate_paye

    calculate_paye(Decimal("182000"))  # Decimal("21830.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from payroll_kernel.domain.values import ZERO, quantize_money, to_decimal
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

MONTHS_PER_YEAR = Decimal("12")
TAX_FREE_THRESHOLD = Decimal("300000")

# (band width, rate); None width = unbounded top band
PAYE_BANDS: tuple[tuple[Decimal | None, Decimal], ...] = (
    (Decimal("300000"), Decimal("0.07")),
    (Decimal("500000"), Decimal("0.11")),
    (Decimal("500000"), Decimal("0.15")),
    (Decimal("1600000"), Decimal("0.19")),
    (None, Decimal("0.21")),
)


@dataclass(frozen=True)
class TaxBandLine:
    """Tax attributable to one band."""

    lower: Decimal
    upper: Decimal | None
    rate: Decimal
    taxable_amount: Decimal
    tax: Decimal


def taxable_income(annual_gross: Decimal) -> Decimal:
    """Annual income above the tax-free threshold (never negative)."""
    return max(ZERO, to_decimal(annual_gross) - TAX_FREE_THRESHOLD)


def paye_band_breakdown(annual_gross: Decimal) -> tuple[TaxBandLine, ...]:
    """
    Per-band split of annual PAYE.

    Postconditions:
        - Only bands with a positive taxable slice are returned.
        - ``sum(line.tax)`` equals ``calculate_annual_paye(annual_gross)``.
    """
    remaining = taxable_income(annual_gross)
    lower = ZERO
    lines: list[TaxBandLine] = []

    for width, rate in PAYE_BANDS:
        if remaining <= 0:
            break
        slice_amount = remaining if width is None else min(remaining, width)
        upper = None if width is None else lower + width
        lines.append(
            TaxBandLine(
                lower=lower,
                upper=upper,
                rate=rate,
                taxable_amount=slice_amount,
                tax=slice_amount * rate,
            )
        )
        remaining -= slice_amount
        if width is not None:
            lower += width

    return tuple(lines)


def calculate_annual_paye(annual_gross: Decimal) -> Decimal:
    """Unrounded annual PAYE for an annual gross income."""
    total = ZERO
    for line in paye_band_breakdown(annual_gross):
        total += line.tax
    return total


def calculate_paye(gross_monthly_pay: Decimal) -> Decimal:
    """
    Monthly PAYE for a monthly gross pay.

    Preconditions:
        - ``gross_monthly_pay`` is ``Decimal`` (ints/strings are coerced).
    Postconditions:
        - Returns ``Decimal`` quantized to 0.01.
        - Returns ``Decimal("0.00")`` whenever ``gross x 12 <= 300,000``
          (including zero or negative gross).
    """
    gross = to_decimal(gross_monthly_pay)
    if gross <= 0:
        return quantize_money(ZERO)

    annual_tax = calculate_annual_paye(gross * MONTHS_PER_YEAR)
    monthly_tax = quantize_money(annual_tax / MONTHS_PER_YEAR)

    logger.debug(
        "paye_calculated",
        extra={
            "gross_monthly_pay": str(gross),
            "annual_tax": str(annual_tax),
            "monthly_tax": str(monthly_tax),
        },
    )
    return monthly_tax

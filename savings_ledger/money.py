"""
Exact money handling.

Amounts are persisted as integers counting the smallest currency unit
(for IDR that is the rupiah itself, for EUR the cent). They travel through
the rest of the system as Decimal. Rounding only happens in
format_amount(), i.e. at the display boundary.
"""

from decimal import ROUND_HALF_UP, Decimal


# Largest value a signed 64-bit BIGINT column holds
MAX_MINOR_UNITS = 2**63 - 1


class AmountPrecisionError(ValueError):
    """Amount is finer than the smallest currency unit."""
    pass


def to_minor_units(amount: Decimal, minor_digits: int) -> int:
    """
    Convert a Decimal amount to an integer count of minor units.

    Raises AmountPrecisionError instead of rounding when the amount has
    more fractional digits than the currency allows.
    """
    scaled = Decimal(amount).scaleb(minor_digits)
    if scaled != scaled.to_integral_value():
        raise AmountPrecisionError(
            f"Amount {amount} has more than {minor_digits} decimal places"
        )
    return int(scaled)


def from_minor_units(units: int, minor_digits: int) -> Decimal:
    """Convert an integer count of minor units back to a Decimal amount."""
    if minor_digits == 0:
        return Decimal(units)
    return Decimal(units).scaleb(-minor_digits)


def has_valid_precision(amount: Decimal, minor_digits: int) -> bool:
    try:
        to_minor_units(amount, minor_digits)
    except AmountPrecisionError:
        return False
    return True


def format_amount(amount: Decimal, currency_code: str, minor_digits: int) -> str:
    """
    Format an amount for display, e.g. "IDR 1,250,000" or "EUR 12.50".

    Half-up rounding to the currency's minor unit.
    """
    quantum = Decimal(1).scaleb(-minor_digits)
    rounded = Decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)
    sign = "-" if rounded < 0 else ""
    return f"{sign}{currency_code} {abs(rounded):,.{minor_digits}f}"

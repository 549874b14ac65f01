"""Minor-unit money arithmetic and rate rounding."""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
TENTH = Decimal("0.1")


def minor_to_major(amount_minor: int) -> Decimal:
    """Convert minor units (pence, cents) to a 2dp major-unit Decimal."""
    return (Decimal(amount_minor) / 100).quantize(CENT, rounding=ROUND_HALF_UP)


def major_float(amount_minor: int) -> float:
    return float(minor_to_major(amount_minor))


def percentage(numerator: int, denominator: int) -> float | None:
    """Percentage rounded to one decimal place, or None when the denominator is zero."""
    if denominator <= 0:
        return None
    value = Decimal(numerator) * 100 / Decimal(denominator)
    return float(value.quantize(TENTH, rounding=ROUND_HALF_UP))


def complement(rate: float | None) -> float | None:
    if rate is None:
        return None
    value = Decimal("100") - Decimal(str(rate))
    return float(value.quantize(TENTH, rounding=ROUND_HALF_UP))


def scaled_major(amount_minor: int, factor: float) -> float:
    """Major-unit amount after applying a multiplicative factor, rounded to 2dp."""
    value = Decimal(amount_minor) * Decimal(str(factor)) / 100
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))

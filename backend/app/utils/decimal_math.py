from collections.abc import Iterable
from decimal import Decimal, ROUND_HALF_UP


MONEY_QUANT = Decimal("0.01")
PCT_QUANT = Decimal("0.000001")


def money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def pct(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(PCT_QUANT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Decimal | int | float | str]) -> Decimal:
    total = Decimal("0")
    for value in values:
        total += Decimal(str(value))
    return money(total)


def ratio(numerator: Decimal | int | float | str, denominator: Decimal | int | float | str) -> Decimal | None:
    """Quotient at percentage precision, or None for a zero denominator."""
    denominator = Decimal(str(denominator))
    if denominator == 0:
        return None
    return pct(Decimal(str(numerator)) / denominator)

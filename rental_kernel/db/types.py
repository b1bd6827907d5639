"""
Money helpers shared by the calculators and the payment service.

Amounts are ``Decimal`` end to end; a float never reaches a calculation.
Every split rounds through ``round_money`` so owner, manager and broker
shares are computed the same way everywhere.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Raises:
        TypeError: ``value`` is a float.
        ValueError: ``value`` does not parse as a number.
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


def round_money(value: Decimal, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Half-up rounding to ``decimal_places`` (0 rounds to whole units)."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=ROUND_HALF_UP)

"""
money.py — Fixed-point money helpers.

All amounts inside the engine are plain ``int`` counts of minor units (cents).
Major-unit values (``Decimal`` / ``str``) only appear at the boundaries: request
parsing, response formatting and caller-supplied exact split amounts.

Rules:
  - Addition and subtraction happen on ints and never round.
  - Multiplication and division go through the helpers below, which round
    explicitly and always return ints.
  - Binary floats are accepted at the boundary only by way of ``str(value)``,
    so 0.1 becomes Decimal("0.1"), not 0.1000000000000000055...
"""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation

from groupledger.app.errors import AppError, ErrorCode


CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value, field: str | None = None) -> Decimal:
    """Parses int / str / Decimal / float into a Decimal without float drift."""
    if isinstance(value, bool):
        raise AppError(ErrorCode.INVALID_AMOUNT, f"{value!r} is not a number.", 400, field=field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise AppError(
                ErrorCode.INVALID_AMOUNT,
                f"{value!r} is not a valid amount.",
                400,
                field=field,
            )
    if not result.is_finite():
        raise AppError(ErrorCode.INVALID_AMOUNT, f"{value!r} is not a finite amount.", 400, field=field)
    return result


def to_cents(value, field: str | None = None) -> int:
    """
    Converts a major-unit amount to integer cents, rounding half-up.

    Decimal("12.345") -> 1235, "0.1" -> 10, 3 -> 300.
    """
    amount = to_decimal(value, field=field)
    return int((amount * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Converts integer cents to a two-place Decimal: 1050 -> Decimal("10.50")."""
    return (Decimal(cents) / HUNDRED).quantize(CENT)


def format_cents(cents: int) -> str:
    """Formats cents as the decimal string used in API responses."""
    return str(from_cents(cents))


def format_cents_map(amounts: dict) -> dict:
    """Formats every value of a {member_id: cents} mapping."""
    return {key: format_cents(value) for key, value in amounts.items()}


def ceil_div(numerator: int, denominator: int) -> int:
    """Integer ceiling division for positive denominators."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return -(-numerator // denominator)


def mul_ceil(cents: int, numerator, denominator) -> int:
    """
    ceil(cents * numerator / denominator) using exact Decimal arithmetic.

    Used by the percentage and shares policies, whose factors may carry
    decimals (e.g. 33.33 percent or 1.5 shares).
    """
    result = Decimal(cents) * to_decimal(numerator) / to_decimal(denominator)
    return int(result.to_integral_value(rounding=ROUND_CEILING))


def mul_round(cents: int, factor) -> int:
    """cents * factor, rounded half-up to whole cents."""
    result = Decimal(cents) * to_decimal(factor)
    return int(result.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def sum_cents(amounts) -> int:
    """Sums an iterable of cents; an empty iterable sums to 0."""
    return sum(amounts, 0)

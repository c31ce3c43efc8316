"""
schemas/currency_schema.py — Marshmallow schema for the conversion endpoint.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, post_load, validate

from groupledger.app.errors import ErrorCode
from groupledger.app.money import to_cents


def _validate_monetary_amount(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_currency_code(value: str) -> None:
    if len(value) != 3 or not value.isalpha():
        raise ValidationError("Currency must be a three-letter ISO 4217 code.")


class ConvertCurrencySchema(Schema):
    """
    POST /currency/convert

    rate is optional: when absent the host's rate cache is consulted.
    """

    amount = fields.Decimal(required=True, validate=_validate_monetary_amount)
    fromCurrency = fields.Str(required=True, validate=_validate_currency_code)
    toCurrency = fields.Str(required=True, validate=_validate_currency_code)
    rate = fields.Decimal(
        load_default=None,
        validate=validate.Range(min=Decimal("0"), min_inclusive=False,
                                error=ErrorCode.INVALID_EXCHANGE_RATE),
    )

    @post_load
    def convert_amounts(self, data: dict, **kwargs) -> dict:
        data["amount"] = to_cents(data["amount"])
        data["fromCurrency"] = data["fromCurrency"].upper()
        data["toCurrency"] = data["toCurrency"].upper()
        return data

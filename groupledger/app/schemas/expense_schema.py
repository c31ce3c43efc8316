"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, enum values, decimal precision
      - DUPLICATE_PARTICIPANT (400) — request shape rule
      - splitDetails required for percentage / shares / exact
      - Non-empty-after-trim enforcement for description
      - Conversion of major-unit amounts to integer cents (post_load)
  - services/split_calculator.py:
      - INVALID_SPLIT (422) — membership, percentages totalling 100, positive shares
  - services/expense_service.py:
      - at least one payer, PAYER_SUM_MISMATCH warning

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from groupledger.app.errors import ErrorCode
from groupledger.app.money import to_cents
from groupledger.app.services.expense_service import CATEGORIES, DEFAULT_CATEGORY
from groupledger.app.services.split_calculator import SplitMethod


# ── Shared validators ─────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    """
    Strictly positive, at most 2 decimal places.

    More than 2 places is REJECTED with INVALID_AMOUNT_PRECISION, never rounded.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # Decimal("10.123").as_tuple().exponent == -3  → 3 dp → REJECT
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_currency_code(value: str) -> None:
    if len(value) != 3 or not value.isalpha():
        raise ValidationError("Currency must be a three-letter ISO 4217 code.")


# ── Sub-schemas ────────────────────────────────────────────────────────────

class ExchangeRateSchema(Schema):
    """Informational record of the rate used to convert a foreign receipt."""

    fromCurrency = fields.Str(required=True, validate=_validate_currency_code)
    toCurrency = fields.Str(required=True, validate=_validate_currency_code)
    rate = fields.Decimal(
        required=True,
        validate=validate.Range(min=Decimal("0"), min_inclusive=False,
                                error=ErrorCode.INVALID_EXCHANGE_RATE),
    )
    source = fields.Str(load_default="custom", validate=validate.OneOf(["custom", "live"]))
    date = fields.Str(load_default=None, allow_none=True)


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    payers is {member_id: amount} in major units; participants is the ordered
    list of member ids sharing the cost. splitDetails depends on splitMethod:

      equal       ignored
      percentage  {member_id: pct}       (must total 100)
      shares      {member_id: shares}
      exact       {member_id: amount}    (not auto-balanced)

    post_load converts amount and payer amounts to integer cents.
    """

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    category = fields.Str(
        load_default=DEFAULT_CATEGORY,
        validate=validate.OneOf(CATEGORIES, error=ErrorCode.INVALID_CATEGORY),
    )

    currency = fields.Str(load_default=None, validate=_validate_currency_code)

    payers = fields.Dict(
        keys=fields.Str(),
        values=fields.Decimal(validate=_validate_monetary_amount),
        required=True,
        validate=validate.Length(min=1, error="At least one payer is required."),
    )

    participants = fields.List(
        fields.Str(validate=validate.Length(min=1)),
        required=True,
        validate=validate.Length(min=1, error="At least one participant is required."),
    )

    splitMethod = fields.Enum(
        SplitMethod,
        load_default=SplitMethod.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_METHOD},
    )

    splitDetails = fields.Dict(keys=fields.Str(), values=fields.Raw(), load_default=None)

    date = fields.Date(load_default=None)
    location = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=255))
    exchangeRate = fields.Nested(ExchangeRateSchema, load_default=None, allow_none=True)

    @validates_schema
    def validate_split_shape(self, data: dict, **kwargs) -> None:
        """
        Request-shape checks only; arithmetic rules live in split_calculator.

        1. DUPLICATE_PARTICIPANT (400): the same id listed twice.
        2. splitDetails is required unless splitMethod is 'equal'.
        """
        participants = data.get("participants")
        if participants is not None and len(participants) != len(set(participants)):
            raise ValidationError({"participants": [ErrorCode.DUPLICATE_PARTICIPANT]})

        method = data.get("splitMethod")
        if method is not None and method != SplitMethod.EQUAL and not data.get("splitDetails"):
            raise ValidationError({
                "splitDetails": [f"splitDetails is required when splitMethod is '{method.value}'."],
            })

    @post_load
    def convert_amounts(self, data: dict, **kwargs) -> dict:
        return _expense_to_cents(data)


# ── Edit expense ───────────────────────────────────────────────────────────

class EditExpenseSchema(Schema):
    """
    PUT /groups/:id/expenses/:eid

    All fields optional. Any of amount, payers, participants, splitMethod or
    splitDetails re-runs the split; the rest are descriptive.
    """

    description = fields.Str(
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )
    amount = fields.Decimal(validate=_validate_monetary_amount)
    category = fields.Str(validate=validate.OneOf(CATEGORIES, error=ErrorCode.INVALID_CATEGORY))
    currency = fields.Str(validate=_validate_currency_code)
    payers = fields.Dict(
        keys=fields.Str(),
        values=fields.Decimal(validate=_validate_monetary_amount),
        validate=validate.Length(min=1, error="At least one payer is required."),
    )
    participants = fields.List(
        fields.Str(validate=validate.Length(min=1)),
        validate=validate.Length(min=1, error="At least one participant is required."),
    )
    splitMethod = fields.Enum(
        SplitMethod,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_METHOD},
    )
    splitDetails = fields.Dict(keys=fields.Str(), values=fields.Raw())
    date = fields.Date()
    location = fields.Str(allow_none=True, validate=validate.Length(max=255))
    exchangeRate = fields.Nested(ExchangeRateSchema, allow_none=True)

    @validates_schema
    def validate_split_shape(self, data: dict, **kwargs) -> None:
        participants = data.get("participants")
        if participants is not None and len(participants) != len(set(participants)):
            raise ValidationError({"participants": [ErrorCode.DUPLICATE_PARTICIPANT]})

        method = data.get("splitMethod")
        if method is not None and method != SplitMethod.EQUAL and not data.get("splitDetails"):
            raise ValidationError({
                "splitDetails": [f"splitDetails is required when splitMethod is '{method.value}'."],
            })

    @post_load
    def convert_amounts(self, data: dict, **kwargs) -> dict:
        return _expense_to_cents(data)


def _expense_to_cents(data: dict) -> dict:
    """Major units to cents; enum and date values to their JSON forms."""
    if data.get("amount") is not None:
        data["amount"] = to_cents(data["amount"])
    if data.get("payers") is not None:
        data["payers"] = {m: to_cents(v) for m, v in data["payers"].items()}
    if isinstance(data.get("splitMethod"), SplitMethod):
        data["splitMethod"] = data["splitMethod"].value
    if data.get("date") is not None:
        data["date"] = data["date"].isoformat()
    if data.get("currency"):
        data["currency"] = data["currency"].upper()
    return data

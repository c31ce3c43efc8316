"""
schemas/settlement_schema.py — Marshmallow schemas for settlement record endpoints.

Validation responsibility:
  - This file: field types, decimal precision, positive amount, from != to.
  - services/settlement_record_service.py:
      - INVALID_SETTLEMENT (422) — endpoints must be group members
      - GROUP_NOT_FOUND / RECORD_NOT_FOUND (404)

`from` is a Python keyword, so the attributes are from_id / to_id with
data_key="from" / "to". post_load returns the service's key names.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, post_load, validate, validates_schema

from groupledger.app.errors import ErrorCode
from groupledger.app.money import to_cents


# ── Shared monetary amount validator ──────────────────────────────────────
#
# Same rule as expense_schema.py; kept local so each schema file is
# self-contained.
# ──────────────────────────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


class _SettlementFieldsMixin:

    @validates_schema
    def validate_endpoints(self, data: dict, **kwargs) -> None:
        """Self-payment is a request-shape error when both ends are given."""
        from_id, to_id = data.get("from_id"), data.get("to_id")
        if from_id is not None and from_id == to_id:
            raise ValidationError({"to": ["A settlement cannot be made to yourself."]})

    @post_load
    def to_service_keys(self, data: dict, **kwargs) -> dict:
        if "from_id" in data:
            data["from"] = data.pop("from_id")
        if "to_id" in data:
            data["to"] = data.pop("to_id")
        if data.get("amount") is not None:
            data["amount"] = to_cents(data["amount"])
        if data.get("date") is not None:
            data["date"] = data["date"].isoformat()
        return data


class CreateSettlementRecordSchema(_SettlementFieldsMixin, Schema):
    """
    POST /groups/:id/settlements

    Field rules:
      from, to : required member ids; membership is checked in the service.
      amount   : required, positive, max 2 decimal places.
      method   : free text such as "cash" or "bank transfer"; default "cash".
      remarks  : optional note.
      date     : optional ISO date; defaults to today in the service.
    """

    from_id = fields.Str(required=True, data_key="from", validate=validate.Length(min=1))
    to_id = fields.Str(required=True, data_key="to", validate=validate.Length(min=1))
    amount = fields.Decimal(required=True, validate=_validate_monetary_amount)
    method = fields.Str(load_default="cash", validate=validate.Length(min=1, max=50))
    remarks = fields.Str(load_default="", validate=validate.Length(max=500))
    date = fields.Date(load_default=None)


class UpdateSettlementRecordSchema(_SettlementFieldsMixin, Schema):
    """PUT /groups/:id/settlements/:rid — every field optional."""

    from_id = fields.Str(data_key="from", validate=validate.Length(min=1))
    to_id = fields.Str(data_key="to", validate=validate.Length(min=1))
    amount = fields.Decimal(validate=_validate_monetary_amount)
    method = fields.Str(validate=validate.Length(min=1, max=50))
    remarks = fields.Str(validate=validate.Length(max=500))
    date = fields.Date()

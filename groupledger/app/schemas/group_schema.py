"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim).
  - services/group_service.py:
      - ALREADY_MEMBER / MEMBER_NOT_FOUND / MEMBER_HAS_BALANCE
      - GROUP_NOT_FOUND

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates


def _validate_non_empty_after_trim(value: str) -> None:
    """Raises ValidationError if the string is blank or contains only whitespace."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class AddMemberSchema(Schema):
    """
    POST /groups/:id/members

    Member ids are opaque strings owned by whatever identity system the host
    uses; the ledger only checks they are unique within the group.
    """

    id = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=128), _validate_non_empty_after_trim],
    )
    name = fields.Str(load_default=None, validate=validate.Length(max=100))


class CreateGroupSchema(Schema):
    """
    POST /groups

    name     : non-empty after trim, max 100 chars.
    currency : three-letter code; the route fills in DEFAULT_CURRENCY.
    members  : initial members; may be empty when the caller is identified.
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    currency = fields.Str(load_default=None)

    members = fields.List(fields.Nested(AddMemberSchema), load_default=list)

    @validates("currency")
    def validate_currency(self, value, **kwargs) -> None:
        if value is not None and (len(value) != 3 or not value.isalpha()):
            raise ValidationError("Currency must be a three-letter ISO 4217 code.")

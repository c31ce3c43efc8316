"""
tests/unit/test_validation_schemas.py — Unit tests for all marshmallow schemas.

What this file proves:
  - Every schema accepts valid input and converts amounts to integer cents
  - Every schema rejects invalid input with the correct ValidationError
  - Field-level rules (type, length, enum, decimal precision) are enforced here
  - Cross-entity rules (membership, percentages totalling 100) are NOT tested
    here; they belong in services/split_calculator.py and the services
  - Error codes raised as messages match the registered constants in errors.py

Unit test constraints:
  - No database, no Flask application context.
    Schemas inherit from marshmallow.Schema directly (not ma.Schema), which is
    why they can be instantiated without an app context (extensions.py note).
"""

from __future__ import annotations

import pytest
from marshmallow import ValidationError

from groupledger.app.errors import ErrorCode
from groupledger.app.schemas.currency_schema import ConvertCurrencySchema
from groupledger.app.schemas.expense_schema import CreateExpenseSchema, EditExpenseSchema
from groupledger.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema
from groupledger.app.schemas.settlement_schema import (
    CreateSettlementRecordSchema,
    UpdateSettlementRecordSchema,
)


# ═══════════════════════════════════════════════════════════════════════════
# CreateExpenseSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateExpenseSchema:

    def _payload(self, **overrides) -> dict:
        payload = {
            "description":  "Dinner",
            "amount":       "100.01",
            "payers":       {"A": "100.01"},
            "participants": ["A", "B"],
        }
        payload.update(overrides)
        return payload

    def _load(self, **overrides):
        return CreateExpenseSchema().load(self._payload(**overrides))

    def test_valid_payload_converts_to_cents(self):
        result = self._load()
        assert result["amount"] == 10001
        assert result["payers"] == {"A": 10001}
        assert result["splitMethod"] == "equal"
        assert result["category"] == "other"

    def test_date_and_currency_normalised(self):
        result = self._load(date="2026-04-01", currency="eur")
        assert result["date"] == "2026-04-01"
        assert result["currency"] == "EUR"

    def test_amount_three_decimal_places_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(amount="10.123")
        assert exc_info.value.messages["amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    def test_amount_zero_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(amount="0")
        assert "amount" in exc_info.value.messages

    def test_missing_participants_rejected(self):
        payload = self._payload()
        del payload["participants"]
        with pytest.raises(ValidationError) as exc_info:
            CreateExpenseSchema().load(payload)
        assert "participants" in exc_info.value.messages

    def test_duplicate_participants_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(participants=["A", "A"])
        assert exc_info.value.messages["participants"] == [ErrorCode.DUPLICATE_PARTICIPANT]

    def test_unknown_split_method_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(splitMethod="byweight")
        assert exc_info.value.messages["splitMethod"] == [ErrorCode.INVALID_SPLIT_METHOD]

    def test_percentage_requires_split_details(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(splitMethod="percentage")
        assert "splitDetails" in exc_info.value.messages

    def test_percentage_with_details_accepted(self):
        result = self._load(splitMethod="percentage", splitDetails={"A": 60, "B": 40})
        assert result["splitMethod"] == "percentage"
        assert result["splitDetails"] == {"A": 60, "B": 40}

    def test_invalid_category_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(category="rent")
        assert exc_info.value.messages["category"] == [ErrorCode.INVALID_CATEGORY]

    def test_blank_description_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(description="   ")
        assert "description" in exc_info.value.messages

    def test_exchange_rate_must_be_positive(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(exchangeRate={"fromCurrency": "USD", "toCurrency": "EUR", "rate": "0"})
        assert "exchangeRate" in exc_info.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# EditExpenseSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestEditExpenseSchema:

    def test_empty_payload_accepted(self):
        assert EditExpenseSchema().load({}) == {}

    def test_partial_amount_converted(self):
        result = EditExpenseSchema().load({"amount": "12.50"})
        assert result == {"amount": 1250}

    def test_method_change_requires_details(self):
        with pytest.raises(ValidationError) as exc_info:
            EditExpenseSchema().load({"splitMethod": "shares"})
        assert "splitDetails" in exc_info.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# Settlement record schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateSettlementRecordSchema:

    def test_valid_payload_uses_service_keys(self):
        result = CreateSettlementRecordSchema().load({"from": "B", "to": "A", "amount": "30.00"})
        assert result["from"] == "B"
        assert result["to"] == "A"
        assert result["amount"] == 3000
        assert result["method"] == "cash"
        assert result["remarks"] == ""
        assert "from_id" not in result

    def test_self_payment_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateSettlementRecordSchema().load({"from": "A", "to": "A", "amount": "1.00"})
        assert "to" in exc_info.value.messages

    def test_precision_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateSettlementRecordSchema().load({"from": "A", "to": "B", "amount": "1.001"})
        assert exc_info.value.messages["amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    def test_missing_to_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateSettlementRecordSchema().load({"from": "A", "amount": "1.00"})
        assert "to" in exc_info.value.messages


class TestUpdateSettlementRecordSchema:

    def test_partial_payload(self):
        result = UpdateSettlementRecordSchema().load({"remarks": "late", "date": "2026-02-03"})
        assert result == {"remarks": "late", "date": "2026-02-03"}


# ═══════════════════════════════════════════════════════════════════════════
# Group schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateGroupSchema:

    def test_valid_payload(self):
        result = CreateGroupSchema().load({"name": "Trip", "members": [{"id": "A"}]})
        assert result["name"] == "Trip"
        assert result["members"] == [{"id": "A", "name": None}]
        assert result["currency"] is None

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateGroupSchema().load({"name": "  "})
        assert "name" in exc_info.value.messages

    def test_bad_currency_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateGroupSchema().load({"name": "Trip", "currency": "EURO"})
        assert "currency" in exc_info.value.messages


class TestAddMemberSchema:

    def test_id_required(self):
        with pytest.raises(ValidationError) as exc_info:
            AddMemberSchema().load({"name": "Bo"})
        assert "id" in exc_info.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# ConvertCurrencySchema
# ═══════════════════════════════════════════════════════════════════════════

class TestConvertCurrencySchema:

    def test_valid_payload(self):
        result = ConvertCurrencySchema().load({
            "amount": "10.00", "fromCurrency": "usd", "toCurrency": "eur", "rate": "0.92",
        })
        assert result["amount"] == 1000
        assert result["fromCurrency"] == "USD"
        assert str(result["rate"]) == "0.92"

    def test_rate_optional(self):
        result = ConvertCurrencySchema().load({
            "amount": "10.00", "fromCurrency": "USD", "toCurrency": "EUR",
        })
        assert result["rate"] is None

    def test_zero_rate_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            ConvertCurrencySchema().load({
                "amount": "10.00", "fromCurrency": "USD", "toCurrency": "EUR", "rate": "0",
            })
        assert exc_info.value.messages["rate"] == [ErrorCode.INVALID_EXCHANGE_RATE]

"""
routes/currency.py — Currency conversion route handler.

Endpoints (base url_prefix=/api/v1/currency):
  POST /currency/convert  → 200  apply a supplied (or cached) exchange rate
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from groupledger.app.extensions import get_rate_cache
from groupledger.app.money import format_cents
from groupledger.app.schemas.currency_schema import ConvertCurrencySchema
from groupledger.app.services import currency_service

currency_bp = Blueprint("currency", __name__)


@currency_bp.route("/convert", methods=["POST"])
def convert():
    """
    POST /currency/convert

    A supplied rate is used and remembered in the rate cache; without one the
    cached rate is used, or RATE_NOT_FOUND (404) is returned.
    """
    data = ConvertCurrencySchema().load(request.get_json(force=True) or {})
    rate = currency_service.resolve_rate(
        get_rate_cache(),
        data["fromCurrency"],
        data["toCurrency"],
        data.get("rate"),
    )
    converted = currency_service.convert_amount(data["amount"], rate)
    return jsonify({
        "data": {
            "fromCurrency":    data["fromCurrency"],
            "toCurrency":      data["toCurrency"],
            "amount":          format_cents(data["amount"]),
            "rate":            currency_service.format_rate(rate),
            "convertedAmount": format_cents(converted),
        },
        "warnings": [],
    }), 200

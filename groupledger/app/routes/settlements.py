"""
routes/settlements.py — Settlement record route handlers.

Layer rules:
  - Parse, validate, call ONE service, return envelope.
  - No business logic. No store access.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups/:id/settlements        → 201  record payment
  GET    /groups/:id/settlements        → 200  list, oldest first
  GET    /groups/:id/settlements/:rid   → 200  get one
  PUT    /groups/:id/settlements/:rid   → 200  update (reverse stored + apply new)
  DELETE /groups/:id/settlements/:rid   → 200  delete (reverse stored)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import get_ledger
from groupledger.app.middleware.caller_middleware import identify_caller
from groupledger.app.routes.serializers import ledger_envelope, serialize_settlement_record
from groupledger.app.schemas.settlement_schema import (
    CreateSettlementRecordSchema,
    UpdateSettlementRecordSchema,
)
from groupledger.app.services import settlement_record_service

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/<group_id>/settlements", methods=["POST"])
@identify_caller
def create_settlement(group_id: str):
    """POST /groups/:id/settlements — `from` paid `to`; balances move accordingly."""
    data = CreateSettlementRecordSchema().load(request.get_json(force=True) or {})
    result = settlement_record_service.create_settlement_record(
        get_ledger(),
        group_id,
        data,
        recorded_by=g.member_id,
    )
    return jsonify(ledger_envelope(result, {
        "settlement": serialize_settlement_record(result.payload),
    })), 201


@settlements_bp.route("/<group_id>/settlements", methods=["GET"])
def list_settlements(group_id: str):
    """GET /groups/:id/settlements"""
    records = settlement_record_service.list_settlement_records(get_ledger(), group_id)
    return jsonify({
        "data": [serialize_settlement_record(r) for r in records],
        "warnings": [],
    }), 200


@settlements_bp.route("/<group_id>/settlements/<record_id>", methods=["GET"])
def get_settlement(group_id: str, record_id: str):
    """GET /groups/:id/settlements/:rid"""
    record = settlement_record_service.get_settlement_record(get_ledger(), group_id, record_id)
    return jsonify({"data": serialize_settlement_record(record), "warnings": []}), 200


@settlements_bp.route("/<group_id>/settlements/<record_id>", methods=["PUT"])
def update_settlement(group_id: str, record_id: str):
    """PUT /groups/:id/settlements/:rid"""
    data = UpdateSettlementRecordSchema().load(request.get_json(force=True) or {})
    result = settlement_record_service.update_settlement_record(
        get_ledger(), group_id, record_id, data,
    )
    return jsonify(ledger_envelope(result, {
        "settlement": serialize_settlement_record(result.payload),
    })), 200


@settlements_bp.route("/<group_id>/settlements/<record_id>", methods=["DELETE"])
def delete_settlement(group_id: str, record_id: str):
    """DELETE /groups/:id/settlements/:rid"""
    result = settlement_record_service.delete_settlement_record(get_ledger(), group_id, record_id)
    return jsonify(ledger_envelope(result, {
        "deleted": True,
        "settlementId": record_id,
    })), 200

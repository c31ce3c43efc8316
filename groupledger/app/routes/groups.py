"""
routes/groups.py — Group and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service, return envelope.
  - No business logic. No store access.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups                        → 201  create group
  GET    /groups/:id                    → 200  group + members + balances + summary
  POST   /groups/:id/members            → 201  add member
  DELETE /groups/:id/members/:mid       → 200  remove member (zero balance only)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from groupledger.app.extensions import get_ledger
from groupledger.app.middleware.caller_middleware import identify_caller
from groupledger.app.money import format_cents_map
from groupledger.app.routes.serializers import serialize_group, serialize_group_summary
from groupledger.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema
from groupledger.app.services import group_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/", methods=["POST"])
@identify_caller
def create_group():
    """POST /groups — The caller, when identified, is added as admin."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    if not data.get("currency"):
        data["currency"] = current_app.config.get("DEFAULT_CURRENCY", "USD")
    view = group_service.create_group(get_ledger(), data, created_by=g.member_id)
    return jsonify({"data": serialize_group(view), "warnings": []}), 201


@groups_bp.route("/<group_id>", methods=["GET"])
def get_group(group_id: str):
    """GET /groups/:id"""
    view = group_service.get_group(get_ledger(), group_id)
    return jsonify({"data": serialize_group(view), "warnings": []}), 200


@groups_bp.route("/<group_id>/members", methods=["POST"])
def add_member(group_id: str):
    """POST /groups/:id/members — New member starts at a zero balance."""
    data = AddMemberSchema().load(request.get_json(force=True) or {})
    result = group_service.add_member(get_ledger(), group_id, data)
    return jsonify({
        "data": {
            **result.payload,
            "balances": format_cents_map(result.balances),
            "summary":  serialize_group_summary(result.group_summary),
        },
        "warnings": result.warnings,
    }), 201


@groups_bp.route("/<group_id>/members/<member_id>", methods=["DELETE"])
def remove_member(group_id: str, member_id: str):
    """DELETE /groups/:id/members/:mid — 409 MEMBER_HAS_BALANCE unless settled up."""
    result = group_service.remove_member(get_ledger(), group_id, member_id)
    return jsonify({
        "data": {
            **result.payload,
            "balances": format_cents_map(result.balances),
            "summary":  serialize_group_summary(result.group_summary),
        },
        "warnings": result.warnings,
    }), 200

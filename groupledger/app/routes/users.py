"""
routes/users.py — Member summary route handlers.

Endpoints (base url_prefix=/api/v1/users):
  GET /users/:mid/summary  → 200  cross-group totals (zero baseline if none)
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from groupledger.app.extensions import get_ledger
from groupledger.app.routes.serializers import serialize_user_summary
from groupledger.app.services import group_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/<member_id>/summary", methods=["GET"])
def get_user_summary(member_id: str):
    """GET /users/:mid/summary"""
    summary = group_service.get_user_summary(get_ledger(), member_id)
    return jsonify({
        "data": {"memberId": member_id, **serialize_user_summary(summary)},
        "warnings": [],
    }), 200

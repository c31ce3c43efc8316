"""
routes/expenses.py — Expense route handlers.

Layer rules:
  - Parse, validate, call ONE service, return envelope.
  - No business logic. No store access. The store commits its own writes,
    so routes never call db.session.commit().

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups/:id/expenses        → 201  record expense
  GET    /groups/:id/expenses        → 200  list expenses, newest first
  GET    /groups/:id/expenses/:eid   → 200  get expense
  PUT    /groups/:id/expenses/:eid   → 200  edit (reverse + reapply)
  DELETE /groups/:id/expenses/:eid   → 200  delete (exact reversal)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import get_ledger
from groupledger.app.middleware.caller_middleware import identify_caller
from groupledger.app.routes.serializers import ledger_envelope, serialize_expense
from groupledger.app.schemas.expense_schema import CreateExpenseSchema, EditExpenseSchema
from groupledger.app.services import expense_service

expenses_bp = Blueprint("expenses", __name__)


@expenses_bp.route("/<group_id>/expenses", methods=["POST"])
@identify_caller
def create_expense(group_id: str):
    """POST /groups/:id/expenses — split, apply to balances, store the record."""
    data = CreateExpenseSchema().load(request.get_json(force=True) or {})
    result = expense_service.record_expense(
        get_ledger(),
        group_id,
        data,
        created_by=g.member_id,
    )
    return jsonify(ledger_envelope(result, {"expense": serialize_expense(result.payload)})), 201


@expenses_bp.route("/<group_id>/expenses", methods=["GET"])
def list_expenses(group_id: str):
    """GET /groups/:id/expenses"""
    records = expense_service.list_expenses(get_ledger(), group_id)
    return jsonify({
        "data": [serialize_expense(r) for r in records],
        "warnings": [],
    }), 200


@expenses_bp.route("/<group_id>/expenses/<expense_id>", methods=["GET"])
def get_expense(group_id: str, expense_id: str):
    """GET /groups/:id/expenses/:eid"""
    record = expense_service.get_expense(get_ledger(), group_id, expense_id)
    return jsonify({"data": serialize_expense(record), "warnings": []}), 200


@expenses_bp.route("/<group_id>/expenses/<expense_id>", methods=["PUT"])
def edit_expense(group_id: str, expense_id: str):
    """
    PUT /groups/:id/expenses/:eid — partial update.
    Split-affecting fields reverse the stored split and apply the new one atomically.
    """
    data = EditExpenseSchema().load(request.get_json(force=True) or {})
    result = expense_service.edit_expense(get_ledger(), group_id, expense_id, data)
    return jsonify(ledger_envelope(result, {"expense": serialize_expense(result.payload)})), 200


@expenses_bp.route("/<group_id>/expenses/<expense_id>", methods=["DELETE"])
def delete_expense(group_id: str, expense_id: str):
    """DELETE /groups/:id/expenses/:eid — reverses the stored split exactly."""
    result = expense_service.delete_expense(get_ledger(), group_id, expense_id)
    return jsonify(ledger_envelope(result, {
        "deleted": True,
        "expenseId": expense_id,
    })), 200

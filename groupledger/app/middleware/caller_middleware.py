"""
middleware/caller_middleware.py — Attaches the calling member's id to flask.g.

The ledger carries no authentication. A host that does authenticate puts the
resolved member id in the X-Member-Id header (for example from a gateway);
this decorator copies it to flask.g.member_id so routes can pass it to
services as createdBy / recordedBy.

Strict responsibility boundary:
  - This middleware reads the header and attaches member_id to flask.g ONLY.
  - It never checks membership; that belongs in the service layer.
  - Services receive the id as a plain argument with no knowledge of HTTP.

Error codes:
  INVALID_FIELD (400) — header present but blank or longer than 128 chars
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import g, request

from groupledger.app.errors import AppError, ErrorCode

MEMBER_HEADER = "X-Member-Id"


def identify_caller(f: Callable) -> Callable:
    """
    Route decorator that sets flask.g.member_id (str or None).

    Usage:
        @expenses_bp.route("/<group_id>/expenses", methods=["POST"])
        @identify_caller
        def create_expense(group_id):
            created_by = g.member_id
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _identify_request()
        return f(*args, **kwargs)

    return decorated


def _identify_request() -> None:
    """Separated from the decorator so tests can call it inside a request context."""
    raw = request.headers.get(MEMBER_HEADER)
    if raw is None:
        g.member_id = None
        return

    member_id = raw.strip()
    if not member_id or len(member_id) > 128:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"{MEMBER_HEADER} must be a non-empty id of at most 128 characters.",
            400,
            field=MEMBER_HEADER,
        )
    g.member_id = member_id

"""
routes/serializers.py — Response shaping shared by the route modules.

Pure data-shaping: no store access, no logic. Every amount leaves the API as a
two-decimal string ("10.50"); inside the engine amounts are integer cents.
"""

from __future__ import annotations

from groupledger.app.money import format_cents, format_cents_map


def serialize_expense(record: dict) -> dict:
    return {
        **record,
        "amount":      format_cents(record["amount"]),
        "payers":      {m: {"amount": format_cents(p["amount"])} for m, p in record["payers"].items()},
        "splitResult": format_cents_map(record["splitResult"]),
    }


def serialize_settlement_record(record: dict) -> dict:
    return {**record, "amount": format_cents(record["amount"])}


def serialize_user_summary(summary: dict) -> dict:
    return {
        "totalAmountOwed":       format_cents(summary["totalAmountOwed"]),
        "totalAmountReceivable": format_cents(summary["totalAmountReceivable"]),
        "totalBalance":          format_cents(summary["totalBalance"]),
        "lastUpdated":           summary.get("lastUpdated"),
    }


def serialize_group_summary(summary: dict) -> dict:
    return {**summary, "totalExpenses": format_cents(summary["totalExpenses"])}


def serialize_plan(plan: list[dict]) -> list[dict]:
    return [{**entry, "amount": format_cents(entry["amount"])} for entry in plan]


def serialize_group(view: dict) -> dict:
    return {
        **view,
        "balances": format_cents_map(view["balances"]),
        "summary":  serialize_group_summary(view["summary"]),
    }


def ledger_envelope(result, data: dict) -> dict:
    """
    Standard envelope for a ledger write.

    `data` is the serialized payload; balances, summaries and the
    summariesCommitted flag are attached so callers see the ledger effect.
    """
    return {
        "data": {
            **data,
            "balances":           format_cents_map(result.balances),
            "memberSummaries":    {
                m: serialize_user_summary(s) for m, s in result.summaries.items()
            },
            "summariesCommitted": result.summaries_committed,
        },
        "warnings": result.warnings,
    }

"""
services/currency_service.py — Applying a supplied exchange rate.

The engine does not fetch rates. Callers supply them, either per request or
through a RateCache the host owns (app.extensions["rate_cache"]). The cache
is an explicit collaborator with a time-to-live; nothing here is module state.

Conversion multiplies integer cents by a Decimal rate and rounds half-up to
whole cents.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.money import mul_round, to_decimal

DEFAULT_RATE_TTL_SECONDS = 24 * 60 * 60

RATE_SOURCES = ("custom", "live")


def _invalid_rate(message: str) -> AppError:
    return AppError(ErrorCode.INVALID_EXCHANGE_RATE, message, 400, field="rate")


def normalize_currency(code) -> str:
    """Upper-cases a three-letter ISO 4217 code or raises INVALID_FIELD (400)."""
    if not isinstance(code, str) or len(code.strip()) != 3 or not code.strip().isalpha():
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"{code!r} is not a three-letter currency code.",
            400,
            field="currency",
        )
    return code.strip().upper()


def validate_exchange_rate(rate) -> Decimal:
    """Returns the rate as a Decimal, or raises INVALID_EXCHANGE_RATE (400)."""
    try:
        value = to_decimal(rate, field="rate")
    except AppError:
        raise _invalid_rate(f"{rate!r} is not a valid exchange rate.")
    if value <= 0:
        raise _invalid_rate("Exchange rate must be a positive number.")
    return value


def convert_amount(cents: int, rate) -> int:
    """cents * rate, rounded half-up to whole cents."""
    return mul_round(cents, validate_exchange_rate(rate))


def format_rate(rate) -> str:
    """Four decimal places, for display: Decimal("1.1") -> "1.1000"."""
    return f"{validate_exchange_rate(rate):.4f}"


def create_exchange_rate_record(
        from_currency: str,
        to_currency: str,
        rate,
        source: str = "custom",
        date: str | None = None,
) -> dict:
    """
    Builds the exchange-rate record stored alongside an expense.

    The record is informational; amounts on the expense are already in the
    group currency.
    """
    if source not in RATE_SOURCES:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"'{source}' is not a valid rate source. Must be one of: {', '.join(RATE_SOURCES)}.",
            400,
            field="source",
        )
    return {
        "fromCurrency": normalize_currency(from_currency),
        "toCurrency":   normalize_currency(to_currency),
        "rate":         str(validate_exchange_rate(rate)),
        "source":       source,
        "date":         date or datetime.now(timezone.utc).isoformat(),
    }


class RateCache:
    """
    Exchange rates keyed by (from, to), each expiring ttl_seconds after set().

    `clock` defaults to time.monotonic and is injectable for tests.
    """

    def __init__(
            self,
            ttl_seconds: int = DEFAULT_RATE_TTL_SECONDS,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], tuple[Decimal, float]] = {}
        self._lock = threading.Lock()

    def get(self, from_currency: str, to_currency: str) -> Decimal | None:
        key = (normalize_currency(from_currency), normalize_currency(to_currency))
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            rate, stored_at = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return rate

    def set(self, from_currency: str, to_currency: str, rate) -> Decimal:
        key = (normalize_currency(from_currency), normalize_currency(to_currency))
        value = validate_exchange_rate(rate)
        with self._lock:
            self._entries[key] = (value, self._clock())
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def resolve_rate(cache: RateCache | None, from_currency: str, to_currency: str, rate=None) -> Decimal:
    """
    Returns the rate to use for a conversion.

    A supplied rate wins and is remembered in the cache. Otherwise the cached
    rate is used; same-currency conversions are always 1.

    Raises:
        AppError(RATE_NOT_FOUND, 404) -- no rate supplied and none cached.
    """
    from_currency = normalize_currency(from_currency)
    to_currency = normalize_currency(to_currency)

    if rate is not None:
        if cache is not None:
            return cache.set(from_currency, to_currency, rate)
        return validate_exchange_rate(rate)

    if from_currency == to_currency:
        return Decimal("1")

    cached = cache.get(from_currency, to_currency) if cache is not None else None
    if cached is None:
        raise AppError(
            ErrorCode.RATE_NOT_FOUND,
            f"No exchange rate known for {from_currency} to {to_currency}. Supply one.",
            404,
            field="rate",
        )
    return cached

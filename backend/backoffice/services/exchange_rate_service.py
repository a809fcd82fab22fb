# Overview: Exchange rates for foreign-currency tenders, behind a short-TTL read-through cache.

"""
Exchange Rate Service

Rates are quoted per one unit of the base currency (rates["USD"] = 1.08
means 1 EUR buys 1.08 USD). They come from an external HTTP endpoint and
are cached in-process for EXCHANGE_RATE_TTL_SECONDS. Staleness within
that window is acceptable: rates only convert a tendered amount into the
settlement currency, and the converted amount is what gets recorded.

On a failed refresh a stale cached table is served (with a warning). If
nothing was ever fetched, only the base currency is known.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal

import httpx
from flask import current_app

from ..errors import ValidationError
from ..money import ZERO, quantize_money, to_decimal


@dataclass
class _CachedRates:
    base: str
    rates: dict[str, Decimal] = field(default_factory=dict)
    fetched_at: float = 0.0


_cache: dict[str, _CachedRates] = {}
_cache_lock = threading.Lock()


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()


def _fetch_rates(base: str, client: httpx.Client | None = None) -> dict[str, Decimal]:
    url = f"{current_app.config['EXCHANGE_RATE_API_URL'].rstrip('/')}/{base}"
    timeout = current_app.config.get("EXCHANGE_RATE_TIMEOUT_SECONDS", 5)

    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=timeout)
    try:
        response = client.get(url)
        response.raise_for_status()
        payload = response.json(parse_float=Decimal)
    finally:
        if owns_client:
            client.close()

    raw_rates = payload.get("rates") if isinstance(payload, dict) else None
    if not isinstance(raw_rates, dict):
        raise ValueError("exchange rate response has no rates table")

    rates = {code.upper(): to_decimal(rate, field=f"rate {code}") for code, rate in raw_rates.items()}
    rates[base] = Decimal("1")
    return rates


def get_exchange_rates(base: str | None = None, *, client: httpx.Client | None = None) -> dict[str, Decimal]:
    """Rates for `base` (default BASE_CURRENCY), served from cache while fresh."""
    base = (base or current_app.config["BASE_CURRENCY"]).upper()
    ttl = current_app.config.get("EXCHANGE_RATE_TTL_SECONDS", 3600)
    now = time.monotonic()

    with _cache_lock:
        cached = _cache.get(base)
        if cached and now - cached.fetched_at < ttl:
            return dict(cached.rates)

    try:
        rates = _fetch_rates(base, client)
    except (httpx.HTTPError, ValueError) as exc:
        if cached:
            current_app.logger.warning("Exchange rate refresh failed, serving stale rates: %s", exc)
            return dict(cached.rates)
        current_app.logger.warning("Exchange rate fetch failed, only %s available: %s", base, exc)
        return {base: Decimal("1")}

    with _cache_lock:
        _cache[base] = _CachedRates(base=base, rates=rates, fetched_at=now)
    return dict(rates)


def convert_to_base(amount: Decimal, currency: str, base: str | None = None) -> tuple[Decimal, Decimal]:
    """
    Convert a tendered amount into the base currency.

    Returns (base_amount rounded to cents, rate used).
    """
    base = (base or current_app.config["BASE_CURRENCY"]).upper()
    currency = (currency or base).upper()
    if currency == base:
        return amount, Decimal("1")

    rates = get_exchange_rates(base)
    rate = rates.get(currency)
    if rate is None or rate <= ZERO:
        raise ValidationError(
            f"No exchange rate available for {currency}",
            {"currency": currency, "base": base},
            code="UNSUPPORTED_CURRENCY",
        )
    return quantize_money(amount / rate), rate

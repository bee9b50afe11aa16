"""Stay pricing: nights, totals and deposit tiers.

Amounts are integers in minor units (cents). Nightly prices coming from the
browser are major units and go through ``to_minor_units`` first.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

SECONDS_PER_DAY = 86400

FULL_PAYMENT = 100
DEPOSIT_TIERS = {
    30: "30% Deposit - Pay remaining 70% 30 days before arrival",
    50: "50% Deposit - Pay remaining 50% 14 days before arrival",
    70: "70% Deposit - Pay remaining 30% on arrival",
    FULL_PAYMENT: "Paid in full",
}

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


@dataclass(frozen=True)
class StayQuote:
    nights: int
    price_per_night: int
    total: int
    deposit_percentage: int
    deposit: int
    remaining: int
    currency: str = "USD"


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def count_nights(check_in: date | datetime | None, check_out: date | datetime | None) -> int:
    """ceil((check_out - check_in) / 1 day); 0 while either end is missing.

    May be zero or negative for unordered dates; callers decide whether that is an error.
    """
    if check_in is None or check_out is None:
        return 0
    delta = _as_datetime(check_out) - _as_datetime(check_in)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def to_minor_units(amount) -> int:
    try:
        value = Decimal(str(amount))
        if not value.is_finite():
            raise ValueError("amount must be finite")
        return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"invalid amount: {amount!r}") from exc


def deposit_for(total: int, percentage: int) -> int:
    if percentage not in DEPOSIT_TIERS:
        raise ValueError(f"unsupported deposit percentage: {percentage}")
    if percentage == FULL_PAYMENT:
        return total
    deposit = (Decimal(total) * percentage / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(deposit)


def quote_stay(check_in, check_out, price_per_night: int, deposit_percentage: int = FULL_PAYMENT,
               currency: str = "USD") -> StayQuote:
    nights = count_nights(check_in, check_out)
    if nights < 1:
        raise ValueError("Invalid booking dates")
    if price_per_night < 0:
        raise ValueError("price per night must be >= 0")
    total = nights * price_per_night
    deposit = deposit_for(total, deposit_percentage)
    return StayQuote(
        nights=nights,
        price_per_night=price_per_night,
        total=total,
        deposit_percentage=deposit_percentage,
        deposit=deposit,
        remaining=total - deposit,
        currency=currency.upper(),
    )


def format_money(amount_minor: int, currency: str = "USD") -> str:
    symbol = CURRENCY_SYMBOLS.get((currency or "USD").upper(), "$")
    major = Decimal(amount_minor) / 100
    if major == major.to_integral_value():
        return f"{symbol}{int(major):,}"
    return f"{symbol}{major:,.2f}"

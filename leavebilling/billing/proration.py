# leavebilling/billing/proration.py
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from leavebilling.core.constants import BillingType, ChargedAt, DAYS_PER_YEAR
from leavebilling.core.timeutils import ensure_utc, utcnow

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class ProrationQuote:
    charged_at: ChargedAt
    message: str
    proration_amount: Optional[float] = None
    days_remaining: Optional[int] = None
    seat_delta: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "charged_at": self.charged_at.value,
            "message": self.message,
            "seat_delta": self.seat_delta,
        }
        # Usage-based quotes carry no amount at all, not a zero amount
        if self.proration_amount is not None:
            data["proration_amount"] = self.proration_amount
        if self.days_remaining is not None:
            data["days_remaining"] = self.days_remaining
        return data


def days_until(renews_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole days left until renewal, rounded up and never negative"""
    now = ensure_utc(now) or utcnow()
    remaining = (ensure_utc(renews_at) - now).total_seconds() / SECONDS_PER_DAY
    return max(0, math.ceil(remaining))


def calculate_proration(
    price_per_seat_per_year: float,
    seat_delta: int,
    renews_at: Optional[datetime],
    now: Optional[datetime] = None,
    billing_type: str = BillingType.QUANTITY_BASED.value,
    currency: str = "",
) -> ProrationQuote:
    """
    Price a mid-cycle seat change.

    Quantity-based (yearly) plans charge added seats immediately for the days
    left in the term; removed seats become a credit at renewal rather than a
    refund. Usage-based (monthly) plans are metered by the provider and billed
    at period end, so no amount is computed for them.
    """
    if billing_type == BillingType.USAGE_BASED.value:
        return ProrationQuote(
            charged_at=ChargedAt.END_OF_PERIOD,
            message="Seat changes will be billed at the end of the current billing period",
            seat_delta=seat_delta,
        )

    if billing_type != BillingType.QUANTITY_BASED.value:
        raise ValueError(f"Unknown billing type: {billing_type}")

    if renews_at is None:
        raise ValueError("renews_at is required to prorate a quantity-based subscription")

    days_remaining = days_until(renews_at, now)

    if seat_delta <= 0:
        return ProrationQuote(
            charged_at=ChargedAt.END_OF_PERIOD,
            message="Credit will be applied at next renewal" if seat_delta < 0 else "No seat change",
            proration_amount=0.0,
            days_remaining=days_remaining,
            seat_delta=seat_delta,
        )

    daily_rate = price_per_seat_per_year / DAYS_PER_YEAR
    proration_amount = round(daily_rate * seat_delta * days_remaining, 2)
    amount_label = f"{proration_amount:.2f} {currency}".strip()

    return ProrationQuote(
        charged_at=ChargedAt.IMMEDIATELY,
        message=(
            f"You will be charged {amount_label} for {seat_delta} "
            f"seat{'s' if seat_delta > 1 else ''} for {days_remaining} remaining days"
        ),
        proration_amount=proration_amount,
        days_remaining=days_remaining,
        seat_delta=seat_delta,
    )

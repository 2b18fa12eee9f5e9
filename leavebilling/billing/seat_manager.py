# leavebilling/billing/seat_manager.py
"""
SeatManager: the only component allowed to change a subscription's seat count.

Hybrid billing:
- usage_based (monthly): the new quantity is recorded with the provider's
  metering and billed at the end of the period.
- quantity_based (yearly): the subscription item quantity is updated and
  the prorated difference is invoiced immediately.

The provider call always happens before the local write. If the provider
call fails, the local row is left untouched and the error propagates. There
are no retries here; repeating a payment call is the caller's decision.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from leavebilling.billing.proration import ProrationQuote, calculate_proration
from leavebilling.billing.provider import BillingProvider
from leavebilling.core.constants import BillingType, ChargedAt
from leavebilling.core.exceptions import (
    DivergentStateError,
    NotFoundError,
    ProviderError,
    ProviderResponseError,
    ValidationError,
)
from leavebilling.core.timeutils import utcnow
from leavebilling.db.models.subscription import Subscription
from leavebilling.db.repositories.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)


class _LockRegistry:
    """Per-key asyncio locks, dropped once the last holder or waiter leaves"""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


# Seat changes for one subscription are serialized within the process
_subscription_locks = _LockRegistry()


@dataclass
class SeatChangeResult:
    changed: bool
    billing_type: str
    charged_at: Optional[ChargedAt]
    previous_seats: int
    current_seats: int
    message: str
    proration_amount: Optional[float] = None
    days_remaining: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "changed": self.changed,
            "billing_type": self.billing_type,
            "charged_at": self.charged_at.value if self.charged_at else None,
            "previous_seats": self.previous_seats,
            "current_seats": self.current_seats,
            "message": self.message,
        }
        if self.proration_amount is not None:
            data["proration_amount"] = self.proration_amount
        if self.days_remaining is not None:
            data["days_remaining"] = self.days_remaining
        return data


class SeatManager:
    """Applies seat increases and decreases through the billing provider"""

    def __init__(
        self,
        provider: BillingProvider,
        subscriptions: SubscriptionRepository,
        price_per_seat_per_year: float,
        currency: str = "",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.provider = provider
        self.subscriptions = subscriptions
        self.price_per_seat_per_year = price_per_seat_per_year
        self.currency = currency
        self.clock = clock

    async def add_seats(self, subscription_id: str, new_quantity: int, invoice_immediately: bool = True) -> SeatChangeResult:
        """
        Raise the seat count of a subscription to ``new_quantity`` (a total,
        not a delta).
        """
        return await self._change_seats(subscription_id, new_quantity, increase=True, invoice_immediately=invoice_immediately)

    async def remove_seats(self, subscription_id: str, new_quantity: int) -> SeatChangeResult:
        """
        Lower the seat count to ``new_quantity``. Never charges immediately;
        on quantity-based plans the reduction is credited at renewal.
        """
        return await self._change_seats(subscription_id, new_quantity, increase=False, invoice_immediately=False)

    def quote(self, subscription: Subscription, new_quantity: int) -> ProrationQuote:
        """Price a seat change without contacting the provider"""
        validate_quantity(new_quantity)
        self._check_billing_type(subscription)
        if subscription.billing_type == BillingType.QUANTITY_BASED.value and subscription.renews_at is None:
            raise ValidationError("Subscription has no renewal date; cannot prorate")
        return calculate_proration(
            price_per_seat_per_year=self.price_per_seat_per_year,
            seat_delta=new_quantity - subscription.current_seats,
            renews_at=subscription.renews_at,
            now=self.clock(),
            billing_type=subscription.billing_type,
            currency=self.currency,
        )

    async def _change_seats(
        self,
        subscription_id: str,
        new_quantity: int,
        increase: bool,
        invoice_immediately: bool,
    ) -> SeatChangeResult:
        validate_quantity(new_quantity)

        async with _subscription_locks.hold(str(subscription_id)):
            subscription = await self.subscriptions.get(subscription_id)
            if subscription is None or not subscription.is_active_like:
                raise NotFoundError(f"No active subscription found: {subscription_id}")

            current_seats = subscription.current_seats
            log_extra = {
                "organization_id": subscription.organization_id,
                "subscription_id": subscription.id,
            }

            if new_quantity == current_seats:
                logger.info("Seat change skipped, quantity unchanged", extra=log_extra)
                return SeatChangeResult(
                    changed=False,
                    billing_type=subscription.billing_type,
                    charged_at=None,
                    previous_seats=current_seats,
                    current_seats=current_seats,
                    message="No change: subscription already has this many seats",
                )

            if increase and new_quantity < current_seats:
                raise ValidationError("Use remove_seats() to decrease seat count")
            if not increase and new_quantity > current_seats:
                raise ValidationError("Use add_seats() to increase seat count")

            quote = self.quote(subscription, new_quantity)
            usage_based = subscription.billing_type == BillingType.USAGE_BASED.value
            invoice_now = increase and invoice_immediately and not usage_based

            item_id, backfilled = await self._resolve_item_id(subscription)

            logger.info(
                f"Updating seats {current_seats} -> {new_quantity} ({subscription.billing_type})",
                extra=log_extra,
            )

            # Provider first: seats are only granted once the provider accepted them
            try:
                await self.provider.update_quantity(
                    item_id,
                    new_quantity,
                    invoice_immediately=invoice_now,
                    usage_based=usage_based,
                )
            except ProviderResponseError as e:
                # A success status means the provider already bills the new quantity
                logger.warning(f"Seat change accepted with an unreadable response: {e.provider_detail}", extra=log_extra)

            await self._persist(subscription, current_seats, new_quantity, str(item_id) if backfilled else None)

            logger.info(f"Seats updated to {new_quantity}", extra=log_extra)

            if usage_based:
                return SeatChangeResult(
                    changed=True,
                    billing_type=subscription.billing_type,
                    charged_at=ChargedAt.END_OF_PERIOD,
                    previous_seats=current_seats,
                    current_seats=new_quantity,
                    message=quote.message,
                )

            return SeatChangeResult(
                changed=True,
                billing_type=subscription.billing_type,
                charged_at=ChargedAt.IMMEDIATELY if invoice_now else ChargedAt.END_OF_PERIOD,
                previous_seats=current_seats,
                current_seats=new_quantity,
                message=quote.message,
                proration_amount=quote.proration_amount,
                days_remaining=quote.days_remaining,
            )

    async def _resolve_item_id(self, subscription: Subscription):
        item_id = subscription.provider_subscription_item_id
        if item_id is not None:
            return item_id, False

        # Older rows were stored before the item id was captured
        remote = await self.provider.get_subscription(subscription.provider_subscription_id)
        if remote.subscription_item_id is None:
            raise ProviderError(
                "Subscription item not found",
                provider_detail=f"subscription {subscription.lemonsqueezy_subscription_id} has no items",
            )
        return remote.subscription_item_id, True

    async def _persist(self, subscription: Subscription, expected_seats: int, new_quantity: int, item_id: Optional[str]):
        log_extra = {
            "organization_id": subscription.organization_id,
            "subscription_id": subscription.id,
        }
        try:
            updated = await self.subscriptions.update_seats_if_unchanged(
                subscription.id, expected_seats, new_quantity, subscription_item_id=item_id
            )
        except SQLAlchemyError as e:
            logger.critical(
                f"Provider accepted {new_quantity} seats but the local write failed: {e}",
                extra=log_extra,
            )
            raise DivergentStateError(
                "Seat change was accepted by the billing provider but could not be saved",
                subscription_id=subscription.id,
                provider_quantity=new_quantity,
            ) from e

        if not updated:
            logger.critical(
                f"Provider accepted {new_quantity} seats but current_seats changed concurrently "
                f"(expected {expected_seats})",
                extra=log_extra,
            )
            raise DivergentStateError(
                "Seat count changed while the update was in flight",
                subscription_id=subscription.id,
                provider_quantity=new_quantity,
            )

    @staticmethod
    def _check_billing_type(subscription: Subscription):
        if subscription.billing_type not in (BillingType.USAGE_BASED.value, BillingType.QUANTITY_BASED.value):
            raise ValidationError(
                f"Subscription billing type '{subscription.billing_type}' does not support seat changes; "
                "create a new subscription to modify seats"
            )


def validate_quantity(new_quantity: Any):
    if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
        raise ValidationError("Invalid quantity. Must be a whole number.")
    if new_quantity < 1:
        raise ValidationError("Invalid quantity. Must be at least 1.")

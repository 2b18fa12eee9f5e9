# leavebilling/billing/handlers.py
"""
Request-level orchestration for billing operations.

Each handler resolves the caller's organization and subscription, validates
input, and delegates to SeatAccounting, SeatManager or the period guard.
Billing math and transition policy live in those components, not here.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leavebilling.billing.period_guard import BillingPeriodChangeGuard, ProductCatalog
from leavebilling.billing.provider import BillingProvider
from leavebilling.billing.reconciler import (
    SubscriptionSnapshot,
    check_quantity,
    reconcile,
)
from leavebilling.billing.seat_accounting import compute_seat_snapshot
from leavebilling.billing.seat_manager import SeatManager, validate_quantity
from leavebilling.core.constants import ADMIN_ROLES, ProductFamily
from leavebilling.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    ValidationError,
)
from leavebilling.core.timeutils import utcnow
from leavebilling.db.models.subscription import Subscription
from leavebilling.db.repositories.organization_repository import OrganizationRepository
from leavebilling.db.repositories.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)


@dataclass
class Caller:
    """Authenticated user resolved to one organization membership"""
    user_id: str
    organization_id: str
    role: str
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


class BillingRequestHandlers:
    def __init__(
        self,
        session: AsyncSession,
        settings,
        provider: Optional[BillingProvider] = None,
        catalog: Optional[ProductCatalog] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.provider = provider
        self.clock = clock
        self._catalog = catalog
        self.organizations = OrganizationRepository(session)
        self.subscriptions = SubscriptionRepository(session)

    # Collaborators

    def _require_provider(self) -> BillingProvider:
        if self.provider is None:
            raise ConfigurationError("Billing provider is not configured")
        return self.provider

    @property
    def catalog(self) -> ProductCatalog:
        if self._catalog is None:
            self._catalog = ProductCatalog.from_settings(self.settings)
        return self._catalog

    def _seat_manager(self) -> SeatManager:
        return SeatManager(
            provider=self._require_provider(),
            subscriptions=self.subscriptions,
            price_per_seat_per_year=self.settings.YEARLY_PRICE_PER_SEAT,
            currency=self.settings.CURRENCY,
            clock=self.clock,
        )

    def _period_guard(self) -> BillingPeriodChangeGuard:
        return BillingPeriodChangeGuard(
            provider=self._require_provider(),
            subscriptions=self.subscriptions,
            catalog=self.catalog,
            checkout_redirect=self.settings.YEARLY_CHECKOUT_PATH,
            clock=self.clock,
        )

    # Helpers

    @staticmethod
    def _require_admin(caller: Caller):
        if not caller.is_admin:
            raise PermissionDeniedError("Only organization owners and admins can manage billing")

    async def _load_subscription(self, organization_id: str) -> Subscription:
        subscription = await self.subscriptions.get_active_for_organization(organization_id)
        if subscription is None:
            raise NotFoundError("No active subscription found")
        return subscription

    def _correlation_id(self, operation: str, organization_id: str) -> str:
        return f"{operation}-{organization_id}-{int(self.clock().timestamp() * 1000)}"

    async def _seat_snapshot(self, organization_id: str, subscription: Optional[Subscription]):
        organization = await self.organizations.get_by_id(organization_id)
        if organization is None:
            raise NotFoundError(f"Organization not found: {organization_id}")

        now = self.clock()
        return compute_seat_snapshot(
            paid_seats=subscription.current_seats if subscription else 0,
            active_members=await self.organizations.count_seat_holding_members(organization_id, now),
            pending_invitations=await self.organizations.count_pending_invitations(organization_id),
            pending_removals=await self.organizations.count_pending_removals(organization_id, now),
            override_seats=organization.billing_override_seats,
            override_expires_at=organization.billing_override_expires_at,
            free_tier_seats=self.settings.FREE_TIER_SEATS,
            billing_type=subscription.billing_type if subscription else None,
            now=now,
        )

    # Operations

    async def update_seat_quantity(
        self,
        caller: Caller,
        new_quantity: Any,
        invoice_immediately: bool = True,
    ) -> Dict[str, Any]:
        """Set the subscription's seat count to ``new_quantity``"""
        self._require_admin(caller)
        validate_quantity(new_quantity)
        subscription = await self._load_subscription(caller.organization_id)

        correlation_id = self._correlation_id("seats", caller.organization_id)
        log_extra = {
            "organization_id": caller.organization_id,
            "subscription_id": subscription.id,
            "correlation_id": correlation_id,
            "user_id": caller.user_id,
        }
        logger.info(
            f"Seat quantity update requested: {subscription.current_seats} -> {new_quantity}",
            extra=log_extra,
        )

        manager = self._seat_manager()
        if new_quantity < subscription.current_seats:
            active_members = await self.organizations.count_active_members(caller.organization_id)
            if new_quantity < active_members:
                raise ValidationError(
                    f"Cannot reduce to {new_quantity} seats: the organization has "
                    f"{active_members} active members. Remove members first."
                )
            result = await manager.remove_seats(subscription.id, new_quantity)
        else:
            result = await manager.add_seats(subscription.id, new_quantity, invoice_immediately=invoice_immediately)

        logger.info(f"Seat quantity update finished: {result.message}", extra=log_extra)
        return {**result.to_dict(), "correlation_id": correlation_id}

    async def change_billing_period(self, caller: Caller, new_variant_id: Any) -> Dict[str, Any]:
        """Move the subscription to another variant, subject to the period guard"""
        self._require_admin(caller)
        subscription = await self._load_subscription(caller.organization_id)
        correlation_id = self._correlation_id("variant", caller.organization_id)

        result = await self._period_guard().change_variant(subscription, new_variant_id, correlation_id=correlation_id)
        return {**result.to_dict(), "correlation_id": correlation_id}

    async def get_seat_info(self, caller: Caller) -> Dict[str, Any]:
        """Fresh seat snapshot for the caller's organization"""
        subscription = await self.subscriptions.get_active_for_organization(caller.organization_id)
        snapshot = await self._seat_snapshot(caller.organization_id, subscription)
        return {"organization_id": caller.organization_id, **snapshot.to_dict()}

    async def get_subscription(self, caller: Caller) -> Dict[str, Any]:
        """
        Reconciled subscription view with display names and seat usage.

        A failed provider read does not fail the request; the local snapshot
        is returned with ``provider_error`` set.
        """
        subscription = await self._load_subscription(caller.organization_id)
        local = SubscriptionSnapshot.from_record(subscription)

        remote = None
        provider_error = None
        try:
            remote = await self._require_provider().get_subscription(subscription.provider_subscription_id)
        except (ProviderError, ConfigurationError) as e:
            logger.warning(
                f"Serving local subscription snapshot: {e.message}",
                extra={"organization_id": caller.organization_id, "subscription_id": subscription.id},
            )
            provider_error = e.message

        reconciled = reconcile(local, SubscriptionSnapshot.from_provider(remote) if remote else None)
        seats = await self._seat_snapshot(caller.organization_id, subscription)

        billing_period = None
        try:
            family = self.catalog.family_of_product(reconciled.snapshot.product_id)
            billing_period = family.value if family else None
        except ConfigurationError:
            pass

        view = {
            "id": subscription.id,
            "organization_id": subscription.organization_id,
            "billing_type": subscription.billing_type,
            "billing_period": billing_period,
            "current_seats": subscription.current_seats,
            **reconciled.snapshot.to_dict(),
            "product_name": remote.product_name if remote else None,
            "variant_name": remote.variant_name if remote else None,
            "customer_portal_url": remote.customer_portal_url if remote else None,
            "card_brand": remote.card_brand if remote else None,
            "card_last_four": remote.card_last_four if remote else None,
        }
        return {
            "subscription": view,
            "source": reconciled.source,
            "provider_error": provider_error,
            "seats": {
                "max_seats": seats.max_seats,
                "current_seats": seats.current_seats,
                "available_seats": seats.available_seats,
                "utilization_percentage": seats.utilization_percentage,
                "seat_status": seats.seat_status.value,
            },
        }

    async def preview_proration(self, caller: Caller, new_quantity: Any) -> Dict[str, Any]:
        """Price a seat change without contacting the provider"""
        self._require_admin(caller)
        subscription = await self._load_subscription(caller.organization_id)
        manager = SeatManager(
            provider=self.provider,
            subscriptions=self.subscriptions,
            price_per_seat_per_year=self.settings.YEARLY_PRICE_PER_SEAT,
            currency=self.settings.CURRENCY,
            clock=self.clock,
        )
        quote = manager.quote(subscription, new_quantity)
        return {
            "billing_type": subscription.billing_type,
            "current_seats": subscription.current_seats,
            "new_quantity": new_quantity,
            "currency": self.settings.CURRENCY,
            **quote.to_dict(),
        }

    async def switch_to_yearly(self, caller: Caller) -> Dict[str, Any]:
        """Start the checkout that replaces a monthly subscription with a yearly one"""
        self._require_admin(caller)
        subscription = await self._load_subscription(caller.organization_id)

        catalog = self.catalog
        family = catalog.family_of_product(subscription.provider_product_id)
        if family == ProductFamily.YEARLY:
            raise ValidationError("Subscription is already on yearly billing")
        if family is None:
            raise ConfigurationError(
                f"Subscription product {subscription.lemonsqueezy_product_id} is not in the product catalog"
            )
        if catalog.yearly_checkout_variant_id is None:
            raise ConfigurationError("Yearly checkout variant is not configured")

        seats = max(subscription.current_seats, 1)
        checkout = await self._require_provider().create_checkout(
            variant_id=catalog.yearly_checkout_variant_id,
            quantity=seats,
            email=caller.email or "",
            name=caller.name or "",
            custom_data={
                "organization_id": caller.organization_id,
                "migration_from_subscription_id": subscription.lemonsqueezy_subscription_id,
                "preserve_seats": seats,
            },
        )
        logger.info(
            f"Yearly checkout created for {seats} seats",
            extra={"organization_id": caller.organization_id, "subscription_id": subscription.id},
        )
        return {
            "checkout_url": checkout.checkout_url,
            "checkout_id": checkout.checkout_id,
            "preserved_seats": seats,
        }

    async def reconcile_subscriptions(self) -> Dict[str, Any]:
        """
        Compare every active-like subscription's seats with the provider
        quantity. Reports only; divergence is repaired by webhooks or operators.
        """
        provider = self._require_provider()
        subscriptions = await self.subscriptions.list_active()

        matched = 0
        mismatches = []
        errors = []
        for subscription in subscriptions:
            log_extra = {"organization_id": subscription.organization_id, "subscription_id": subscription.id}
            try:
                remote = await provider.get_subscription(subscription.provider_subscription_id)
            except ProviderError as e:
                logger.warning(f"Reconciliation read failed: {e.message}", extra=log_extra)
                errors.append({"subscription_id": subscription.id, "error": e.message})
                continue

            check = check_quantity(subscription.current_seats, remote.quantity)
            if check.matches:
                matched += 1
                continue

            logger.error(
                f"Seat mismatch: local {check.local_quantity}, provider {check.provider_quantity}",
                extra=log_extra,
            )
            mismatches.append({
                "subscription_id": subscription.id,
                "organization_id": subscription.organization_id,
                "local_seats": check.local_quantity,
                "provider_quantity": check.provider_quantity,
                "difference": check.difference,
            })

        logger.info(
            f"Reconciliation checked {len(subscriptions)} subscriptions, "
            f"{len(mismatches)} mismatched, {len(errors)} failed"
        )
        return {
            "checked": len(subscriptions),
            "matched": matched,
            "mismatched": mismatches,
            "errors": errors,
        }

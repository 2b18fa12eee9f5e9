# leavebilling/billing/period_guard.py
"""
Billing period change guard.

Transitions are decided by product family (monthly / yearly), looked up by
provider product id. Several variants can share one product, e.g. regional
pricing, so variants are only used to find the requested product.

    monthly -> monthly   direct variant change
    monthly -> yearly    redirect to the yearly checkout flow
    yearly  -> monthly   blocked until the yearly term renews
    yearly  -> yearly    direct variant change
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from leavebilling.billing.identifiers import ProductId, VariantId
from leavebilling.billing.provider import BillingProvider
from leavebilling.core.constants import FAMILY_BILLING_TYPE, ProductFamily
from leavebilling.core.exceptions import (
    ConfigurationError,
    DivergentStateError,
    ProviderResponseError,
    TransitionBlockedError,
    ValidationError,
)
from leavebilling.core.timeutils import ensure_utc, utcnow
from leavebilling.db.models.subscription import Subscription
from leavebilling.db.repositories.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)

REASON_CHECKOUT_REQUIRED = "checkout_required"
REASON_YEARLY_TERM_ACTIVE = "yearly_term_active"


class TransitionOutcome(str, Enum):
    ALLOWED = "allowed"
    REDIRECT = "redirect"
    BLOCKED = "blocked"


class ProductCatalog:
    """Maps provider products and variants to billing period families"""

    def __init__(
        self,
        monthly_product_id: ProductId,
        yearly_product_id: ProductId,
        monthly_variant_ids: Iterable[VariantId] = (),
        yearly_variant_ids: Iterable[VariantId] = (),
        yearly_checkout_variant_id: Optional[VariantId] = None,
    ):
        if monthly_product_id == yearly_product_id:
            raise ConfigurationError("Monthly and yearly product ids must differ")
        self.monthly_product_id = monthly_product_id
        self.yearly_product_id = yearly_product_id
        self.yearly_checkout_variant_id = yearly_checkout_variant_id
        self._variant_products: Dict[VariantId, ProductId] = {}
        for variant_id in monthly_variant_ids:
            self._variant_products[variant_id] = monthly_product_id
        for variant_id in yearly_variant_ids:
            if variant_id in self._variant_products:
                raise ConfigurationError(f"Variant {variant_id} is mapped to both products")
            self._variant_products[variant_id] = yearly_product_id

    @classmethod
    def from_settings(cls, settings) -> "ProductCatalog":
        if not settings.LEMONSQUEEZY_MONTHLY_PRODUCT_ID or not settings.LEMONSQUEEZY_YEARLY_PRODUCT_ID:
            raise ConfigurationError("Product configuration missing")
        yearly_variants = [VariantId(v) for v in settings.yearly_variant_ids]
        checkout_variant = VariantId.parse(settings.LEMONSQUEEZY_YEARLY_VARIANT_ID)
        if checkout_variant is None and yearly_variants:
            checkout_variant = yearly_variants[0]
        return cls(
            monthly_product_id=ProductId(settings.LEMONSQUEEZY_MONTHLY_PRODUCT_ID),
            yearly_product_id=ProductId(settings.LEMONSQUEEZY_YEARLY_PRODUCT_ID),
            monthly_variant_ids=[VariantId(v) for v in settings.monthly_variant_ids],
            yearly_variant_ids=yearly_variants,
            yearly_checkout_variant_id=checkout_variant,
        )

    def family_of_product(self, product_id: Optional[ProductId]) -> Optional[ProductFamily]:
        if product_id == self.monthly_product_id:
            return ProductFamily.MONTHLY
        if product_id == self.yearly_product_id:
            return ProductFamily.YEARLY
        return None

    def product_of_variant(self, variant_id: VariantId) -> Optional[ProductId]:
        return self._variant_products.get(variant_id)

    def family_of_variant(self, variant_id: VariantId) -> Optional[ProductFamily]:
        return self.family_of_product(self.product_of_variant(variant_id))


@dataclass
class PeriodChangeDecision:
    outcome: TransitionOutcome
    current_family: ProductFamily
    requested_family: ProductFamily
    requested_variant_id: VariantId
    requested_product_id: ProductId
    message: str
    renewal_date: Optional[datetime] = None
    redirect_to: Optional[str] = None


@dataclass
class PeriodChangeResult:
    billing_period: ProductFamily
    billing_type: str
    new_variant_id: VariantId
    subscription_id: str
    preserved_seats: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "billing_period": self.billing_period.value,
            "billing_type": self.billing_type,
            "new_variant_id": self.new_variant_id.value,
            "subscription_id": self.subscription_id,
            "preserved_seats": self.preserved_seats,
            "message": self.message,
        }


class BillingPeriodChangeGuard:
    """Decides and applies variant changes for an organization's subscription"""

    def __init__(
        self,
        provider: BillingProvider,
        subscriptions: SubscriptionRepository,
        catalog: ProductCatalog,
        checkout_redirect: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.provider = provider
        self.subscriptions = subscriptions
        self.catalog = catalog
        self.checkout_redirect = checkout_redirect
        self.clock = clock

    def evaluate(self, subscription: Subscription, new_variant_id: Any) -> PeriodChangeDecision:
        """Look up the transition table; raises ValidationError for bad input"""
        try:
            requested_variant = VariantId.parse(new_variant_id)
        except (TypeError, ValueError):
            requested_variant = None
        if requested_variant is None:
            raise ValidationError("Invalid variant_id. Must be a positive number.")

        if requested_variant == subscription.provider_variant_id:
            raise ValidationError("Already on requested variant")

        requested_product = self.catalog.product_of_variant(requested_variant)
        if requested_product is None:
            raise ValidationError(f"Unknown variant: {requested_variant}")
        requested_family = self.catalog.family_of_product(requested_product)

        current_family = self.catalog.family_of_product(subscription.provider_product_id)
        if current_family is None:
            raise ConfigurationError(
                f"Subscription product {subscription.lemonsqueezy_product_id} is not in the product catalog"
            )

        decision = dict(
            current_family=current_family,
            requested_family=requested_family,
            requested_variant_id=requested_variant,
            requested_product_id=requested_product,
        )

        if current_family == requested_family:
            return PeriodChangeDecision(
                outcome=TransitionOutcome.ALLOWED,
                message=f"Variant change within the {current_family.value} plan",
                **decision,
            )

        if current_family == ProductFamily.MONTHLY:
            return PeriodChangeDecision(
                outcome=TransitionOutcome.REDIRECT,
                message="Switching to yearly billing requires a new checkout",
                redirect_to=self.checkout_redirect,
                **decision,
            )

        # yearly -> monthly
        renews_at = ensure_utc(subscription.renews_at)
        if renews_at is None or self.clock() < renews_at:
            when = f" on {renews_at.date().isoformat()}" if renews_at else ""
            return PeriodChangeDecision(
                outcome=TransitionOutcome.BLOCKED,
                message=f"You can switch to monthly billing when your yearly plan renews{when}",
                renewal_date=renews_at,
                **decision,
            )

        return PeriodChangeDecision(
            outcome=TransitionOutcome.ALLOWED,
            message="Yearly term has ended; switching to monthly billing",
            **decision,
        )

    async def change_variant(
        self,
        subscription: Subscription,
        new_variant_id: Any,
        correlation_id: Optional[str] = None,
    ) -> PeriodChangeResult:
        decision = self.evaluate(subscription, new_variant_id)
        log_extra = {
            "organization_id": subscription.organization_id,
            "subscription_id": subscription.id,
            "correlation_id": correlation_id,
        }

        if decision.outcome == TransitionOutcome.REDIRECT:
            logger.info("Monthly to yearly change redirected to checkout", extra=log_extra)
            raise TransitionBlockedError(
                decision.message,
                reason=REASON_CHECKOUT_REQUIRED,
                redirect_to=decision.redirect_to,
            )

        if decision.outcome == TransitionOutcome.BLOCKED:
            logger.info("Yearly to monthly change blocked until renewal", extra=log_extra)
            raise TransitionBlockedError(
                decision.message,
                reason=REASON_YEARLY_TERM_ACTIVE,
                renewal_date=decision.renewal_date,
            )

        logger.info(
            f"Changing variant {subscription.lemonsqueezy_variant_id} -> {decision.requested_variant_id}",
            extra=log_extra,
        )

        # The provider keeps the item quantity across variant changes
        try:
            remote = await self.provider.update_variant(
                subscription.provider_subscription_id, decision.requested_variant_id
            )
            preserved_seats = remote.quantity or subscription.current_seats
        except ProviderResponseError as e:
            # A success status means the variant changed upstream
            logger.warning(f"Variant change accepted with an unreadable response: {e.provider_detail}", extra=log_extra)
            preserved_seats = subscription.current_seats

        billing_type = FAMILY_BILLING_TYPE[decision.requested_family].value

        try:
            await self.subscriptions.update_variant(
                subscription.id,
                variant_id=str(decision.requested_variant_id),
                product_id=str(decision.requested_product_id),
                billing_type=billing_type,
            )
        except SQLAlchemyError as e:
            logger.critical(f"Provider changed variant but the local write failed: {e}", extra=log_extra)
            raise DivergentStateError(
                "Variant change was accepted by the billing provider but could not be saved",
                subscription_id=subscription.id,
            ) from e

        logger.info(f"Variant changed, {preserved_seats} seats preserved", extra=log_extra)

        return PeriodChangeResult(
            billing_period=decision.requested_family,
            billing_type=billing_type,
            new_variant_id=decision.requested_variant_id,
            subscription_id=str(subscription.provider_subscription_id),
            preserved_seats=preserved_seats,
            message=f"Billing period changed to {decision.requested_family.value}. {preserved_seats} seats preserved.",
        )

# leavebilling/billing/provider.py
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from leavebilling.billing.identifiers import (
    ProductId,
    SubscriptionId,
    SubscriptionItemId,
    VariantId,
)


@dataclass
class ProviderSubscription:
    """Subscription state as reported by the billing provider"""
    subscription_id: SubscriptionId
    status: str
    quantity: int
    product_id: Optional[ProductId]
    variant_id: Optional[VariantId]
    subscription_item_id: Optional[SubscriptionItemId] = None
    renews_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    product_name: Optional[str] = None
    variant_name: Optional[str] = None
    customer_portal_url: Optional[str] = None
    card_brand: Optional[str] = None
    card_last_four: Optional[str] = None
    test_mode: bool = False
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class QuantityUpdate:
    """Provider acknowledgement of a quantity change"""
    quantity: int
    record_id: Optional[str] = None


@dataclass
class CheckoutSession:
    checkout_id: str
    checkout_url: str


class BillingProvider(ABC):
    """
    Capabilities the engine needs from the external billing provider.

    Implementations raise ``ProviderError`` for any failed or non-success call
    (timeouts included) and never retry on their own.
    """

    @abstractmethod
    async def get_subscription(self, subscription_id: SubscriptionId) -> ProviderSubscription:
        """Read a subscription by provider id"""

    @abstractmethod
    async def update_quantity(
        self,
        subscription_item_id: SubscriptionItemId,
        quantity: int,
        invoice_immediately: bool,
        usage_based: bool,
    ) -> QuantityUpdate:
        """Set the contracted quantity of a subscription item"""

    @abstractmethod
    async def update_variant(self, subscription_id: SubscriptionId, variant_id: VariantId) -> ProviderSubscription:
        """Move a subscription to another variant"""

    @abstractmethod
    async def create_checkout(
        self,
        variant_id: VariantId,
        quantity: int,
        email: str,
        name: str,
        custom_data: Dict[str, Any],
    ) -> CheckoutSession:
        """Create a hosted checkout for a new subscription"""

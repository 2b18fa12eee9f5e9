# leavebilling/db/models/subscription.py
import uuid

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from leavebilling.billing.identifiers import (
    ProductId,
    SubscriptionId,
    SubscriptionItemId,
    VariantId,
)
from leavebilling.core.constants import ACTIVE_LIKE_STATUSES
from leavebilling.db.base import BaseModel

_ACTIVE_LIKE_SQL = "status IN ({})".format(
    ", ".join(f"'{status}'" for status in sorted(ACTIVE_LIKE_STATUSES))
)


class Subscription(BaseModel):
    """
    Local record of a provider subscription.

    ``quantity`` mirrors the provider's contracted quantity; ``current_seats``
    is the seat count granted locally and is only written by ``SeatManager``
    after the provider confirmed the change. Rows are never deleted, only
    moved to a terminal status.
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        # At most one active-like subscription per organization
        Index(
            "uq_subscriptions_active_org",
            "organization_id",
            unique=True,
            postgresql_where=text(_ACTIVE_LIKE_SQL),
            sqlite_where=text(_ACTIVE_LIKE_SQL),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    organization_id = Column(String(100), ForeignKey("organizations.id"), nullable=False, index=True)

    # Provider identifiers, stored as text
    lemonsqueezy_subscription_id = Column(String(64), unique=True, nullable=False)
    lemonsqueezy_subscription_item_id = Column(String(64), nullable=True)
    lemonsqueezy_product_id = Column(String(64), nullable=True)
    lemonsqueezy_variant_id = Column(String(64), nullable=True)

    billing_type = Column(String(32), nullable=False)  # usage_based, quantity_based
    status = Column(String(32), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    current_seats = Column(Integer, nullable=False, default=0)

    renews_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    organization = relationship("Organization", back_populates="subscriptions")

    @property
    def provider_subscription_id(self):
        return SubscriptionId.parse(self.lemonsqueezy_subscription_id)

    @property
    def provider_subscription_item_id(self):
        return SubscriptionItemId.parse(self.lemonsqueezy_subscription_item_id)

    @property
    def provider_product_id(self):
        return ProductId.parse(self.lemonsqueezy_product_id)

    @property
    def provider_variant_id(self):
        return VariantId.parse(self.lemonsqueezy_variant_id)

    @property
    def is_active_like(self) -> bool:
        return self.status in ACTIVE_LIKE_STATUSES

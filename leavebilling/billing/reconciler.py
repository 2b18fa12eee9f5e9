# leavebilling/billing/reconciler.py
"""
Read-path reconciliation between the local subscription row and the
provider's view of the same subscription.

The more recently updated snapshot wins in full. Fields are never mixed
across sources, so a status is always reported with the renewal date it was
written with. Nothing here writes to the store.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from leavebilling.billing.identifiers import ProductId, SubscriptionId, VariantId
from leavebilling.billing.provider import ProviderSubscription
from leavebilling.core.timeutils import ensure_utc

SOURCE_LOCAL = "local"
SOURCE_PROVIDER = "provider"


@dataclass
class SubscriptionSnapshot:
    subscription_id: Optional[SubscriptionId]
    status: str
    quantity: int
    product_id: Optional[ProductId]
    variant_id: Optional[VariantId]
    renews_at: Optional[datetime]
    ends_at: Optional[datetime]
    trial_ends_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_record(cls, record) -> "SubscriptionSnapshot":
        """Build from a ``Subscription`` row"""
        return cls(
            subscription_id=record.provider_subscription_id,
            status=record.status,
            quantity=record.quantity,
            product_id=record.provider_product_id,
            variant_id=record.provider_variant_id,
            renews_at=ensure_utc(record.renews_at),
            ends_at=ensure_utc(record.ends_at),
            trial_ends_at=ensure_utc(record.trial_ends_at),
            updated_at=ensure_utc(record.updated_at),
        )

    @classmethod
    def from_provider(cls, remote: ProviderSubscription) -> "SubscriptionSnapshot":
        return cls(
            subscription_id=remote.subscription_id,
            status=remote.status,
            quantity=remote.quantity,
            product_id=remote.product_id,
            variant_id=remote.variant_id,
            renews_at=ensure_utc(remote.renews_at),
            ends_at=ensure_utc(remote.ends_at),
            trial_ends_at=ensure_utc(remote.trial_ends_at),
            updated_at=ensure_utc(remote.updated_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("subscription_id", "product_id", "variant_id"):
            value = getattr(self, key)
            data[key] = value.value if value is not None else None
        for key in ("renews_at", "ends_at", "trial_ends_at", "updated_at"):
            value = getattr(self, key)
            data[key] = value.isoformat() if value is not None else None
        return data


@dataclass
class ReconciledSubscription:
    snapshot: SubscriptionSnapshot
    source: str


@dataclass
class QuantityCheck:
    local_quantity: int
    provider_quantity: int

    @property
    def matches(self) -> bool:
        return self.local_quantity == self.provider_quantity

    @property
    def difference(self) -> int:
        return self.provider_quantity - self.local_quantity


def reconcile(
    local: SubscriptionSnapshot,
    remote: Optional[SubscriptionSnapshot],
) -> ReconciledSubscription:
    """
    Pick the authoritative snapshot.

    The remote snapshot wins only with a strictly later ``updated_at``; ties,
    a missing remote snapshot, or a remote snapshot without a timestamp all
    resolve to the local one.
    """
    if remote is None or remote.updated_at is None:
        return ReconciledSubscription(snapshot=local, source=SOURCE_LOCAL)

    if local.updated_at is None:
        return ReconciledSubscription(snapshot=remote, source=SOURCE_PROVIDER)

    if ensure_utc(remote.updated_at) > ensure_utc(local.updated_at):
        return ReconciledSubscription(snapshot=remote, source=SOURCE_PROVIDER)

    return ReconciledSubscription(snapshot=local, source=SOURCE_LOCAL)


def check_quantity(local_current_seats: int, provider_quantity: int) -> QuantityCheck:
    return QuantityCheck(local_quantity=local_current_seats, provider_quantity=provider_quantity)

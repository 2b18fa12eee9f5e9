"""
Pytest configuration and fixtures
Shared test setup for all test modules
"""
import os

# Settings are read at import time
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from leavebilling.billing.identifiers import ProductId, SubscriptionId, SubscriptionItemId, VariantId
from leavebilling.billing.period_guard import ProductCatalog
from leavebilling.billing.provider import (
    BillingProvider,
    CheckoutSession,
    ProviderSubscription,
    QuantityUpdate,
)
from leavebilling.core.config import settings
from leavebilling.core.exceptions import ProviderError
from leavebilling.db.base import Base
from leavebilling.db.models import Invitation, Organization, Subscription, UserOrganization

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

MONTHLY_PRODUCT_ID = 100
YEARLY_PRODUCT_ID = 200
MONTHLY_VARIANTS = (101, 102)
YEARLY_VARIANTS = (201, 202)


def fixed_clock() -> datetime:
    return NOW


class FakeBillingProvider(BillingProvider):
    """In-memory provider that records every call"""

    def __init__(self):
        self.calls: List[tuple] = []
        self.subscriptions: Dict[SubscriptionId, ProviderSubscription] = {}
        self.fail_with: Optional[Exception] = None

    def add_subscription(self, remote: ProviderSubscription) -> ProviderSubscription:
        self.subscriptions[remote.subscription_id] = remote
        return remote

    def calls_named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def get_subscription(self, subscription_id):
        self.calls.append(("get_subscription", subscription_id))
        self._maybe_fail()
        if subscription_id not in self.subscriptions:
            raise ProviderError("Subscription not found", provider_detail="not found", upstream_status=404)
        return self.subscriptions[subscription_id]

    async def update_quantity(self, subscription_item_id, quantity, invoice_immediately, usage_based):
        self.calls.append(("update_quantity", subscription_item_id, quantity, invoice_immediately, usage_based))
        self._maybe_fail()
        return QuantityUpdate(quantity=quantity, record_id="rec-1")

    async def update_variant(self, subscription_id, variant_id):
        self.calls.append(("update_variant", subscription_id, variant_id))
        self._maybe_fail()
        existing = self.subscriptions.get(subscription_id)
        return ProviderSubscription(
            subscription_id=subscription_id,
            status="active",
            quantity=existing.quantity if existing else 0,
            product_id=None,
            variant_id=variant_id,
        )

    async def create_checkout(self, variant_id, quantity, email, name, custom_data):
        self.calls.append(("create_checkout", variant_id, quantity, email, name, custom_data))
        self._maybe_fail()
        return CheckoutSession(checkout_id="chk-1", checkout_url="https://checkout.test/chk-1")


@pytest.fixture
def provider() -> FakeBillingProvider:
    return FakeBillingProvider()


@pytest.fixture
def catalog() -> ProductCatalog:
    return ProductCatalog(
        monthly_product_id=ProductId(MONTHLY_PRODUCT_ID),
        yearly_product_id=ProductId(YEARLY_PRODUCT_ID),
        monthly_variant_ids=[VariantId(v) for v in MONTHLY_VARIANTS],
        yearly_variant_ids=[VariantId(v) for v in YEARLY_VARIANTS],
        yearly_checkout_variant_id=VariantId(YEARLY_VARIANTS[0]),
    )


@pytest.fixture
def test_settings():
    """Settings with a complete product catalog and no provider credentials"""
    return settings.model_copy(update={
        "LEMONSQUEEZY_MONTHLY_PRODUCT_ID": MONTHLY_PRODUCT_ID,
        "LEMONSQUEEZY_YEARLY_PRODUCT_ID": YEARLY_PRODUCT_ID,
        "LEMONSQUEEZY_MONTHLY_VARIANT_IDS": ",".join(str(v) for v in MONTHLY_VARIANTS),
        "LEMONSQUEEZY_YEARLY_VARIANT_IDS": ",".join(str(v) for v in YEARLY_VARIANTS),
        "LEMONSQUEEZY_YEARLY_VARIANT_ID": YEARLY_VARIANTS[0],
        "YEARLY_PRICE_PER_SEAT": 1200.0,
        "FREE_TIER_SEATS": 3,
        "CRON_SECRET": "test-cron-secret",
    })


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database for each test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
async def organization(db_session: AsyncSession) -> Organization:
    org = Organization(id="org-1", name="Acme Leave")
    db_session.add(org)
    await db_session.commit()
    await db_session.refresh(org)
    return org


async def create_subscription(
    db_session: AsyncSession,
    organization_id: str = "org-1",
    billing_type: str = "quantity_based",
    current_seats: int = 9,
    status: str = "active",
    provider_id: str = "5001",
    item_id: Optional[str] = "7001",
    product_id: int = YEARLY_PRODUCT_ID,
    variant_id: int = YEARLY_VARIANTS[0],
    renews_at: Optional[datetime] = NOW + timedelta(days=183),
    updated_at: Optional[datetime] = None,
) -> Subscription:
    subscription = Subscription(
        organization_id=organization_id,
        lemonsqueezy_subscription_id=provider_id,
        lemonsqueezy_subscription_item_id=item_id,
        lemonsqueezy_product_id=str(product_id),
        lemonsqueezy_variant_id=str(variant_id),
        billing_type=billing_type,
        status=status,
        quantity=current_seats,
        current_seats=current_seats,
        renews_at=renews_at,
    )
    if updated_at is not None:
        subscription.updated_at = updated_at
    db_session.add(subscription)
    await db_session.commit()
    await db_session.refresh(subscription)
    return subscription


async def add_members(
    db_session: AsyncSession,
    organization_id: str = "org-1",
    active: int = 0,
    invitations: int = 0,
    pending_removal: int = 0,
    removal_effective_date: Optional[datetime] = None,
    role: str = "employee",
):
    for i in range(active):
        db_session.add(UserOrganization(user_id=f"{role}-{i}", organization_id=organization_id, role=role))
    for i in range(pending_removal):
        db_session.add(UserOrganization(
            user_id=f"leaving-{i}",
            organization_id=organization_id,
            status="pending_removal",
            removal_effective_date=removal_effective_date,
        ))
    for i in range(invitations):
        db_session.add(Invitation(organization_id=organization_id, email=f"invitee{i}@example.com"))
    await db_session.commit()


def provider_snapshot(
    subscription_id: int = 5001,
    quantity: int = 9,
    product_id: int = YEARLY_PRODUCT_ID,
    variant_id: int = YEARLY_VARIANTS[0],
    item_id: Optional[int] = 7001,
    updated_at: Optional[datetime] = None,
    status: str = "active",
    renews_at: Optional[datetime] = NOW + timedelta(days=183),
) -> ProviderSubscription:
    return ProviderSubscription(
        subscription_id=SubscriptionId(subscription_id),
        status=status,
        quantity=quantity,
        product_id=ProductId(product_id),
        variant_id=VariantId(variant_id),
        subscription_item_id=SubscriptionItemId(item_id) if item_id else None,
        renews_at=renews_at,
        updated_at=updated_at,
        product_name="Leave Manager",
        variant_name="Yearly" if product_id == YEARLY_PRODUCT_ID else "Monthly",
    )

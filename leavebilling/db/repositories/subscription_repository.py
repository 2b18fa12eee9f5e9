# leavebilling/db/repositories/subscription_repository.py
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leavebilling.core.constants import ACTIVE_LIKE_STATUSES
from leavebilling.core.timeutils import utcnow
from leavebilling.db.models.subscription import Subscription
from leavebilling.db.repositories.base import BaseRepository


class SubscriptionRepository(BaseRepository[Subscription]):
    """Repository for Subscription operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Subscription, session)

    async def get_active_for_organization(self, organization_id: str) -> Optional[Subscription]:
        """The organization's active-like subscription, if any"""
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.organization_id == organization_id)
            .where(Subscription.status.in_(sorted(ACTIVE_LIKE_STATUSES)))
            .order_by(Subscription.updated_at.desc())
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_active(self) -> List[Subscription]:
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.status.in_(sorted(ACTIVE_LIKE_STATUSES)))
            .order_by(Subscription.organization_id)
        )
        return list(result.scalars().all())

    async def update_seats_if_unchanged(
        self,
        subscription_id: str,
        expected_seats: int,
        new_seats: int,
        subscription_item_id: Optional[str] = None,
    ) -> bool:
        """
        Set quantity and current_seats only if current_seats still equals
        ``expected_seats``. Returns False when another writer got there first.
        """
        values = {"quantity": new_seats, "current_seats": new_seats, "updated_at": utcnow()}
        if subscription_item_id is not None:
            values["lemonsqueezy_subscription_item_id"] = subscription_item_id

        result = await self.session.execute(
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .where(Subscription.current_seats == expected_seats)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount == 1

    async def update_variant(
        self,
        subscription_id: str,
        variant_id: str,
        product_id: str,
        billing_type: str,
    ) -> Optional[Subscription]:
        return await self.update(subscription_id, {
            "lemonsqueezy_variant_id": variant_id,
            "lemonsqueezy_product_id": product_id,
            "billing_type": billing_type,
            "updated_at": utcnow(),
        })

# leavebilling/db/repositories/organization_repository.py
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavebilling.core.constants import InvitationStatus, MemberStatus
from leavebilling.core.timeutils import utcnow
from leavebilling.db.models.membership import Invitation, UserOrganization
from leavebilling.db.models.organization import Organization
from leavebilling.db.repositories.base import BaseRepository


class OrganizationRepository(BaseRepository[Organization]):
    """Organizations and the membership counts that feed seat accounting"""

    def __init__(self, session: AsyncSession):
        super().__init__(Organization, session)

    async def get_by_id(self, organization_id: str) -> Optional[Organization]:
        """Get organization by ID"""
        return await self.get(organization_id)

    async def get_membership(self, organization_id: str, user_id: str) -> Optional[UserOrganization]:
        """Membership of a user that still has workspace access"""
        result = await self.session.execute(
            select(UserOrganization)
            .where(UserOrganization.organization_id == organization_id)
            .where(UserOrganization.user_id == user_id)
            .where(UserOrganization.status.in_([
                MemberStatus.ACTIVE.value,
                MemberStatus.PENDING_REMOVAL.value,
            ]))
        )
        return result.scalars().first()

    @staticmethod
    def _pending_removal_in_effect(now: datetime):
        # Flagged members keep their seat until the effective date passes
        return and_(
            UserOrganization.status == MemberStatus.PENDING_REMOVAL.value,
            or_(
                UserOrganization.removal_effective_date.is_(None),
                UserOrganization.removal_effective_date > now,
            ),
        )

    async def count_seat_holding_members(self, organization_id: str, now: Optional[datetime] = None) -> int:
        """Active members plus members whose removal has not taken effect yet"""
        return await self.count(
            UserOrganization.organization_id == organization_id,
            or_(
                UserOrganization.status == MemberStatus.ACTIVE.value,
                self._pending_removal_in_effect(now or utcnow()),
            ),
            model=UserOrganization,
        )

    async def count_active_members(self, organization_id: str) -> int:
        """Members with status ``active`` only (downgrade validation)"""
        return await self.count(
            UserOrganization.organization_id == organization_id,
            UserOrganization.status == MemberStatus.ACTIVE.value,
            model=UserOrganization,
        )

    async def count_pending_removals(self, organization_id: str, now: Optional[datetime] = None) -> int:
        return await self.count(
            UserOrganization.organization_id == organization_id,
            self._pending_removal_in_effect(now or utcnow()),
            model=UserOrganization,
        )

    async def count_pending_invitations(self, organization_id: str) -> int:
        return await self.count(
            Invitation.organization_id == organization_id,
            Invitation.status == InvitationStatus.PENDING.value,
            model=Invitation,
        )

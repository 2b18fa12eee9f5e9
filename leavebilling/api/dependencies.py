# leavebilling/api/dependencies.py
import hmac
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from leavebilling.billing.handlers import BillingRequestHandlers, Caller
from leavebilling.billing.provider import BillingProvider
from leavebilling.core.config import Settings, get_settings
from leavebilling.core.exceptions import PermissionDeniedError
from leavebilling.core.security import decode_token
from leavebilling.db.database import get_db
from leavebilling.db.repositories.organization_repository import OrganizationRepository
from leavebilling.services.lemonsqueezy_service import LemonSqueezyService

security = HTTPBearer(auto_error=False)


async def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Caller:
    """Resolve the bearer token to a member of the token's organization"""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    try:
        payload = decode_token(credentials.credentials)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )

    user_id = payload.get("sub")
    organization_id = payload.get("organization_id")
    if not user_id or not organization_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    # Role comes from the membership row, not from the token
    membership = await OrganizationRepository(db).get_membership(organization_id, user_id)
    if membership is None:
        raise PermissionDeniedError("Not a member of this organization")

    return Caller(
        user_id=user_id,
        organization_id=organization_id,
        role=membership.role,
        email=payload.get("email"),
        name=payload.get("name"),
    )


async def get_billing_provider(settings: Settings = Depends(get_settings)) -> Optional[BillingProvider]:
    """Lemon Squeezy client, or None when no API key is configured"""
    if not settings.LEMONSQUEEZY_API_KEY:
        return None
    return LemonSqueezyService.from_settings(settings)


async def get_billing_handlers(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    provider: Optional[BillingProvider] = Depends(get_billing_provider),
) -> BillingRequestHandlers:
    return BillingRequestHandlers(session=db, settings=settings, provider=provider)


async def verify_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
):
    """Scheduled jobs authenticate with the shared CRON_SECRET as bearer token"""
    if not settings.CRON_SECRET or not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )
    if not hmac.compare_digest(credentials.credentials, settings.CRON_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )

# leavebilling/api/v1/organizations.py
from fastapi import APIRouter, Depends

from leavebilling.api.dependencies import get_billing_handlers, get_current_caller
from leavebilling.billing.handlers import BillingRequestHandlers, Caller
from leavebilling.core.exceptions import PermissionDeniedError
from leavebilling.schemas.billing import SeatInfoResponse

router = APIRouter()


@router.get("/{organization_id}/seat-info", response_model=SeatInfoResponse)
async def get_seat_info(
    organization_id: str,
    caller: Caller = Depends(get_current_caller),
    handlers: BillingRequestHandlers = Depends(get_billing_handlers),
):
    """Current seat usage, recomputed from membership on every request"""
    if organization_id != caller.organization_id:
        raise PermissionDeniedError("Not a member of this organization")
    return await handlers.get_seat_info(caller)

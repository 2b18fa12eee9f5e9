# leavebilling/api/v1/billing.py
from fastapi import APIRouter, Depends, Query

from leavebilling.api.dependencies import (
    get_billing_handlers,
    get_current_caller,
    verify_cron_secret,
)
from leavebilling.billing.handlers import BillingRequestHandlers, Caller
from leavebilling.schemas.billing import (
    BillingPeriodChangeResponse,
    ChangeBillingPeriodRequest,
    ProrationPreviewResponse,
    ReconciliationResponse,
    SeatChangeResponse,
    SubscriptionDetailResponse,
    SwitchToYearlyResponse,
    UpdateQuantityRequest,
)

router = APIRouter()


@router.post(
    "/update-quantity",
    response_model=SeatChangeResponse,
    response_model_exclude_none=True,
)
async def update_quantity(
    request: UpdateQuantityRequest,
    caller: Caller = Depends(get_current_caller),
    handlers: BillingRequestHandlers = Depends(get_billing_handlers),
):
    """Change the number of seats on the organization's subscription"""
    return await handlers.update_seat_quantity(
        caller,
        request.new_quantity,
        invoice_immediately=request.invoice_immediately,
    )


@router.post("/change-billing-period", response_model=BillingPeriodChangeResponse)
async def change_billing_period(
    request: ChangeBillingPeriodRequest,
    caller: Caller = Depends(get_current_caller),
    handlers: BillingRequestHandlers = Depends(get_billing_handlers),
):
    """Switch the subscription to another variant (monthly/yearly rules apply)"""
    return await handlers.change_billing_period(caller, request.new_variant_id)


@router.get("/subscription", response_model=SubscriptionDetailResponse)
async def get_subscription(
    caller: Caller = Depends(get_current_caller),
    handlers: BillingRequestHandlers = Depends(get_billing_handlers),
):
    return await handlers.get_subscription(caller)


@router.get(
    "/proration-preview",
    response_model=ProrationPreviewResponse,
    response_model_exclude_none=True,
)
async def proration_preview(
    new_quantity: int = Query(...),
    caller: Caller = Depends(get_current_caller),
    handlers: BillingRequestHandlers = Depends(get_billing_handlers),
):
    """Price a seat change without applying it"""
    return await handlers.preview_proration(caller, new_quantity)


@router.post("/switch-to-yearly", response_model=SwitchToYearlyResponse)
async def switch_to_yearly(
    caller: Caller = Depends(get_current_caller),
    handlers: BillingRequestHandlers = Depends(get_billing_handlers),
):
    """Create the checkout that moves a monthly subscription to yearly billing"""
    return await handlers.switch_to_yearly(caller)


@router.post(
    "/reconcile",
    response_model=ReconciliationResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def reconcile_subscriptions(
    handlers: BillingRequestHandlers = Depends(get_billing_handlers),
):
    """Report seat drift between local rows and the billing provider"""
    return await handlers.reconcile_subscriptions()

# leavebilling/schemas/billing.py
from pydantic import BaseModel, StrictInt
from typing import Optional, List, Dict, Any


class UpdateQuantityRequest(BaseModel):
    new_quantity: StrictInt
    invoice_immediately: bool = True


class ChangeBillingPeriodRequest(BaseModel):
    new_variant_id: StrictInt


class SeatChangeResponse(BaseModel):
    changed: bool
    billing_type: str
    charged_at: Optional[str] = None
    previous_seats: int
    current_seats: int
    message: str
    proration_amount: Optional[float] = None
    days_remaining: Optional[int] = None
    correlation_id: str


class BillingPeriodChangeResponse(BaseModel):
    billing_period: str
    billing_type: str
    new_variant_id: int
    subscription_id: str
    preserved_seats: int
    message: str
    correlation_id: str


class SeatInfoResponse(BaseModel):
    organization_id: str
    free_tier_seats: int
    paid_seats: int
    max_seats: int
    current_seats: int
    active_members: int
    pending_invitations: int
    pending_removals: int
    available_seats: int
    plan: str
    required_paid_seats: int
    utilization_percentage: int
    seat_status: str
    override_active: bool
    can_add_more: bool


class SeatUsage(BaseModel):
    max_seats: int
    current_seats: int
    available_seats: int
    utilization_percentage: int
    seat_status: str


class SubscriptionView(BaseModel):
    """
    Reconciled subscription snapshot.

    ``billing_type`` and ``current_seats`` always come from the local row,
    whichever source wins. ``status``, ``quantity`` and the dates come from
    the winning snapshot, so ``quantity`` may differ from ``current_seats``.
    """

    id: str
    organization_id: str
    billing_type: str
    billing_period: Optional[str] = None
    current_seats: int
    subscription_id: Optional[int] = None
    status: str
    quantity: int
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    renews_at: Optional[str] = None
    ends_at: Optional[str] = None
    trial_ends_at: Optional[str] = None
    updated_at: Optional[str] = None
    product_name: Optional[str] = None
    variant_name: Optional[str] = None
    customer_portal_url: Optional[str] = None
    card_brand: Optional[str] = None
    card_last_four: Optional[str] = None


class SubscriptionDetailResponse(BaseModel):
    subscription: SubscriptionView
    source: str
    provider_error: Optional[str] = None
    seats: SeatUsage


class ProrationPreviewResponse(BaseModel):
    billing_type: str
    current_seats: int
    new_quantity: int
    currency: str
    charged_at: str
    message: str
    seat_delta: int
    # Absent for usage-based plans
    proration_amount: Optional[float] = None
    days_remaining: Optional[int] = None


class SwitchToYearlyResponse(BaseModel):
    checkout_url: str
    checkout_id: str
    preserved_seats: int


class QuantityMismatch(BaseModel):
    subscription_id: str
    organization_id: str
    local_seats: int
    provider_quantity: int
    difference: int


class ReconciliationResponse(BaseModel):
    checked: int
    matched: int
    mismatched: List[QuantityMismatch]
    errors: List[Dict[str, Any]]

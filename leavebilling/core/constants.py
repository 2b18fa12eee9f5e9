# leavebilling/core/constants.py
from enum import Enum
from typing import FrozenSet


class BillingType(str, Enum):
    USAGE_BASED = "usage_based"  # monthly, metered by the provider
    QUANTITY_BASED = "quantity_based"  # yearly, prorated immediately


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    ON_TRIAL = "on_trial"
    PAST_DUE = "past_due"
    PAUSED = "paused"
    UNPAID = "unpaid"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


ACTIVE_LIKE_STATUSES: FrozenSet[str] = frozenset({
    SubscriptionStatus.ACTIVE.value,
    SubscriptionStatus.ON_TRIAL.value,
    SubscriptionStatus.PAST_DUE.value,
    SubscriptionStatus.PAUSED.value,
})


class ProductFamily(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


FAMILY_BILLING_TYPE = {
    ProductFamily.MONTHLY: BillingType.USAGE_BASED,
    ProductFamily.YEARLY: BillingType.QUANTITY_BASED,
}


class ChargedAt(str, Enum):
    IMMEDIATELY = "immediately"
    END_OF_PERIOD = "end_of_period"


class MemberStatus(str, Enum):
    ACTIVE = "active"
    PENDING_REMOVAL = "pending_removal"
    ARCHIVED = "archived"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class UserRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


ADMIN_ROLES: FrozenSet[str] = frozenset({UserRole.OWNER.value, UserRole.ADMIN.value})


class SeatStatus(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    FULL = "full"
    OVER = "over"


# Seat accounting
FREE_TIER_SEATS = 3
GRADUATED_PRICING_THRESHOLD = 4
SEAT_WARNING_UTILIZATION = 80

# Proration
DAYS_PER_YEAR = 365

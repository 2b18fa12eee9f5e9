# leavebilling/billing/seat_accounting.py
"""
Seat accounting for an organization.

Pure computation: the caller supplies freshly counted membership numbers and
the current override; nothing here touches the store or caches results.

Graduated pricing: up to ``FREE_TIER_SEATS`` users are free. Once demand
reaches ``GRADUATED_PRICING_THRESHOLD`` the organization pays for every seat
it holds, so a paid plan's ceiling is the contracted seat count itself and
the free seats are included in it, not added on top.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from leavebilling.core.constants import (
    FREE_TIER_SEATS,
    GRADUATED_PRICING_THRESHOLD,
    SEAT_WARNING_UTILIZATION,
    SeatStatus,
)
from leavebilling.core.timeutils import ensure_utc, utcnow

FREE_PLAN = "free"


@dataclass
class SeatSnapshot:
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
    seat_status: SeatStatus
    override_active: bool

    @property
    def can_add_more(self) -> bool:
        return self.available_seats > 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["seat_status"] = self.seat_status.value
        data["can_add_more"] = self.can_add_more
        return data


@dataclass
class InvitationCapacity:
    can_invite: bool
    available_seats: int
    seats_after_invite: int
    reason: Optional[str] = None


def required_paid_seats(demand: int) -> int:
    """Seats that must be paid for at a given demand (0 inside the free tier)"""
    return demand if demand >= GRADUATED_PRICING_THRESHOLD else 0


def is_override_active(
    override_seats: Optional[int],
    override_expires_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> bool:
    if not override_seats or override_seats <= 0:
        return False
    if override_expires_at is None:
        return True
    now = ensure_utc(now) or utcnow()
    return ensure_utc(override_expires_at) > now


def utilization_percentage(current_seats: int, max_seats: int) -> int:
    if max_seats <= 0:
        return 0
    return int(round(current_seats / max_seats * 100))


def seat_status(current_seats: int, max_seats: int) -> SeatStatus:
    if current_seats > max_seats:
        return SeatStatus.OVER
    if current_seats == max_seats:
        return SeatStatus.FULL
    if utilization_percentage(current_seats, max_seats) >= SEAT_WARNING_UTILIZATION:
        return SeatStatus.WARNING
    return SeatStatus.SAFE


def compute_seat_snapshot(
    paid_seats: int,
    active_members: int,
    pending_invitations: int,
    pending_removals: int = 0,
    override_seats: Optional[int] = None,
    override_expires_at: Optional[datetime] = None,
    free_tier_seats: int = FREE_TIER_SEATS,
    billing_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SeatSnapshot:
    """
    Build the seat snapshot for an organization.

    Args:
        paid_seats: ``current_seats`` of the active-like subscription, 0 without one
        active_members: members holding a seat, including those flagged for
            removal whose effective date has not passed yet
        pending_invitations: unanswered invitations, each holding a seat
        pending_removals: members flagged for removal (reported only)
        override_seats: organization-level manual seat ceiling
        override_expires_at: when the override stops applying (None = never)
        free_tier_seats: seat floor granted without a subscription
        billing_type: billing type label of the subscription, None when free
        now: evaluation instant for override expiry
    """
    for name, value in (
        ("paid_seats", paid_seats),
        ("active_members", active_members),
        ("pending_invitations", pending_invitations),
        ("pending_removals", pending_removals),
    ):
        if value < 0:
            raise ValueError(f"{name} must not be negative, got {value}")

    has_paid_plan = billing_type is not None and paid_seats > 0

    if has_paid_plan:
        max_seats = max(free_tier_seats, paid_seats)
    else:
        max_seats = free_tier_seats

    override_active = is_override_active(override_seats, override_expires_at, now)
    if override_active:
        max_seats = max(free_tier_seats, override_seats)

    current_seats = active_members + pending_invitations
    available_seats = max(0, max_seats - current_seats)

    return SeatSnapshot(
        free_tier_seats=free_tier_seats,
        paid_seats=paid_seats if has_paid_plan else 0,
        max_seats=max_seats,
        current_seats=current_seats,
        active_members=active_members,
        pending_invitations=pending_invitations,
        pending_removals=pending_removals,
        available_seats=available_seats,
        plan=billing_type if has_paid_plan else FREE_PLAN,
        required_paid_seats=required_paid_seats(current_seats),
        utilization_percentage=utilization_percentage(current_seats, max_seats),
        seat_status=seat_status(current_seats, max_seats),
        override_active=override_active,
    )


def check_invitation_capacity(snapshot: SeatSnapshot, new_invitations: int = 1) -> InvitationCapacity:
    """Check whether ``new_invitations`` more invitations fit under the ceiling"""
    if new_invitations < 1:
        raise ValueError("new_invitations must be at least 1")

    seats_after_invite = snapshot.current_seats + new_invitations
    can_invite = seats_after_invite <= snapshot.max_seats

    reason = None
    if not can_invite:
        if snapshot.available_seats <= 0:
            reason = "No available seats. Upgrade required to invite more employees."
        else:
            reason = (
                f"Only {snapshot.available_seats} seat{'s' if snapshot.available_seats > 1 else ''} "
                f"available. Cannot invite {new_invitations} employees."
            )

    return InvitationCapacity(
        can_invite=can_invite,
        available_seats=snapshot.available_seats,
        seats_after_invite=seats_after_invite,
        reason=reason,
    )

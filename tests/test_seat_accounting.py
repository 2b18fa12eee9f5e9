# tests/test_seat_accounting.py
"""
Seat accounting: graduated pricing, overrides, utilization
"""
import pytest
from datetime import timedelta

from leavebilling.billing.seat_accounting import (
    check_invitation_capacity,
    compute_seat_snapshot,
    required_paid_seats,
    seat_status,
)
from leavebilling.core.constants import SeatStatus
from tests.conftest import NOW


class TestFreeTier:
    """Organizations without a paid subscription"""

    @pytest.mark.parametrize("active,invitations", [(0, 0), (2, 0), (3, 0), (5, 4), (40, 10)])
    def test_max_seats_is_free_tier_without_subscription(self, active, invitations):
        snapshot = compute_seat_snapshot(paid_seats=0, active_members=active, pending_invitations=invitations)

        assert snapshot.max_seats == 3
        assert snapshot.plan == "free"
        assert snapshot.paid_seats == 0

    def test_two_members_no_subscription(self):
        snapshot = compute_seat_snapshot(paid_seats=0, active_members=2, pending_invitations=0)

        assert snapshot.max_seats == 3
        assert snapshot.current_seats == 2
        assert snapshot.available_seats == 1
        assert snapshot.plan == "free"

    def test_empty_organization(self):
        snapshot = compute_seat_snapshot(paid_seats=0, active_members=0, pending_invitations=0)

        assert snapshot.current_seats == 0
        assert snapshot.available_seats == snapshot.max_seats
        assert snapshot.seat_status == SeatStatus.SAFE

    def test_zero_seat_subscription_is_free_plan(self):
        snapshot = compute_seat_snapshot(
            paid_seats=0, active_members=1, pending_invitations=0, billing_type="usage_based"
        )

        assert snapshot.plan == "free"
        assert snapshot.max_seats == 3


class TestGraduatedPricing:
    """Paid plans pay for every seat, free seats are not added on top"""

    @pytest.mark.parametrize("paid", [4, 5, 10, 250])
    def test_max_seats_equals_paid_seats(self, paid):
        snapshot = compute_seat_snapshot(
            paid_seats=paid, active_members=1, pending_invitations=0, billing_type="quantity_based"
        )

        assert snapshot.max_seats == paid
        assert snapshot.plan == "quantity_based"

    def test_subscription_with_ten_seats(self):
        snapshot = compute_seat_snapshot(
            paid_seats=10, active_members=8, pending_invitations=1, billing_type="usage_based"
        )

        assert snapshot.max_seats == 10
        assert snapshot.current_seats == 9
        assert snapshot.available_seats == 1

    def test_small_paid_plan_keeps_free_floor(self):
        snapshot = compute_seat_snapshot(
            paid_seats=2, active_members=0, pending_invitations=0, billing_type="usage_based"
        )

        assert snapshot.max_seats == 3
        assert snapshot.paid_seats == 2

    @pytest.mark.parametrize("demand,expected", [(0, 0), (3, 0), (4, 4), (12, 12)])
    def test_required_paid_seats(self, demand, expected):
        assert required_paid_seats(demand) == expected


class TestAvailableSeats:

    @pytest.mark.parametrize("paid,active,invitations", [
        (10, 10, 0),
        (10, 12, 3),
        (0, 7, 0),
        (5, 0, 5),
    ])
    def test_available_never_negative(self, paid, active, invitations):
        snapshot = compute_seat_snapshot(
            paid_seats=paid, active_members=active, pending_invitations=invitations, billing_type="usage_based"
        )

        assert snapshot.available_seats == max(0, snapshot.max_seats - snapshot.current_seats)
        assert snapshot.available_seats >= 0

    def test_exactly_at_capacity(self):
        snapshot = compute_seat_snapshot(
            paid_seats=6, active_members=4, pending_invitations=2, billing_type="usage_based"
        )

        assert snapshot.available_seats == 0
        assert snapshot.seat_status == SeatStatus.FULL
        assert not snapshot.can_add_more

    def test_pending_removals_still_hold_seats(self):
        snapshot = compute_seat_snapshot(
            paid_seats=5, active_members=5, pending_invitations=0, pending_removals=2, billing_type="usage_based"
        )

        assert snapshot.current_seats == 5
        assert snapshot.pending_removals == 2
        assert snapshot.available_seats == 0

    def test_negative_counts_rejected(self):
        with pytest.raises(ValueError):
            compute_seat_snapshot(paid_seats=0, active_members=-1, pending_invitations=0)


class TestBillingOverride:

    def test_unexpired_override_sets_max_seats(self):
        snapshot = compute_seat_snapshot(
            paid_seats=10,
            active_members=3,
            pending_invitations=0,
            override_seats=25,
            override_expires_at=NOW + timedelta(days=30),
            billing_type="quantity_based",
            now=NOW,
        )

        assert snapshot.max_seats == 25
        assert snapshot.paid_seats == 10
        assert snapshot.override_active

    def test_override_without_expiry_applies(self):
        snapshot = compute_seat_snapshot(
            paid_seats=0, active_members=1, pending_invitations=0, override_seats=8, now=NOW
        )

        assert snapshot.max_seats == 8

    def test_override_below_free_tier_uses_floor(self):
        snapshot = compute_seat_snapshot(
            paid_seats=10,
            active_members=1,
            pending_invitations=0,
            override_seats=1,
            billing_type="usage_based",
            now=NOW,
        )

        assert snapshot.max_seats == 3

    def test_expired_override_ignored(self):
        snapshot = compute_seat_snapshot(
            paid_seats=10,
            active_members=1,
            pending_invitations=0,
            override_seats=50,
            override_expires_at=NOW - timedelta(seconds=1),
            billing_type="usage_based",
            now=NOW,
        )

        assert snapshot.max_seats == 10
        assert not snapshot.override_active

    def test_naive_expiry_treated_as_utc(self):
        snapshot = compute_seat_snapshot(
            paid_seats=0,
            active_members=0,
            pending_invitations=0,
            override_seats=9,
            override_expires_at=(NOW + timedelta(hours=1)).replace(tzinfo=None),
            now=NOW,
        )

        assert snapshot.override_active


class TestSeatStatus:

    @pytest.mark.parametrize("current,maximum,expected", [
        (0, 10, SeatStatus.SAFE),
        (7, 10, SeatStatus.SAFE),
        (8, 10, SeatStatus.WARNING),
        (10, 10, SeatStatus.FULL),
        (11, 10, SeatStatus.OVER),
    ])
    def test_seat_status(self, current, maximum, expected):
        assert seat_status(current, maximum) == expected

    def test_to_dict_includes_derived_fields(self):
        data = compute_seat_snapshot(paid_seats=0, active_members=2, pending_invitations=0).to_dict()

        assert data["seat_status"] == "safe"
        assert data["utilization_percentage"] == 67
        assert data["can_add_more"] is True


class TestInvitationCapacity:

    def test_invitation_fits(self):
        snapshot = compute_seat_snapshot(paid_seats=0, active_members=1, pending_invitations=0)
        capacity = check_invitation_capacity(snapshot, 2)

        assert capacity.can_invite
        assert capacity.seats_after_invite == 3
        assert capacity.reason is None

    def test_no_seats_left(self):
        snapshot = compute_seat_snapshot(paid_seats=0, active_members=3, pending_invitations=0)
        capacity = check_invitation_capacity(snapshot)

        assert not capacity.can_invite
        assert "Upgrade required" in capacity.reason

    def test_partial_capacity(self):
        snapshot = compute_seat_snapshot(paid_seats=0, active_members=1, pending_invitations=0)
        capacity = check_invitation_capacity(snapshot, 5)

        assert not capacity.can_invite
        assert capacity.reason == "Only 2 seats available. Cannot invite 5 employees."

# tests/test_reconciler.py
from datetime import timedelta

from leavebilling.billing.identifiers import ProductId, SubscriptionId, VariantId
from leavebilling.billing.reconciler import (
    SubscriptionSnapshot,
    check_quantity,
    reconcile,
)
from tests.conftest import NOW, provider_snapshot


def make_snapshot(status="active", quantity=5, renews_in=30, updated_at=NOW):
    return SubscriptionSnapshot(
        subscription_id=SubscriptionId(5001),
        status=status,
        quantity=quantity,
        product_id=ProductId(200),
        variant_id=VariantId(201),
        renews_at=NOW + timedelta(days=renews_in),
        ends_at=None,
        trial_ends_at=None,
        updated_at=updated_at,
    )


class TestReconcile:

    def test_later_remote_wins_in_full(self):
        local = make_snapshot(status="active", renews_in=30, updated_at=NOW)
        remote = make_snapshot(status="past_due", renews_in=60, updated_at=NOW + timedelta(minutes=1))

        result = reconcile(local, remote)

        assert result.source == "provider"
        assert result.snapshot is remote
        assert result.snapshot.renews_at == NOW + timedelta(days=60)

    def test_later_local_wins(self):
        local = make_snapshot(status="cancelled", updated_at=NOW + timedelta(hours=1))
        remote = make_snapshot(status="active", updated_at=NOW)

        result = reconcile(local, remote)

        assert result.source == "local"
        assert result.snapshot.status == "cancelled"

    def test_tie_prefers_local(self):
        local = make_snapshot(quantity=5, updated_at=NOW)
        remote = make_snapshot(quantity=7, updated_at=NOW)

        result = reconcile(local, remote)

        assert result.source == "local"
        assert result.snapshot.quantity == 5

    def test_missing_remote(self):
        local = make_snapshot()

        assert reconcile(local, None).source == "local"

    def test_remote_without_timestamp_loses(self):
        local = make_snapshot()
        remote = make_snapshot(updated_at=None)

        assert reconcile(local, remote).source == "local"

    def test_naive_local_timestamp(self):
        local = make_snapshot(updated_at=NOW.replace(tzinfo=None))
        remote = make_snapshot(updated_at=NOW + timedelta(seconds=1))

        assert reconcile(local, remote).source == "provider"

    def test_from_provider(self):
        remote = provider_snapshot(quantity=11, updated_at=NOW)
        snapshot = SubscriptionSnapshot.from_provider(remote)

        assert snapshot.quantity == 11
        assert snapshot.subscription_id == SubscriptionId("5001")
        assert snapshot.to_dict()["variant_id"] == 201


class TestQuantityCheck:

    def test_matching_quantity(self):
        check = check_quantity(10, 10)

        assert check.matches
        assert check.difference == 0

    def test_provider_bills_more(self):
        check = check_quantity(8, 10)

        assert not check.matches
        assert check.difference == 2

"""
Tests for the commitment lifecycle (tallyman.services.lifecycle).

Covers:
- Line item add/change/remove with clamping
- Terminal stages: release and all-or-nothing fulfillment
- Approval gating
- Purchase order receipts
"""

from unittest.mock import patch

import pytest
from django.test import override_settings

from tallyman import ledger
from tallyman.exceptions import InvalidInput, TallyError, TransitionRejected
from tallyman.models import Commitment, CommitmentStatus, StockLevel
from tallyman.protocols import ApprovalDecision, LineItem, SourceRef
from tallyman.services.lifecycle import CommitmentLifecycleCoordinator, coordinator
from tallyman.tests.backends import DictInventory, FixedApproval

DICT_INVENTORY = {"INVENTORY_BACKEND": "tallyman.tests.backends.DictInventory"}
FIXED_APPROVAL = {"APPROVAL_BACKEND": "tallyman.tests.backends.FixedApproval"}


# ═══════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════


@pytest.fixture
def stock(db):
    StockLevel.objects.create(product_id="SKU-A", on_hand=10)
    StockLevel.objects.create(product_id="SKU-B", on_hand=10)


@pytest.fixture
def deal():
    return SourceRef("deal", "D-1", stage="proposal")


@pytest.fixture
def order():
    return SourceRef("sales_order", "SO-1", stage="draft")


@pytest.fixture
def dict_inventory(db):
    DictInventory.stock = {"SKU-A": 10, "SKU-B": 10}
    DictInventory.failing = set()
    with override_settings(TALLYMAN=DICT_INVENTORY):
        yield DictInventory


@pytest.fixture
def approval():
    FixedApproval.decision = ApprovalDecision.APPROVED
    FixedApproval.calls = []
    with override_settings(TALLYMAN=FIXED_APPROVAL):
        yield FixedApproval


def on_hand(product_id):
    return StockLevel.objects.get(product_id=product_id).on_hand


# ═══════════════════════════════════════════════════════════════════
# Line items
# ═══════════════════════════════════════════════════════════════════


class TestLineItemAdded:
    def test_reserves(self, stock, deal):
        result = coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 4))

        assert result.accepted
        assert result.quantity == 4
        assert result.commitment.line_id == "L1"
        assert ledger.committed("SKU-A") == 4

    def test_clamps_to_available(self, stock, deal):
        ledger.reserve("SKU-A", "sales_order", "SO-9", 7)

        result = coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 5))

        assert result.clamped
        assert result.requested == 5
        assert result.quantity == 3
        assert result.message == "Only 3 units available"
        assert result.commitment.quantity == 3

    def test_nothing_available(self, stock, deal):
        ledger.reserve("SKU-A", "sales_order", "SO-9", 10)

        result = coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 2))

        assert result.quantity == 0
        assert result.commitment is None
        assert not Commitment.objects.for_source("deal", "D-1").exists()

    def test_zero_quantity_commits_nothing(self, stock, deal):
        result = coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 0))

        assert result.accepted
        assert result.commitment is None
        assert ledger.committed("SKU-A") == 0

    def test_existing_line_is_changed(self, stock, deal):
        coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 4))

        coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 6))

        assert Commitment.objects.active().count() == 1
        assert ledger.committed("SKU-A") == 6

    def test_closed_source(self, stock):
        won = SourceRef("deal", "D-1", stage="closed_won")

        with pytest.raises(TallyError) as exc:
            coordinator.on_line_item_added(won, LineItem("L1", "SKU-A", 1))

        assert exc.value.code == "SOURCE_CLOSED"

    def test_purchase_order_rejected(self, stock):
        po = SourceRef("purchase_order", "PO-1", stage="draft")

        with pytest.raises(InvalidInput):
            coordinator.on_line_item_added(po, LineItem("L1", "SKU-A", 1))

    def test_retries_when_availability_shrinks(self, stock, deal):
        """A concurrent reservation between refusal and retry clamps again."""
        real_reserve = ledger.reserve
        calls = []

        def racing_reserve(*args, **kwargs):
            calls.append(args[3])
            if len(calls) == 2:
                real_reserve("SKU-A", "sales_order", "SO-9", 5)
            return real_reserve(*args, **kwargs)

        ledger.reserve("SKU-A", "sales_order", "SO-8", 2)
        with patch("tallyman.services.lifecycle.Ledger.reserve", side_effect=racing_reserve):
            result = coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 12))

        assert calls == [12, 8, 3]
        assert result.quantity == 3


class TestLineItemChanged:
    def test_increase_within_available(self, stock, deal):
        coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 4))

        result = coordinator.on_line_item_changed(deal, LineItem("L1", "SKU-A", 9))

        assert result.accepted
        assert ledger.committed("SKU-A") == 9

    def test_increase_clamped_to_ceiling(self, stock, deal):
        ledger.reserve("SKU-A", "sales_order", "SO-9", 4)
        coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 5))

        result = coordinator.on_line_item_changed(deal, LineItem("L1", "SKU-A", 8))

        assert result.clamped
        assert result.quantity == 6
        assert result.commitment.quantity == 6

    def test_zero_releases(self, stock, deal):
        coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 4))

        result = coordinator.on_line_item_changed(deal, LineItem("L1", "SKU-A", 0))

        assert result.quantity == 0
        released = Commitment.objects.get(line_id="L1")
        assert released.status == CommitmentStatus.RELEASED
        assert released.metadata["close_reason"] == "quantity_zero"

    def test_product_swap(self, stock, deal):
        coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 4))

        result = coordinator.on_line_item_changed(deal, LineItem("L1", "SKU-B", 3))

        assert result.commitment.product_id == "SKU-B"
        assert ledger.committed("SKU-A") == 0
        assert ledger.committed("SKU-B") == 3

    def test_line_without_commitment_reserves(self, stock, deal):
        result = coordinator.on_line_item_changed(deal, LineItem("L1", "SKU-A", 2))

        assert result.commitment is not None
        assert ledger.committed("SKU-A") == 2

    def test_stock_cut_below_held(self, stock, deal):
        """Holding more than on-hand now: clamp down to what remains."""
        coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 8))
        StockLevel.objects.filter(product_id="SKU-A").update(on_hand=5)

        result = coordinator.on_line_item_changed(deal, LineItem("L1", "SKU-A", 9))

        assert result.quantity == 5
        assert ledger.committed("SKU-A") == 5

    def test_stock_gone_releases(self, stock, deal):
        coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 8))
        StockLevel.objects.filter(product_id="SKU-A").update(on_hand=0)

        result = coordinator.on_line_item_changed(deal, LineItem("L1", "SKU-A", 9))

        assert result.quantity == 0
        assert ledger.committed("SKU-A") == 0

    def test_negative_quantity(self, stock, deal):
        with pytest.raises(InvalidInput):
            coordinator.on_line_item_changed(deal, LineItem("L1", "SKU-A", -1))


class TestLineItemRemoved:
    def test_releases(self, stock, deal):
        coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 4))

        coordinator.on_line_item_removed(deal, LineItem("L1", "SKU-A"))

        assert ledger.committed("SKU-A") == 0
        assert Commitment.objects.get(line_id="L1").metadata["close_reason"] == "line_removed"

    def test_unknown_line_is_noop(self, stock, deal):
        result = coordinator.on_line_item_removed(deal, LineItem("L9", "SKU-A"))

        assert result.quantity == 0


# ═══════════════════════════════════════════════════════════════════
# Stage transitions
# ═══════════════════════════════════════════════════════════════════


@pytest.fixture
def committed_deal(stock, deal):
    coordinator.on_line_item_added(deal, LineItem("L1", "SKU-A", 4))
    coordinator.on_line_item_added(deal, LineItem("L2", "SKU-B", 5))
    return deal


class TestStageChanged:
    def test_open_stage_is_noop(self, committed_deal):
        result = coordinator.on_source_stage_changed(committed_deal, "proposal", "negotiation")

        assert result.action == "none"
        assert ledger.committed("SKU-A") == 4

    def test_lost_releases_all(self, committed_deal):
        result = coordinator.on_source_stage_changed(committed_deal, "negotiation", "closed_lost")

        assert result.action == "released"
        assert len(result.commitments) == 2
        assert ledger.committed("SKU-A") == ledger.committed("SKU-B") == 0
        assert on_hand("SKU-A") == on_hand("SKU-B") == 10

    def test_won_fulfills_all(self, committed_deal):
        result = coordinator.on_source_stage_changed(committed_deal, "negotiation", "closed_won")

        assert result.action == "fulfilled"
        assert result.quantity == 9
        assert on_hand("SKU-A") == 6
        assert on_hand("SKU-B") == 5
        assert not Commitment.objects.active().exists()

    def test_sales_order_cancel(self, stock, order):
        coordinator.on_line_item_added(order, LineItem("L1", "SKU-A", 3))

        result = coordinator.on_source_stage_changed(order, "confirmed", "cancelled")

        assert result.action == "released"
        assert on_hand("SKU-A") == 10

    def test_sales_order_delivered(self, stock, order):
        coordinator.on_line_item_added(order, LineItem("L1", "SKU-A", 3))

        coordinator.on_source_stage_changed(order, "confirmed", "delivered")

        assert on_hand("SKU-A") == 7

    def test_fulfillment_all_or_nothing(self, committed_deal):
        """SKU-A succeeds first, SKU-B fails: nothing is deducted."""
        StockLevel.objects.filter(product_id="SKU-B").update(on_hand=2)

        with pytest.raises(TransitionRejected) as exc:
            coordinator.on_source_stage_changed(committed_deal, "negotiation", "closed_won")

        assert exc.value.code == "FULFILLMENT_FAILED"
        assert exc.value.details["stage"] == "closed_won"
        assert on_hand("SKU-A") == 10
        assert on_hand("SKU-B") == 2
        assert Commitment.objects.active().count() == 2

    def test_fulfillment_compensates_external_inventory(self, committed_deal, dict_inventory):
        """Stock outside the database is put back explicitly."""
        dict_inventory.failing = {"SKU-B"}
        saved = {}

        with pytest.raises(TransitionRejected) as exc:
            coordinator.on_source_stage_changed(
                committed_deal,
                "negotiation",
                "closed_won",
                commit=lambda stage: saved.update(stage=stage),
            )

        assert exc.value.code == "FULFILLMENT_FAILED"
        assert dict_inventory.stock == {"SKU-A": 10, "SKU-B": 10}
        assert saved == {}
        assert Commitment.objects.active().count() == 2

    def test_commit_callback_receives_stage(self, committed_deal):
        saved = {}

        coordinator.on_source_stage_changed(
            committed_deal,
            "negotiation",
            "closed_won",
            commit=lambda stage: saved.update(stage=stage),
        )

        assert saved == {"stage": "closed_won"}

    def test_commit_callback_failure_undoes_fulfillment(self, committed_deal, dict_inventory):
        def failing_commit(stage):
            raise RuntimeError("deal row locked")

        with pytest.raises(RuntimeError):
            coordinator.on_source_stage_changed(
                committed_deal, "negotiation", "closed_won", commit=failing_commit
            )

        assert dict_inventory.stock == {"SKU-A": 10, "SKU-B": 10}
        assert Commitment.objects.active().count() == 2

    def test_same_stage_is_noop(self, committed_deal):
        result = coordinator.on_source_stage_changed(committed_deal, "closed_won", "closed_won")

        assert result.action == "none"
        assert on_hand("SKU-A") == 10


class TestApproval:
    def test_pending_blocks(self, committed_deal, approval):
        approval.decision = ApprovalDecision.PENDING

        with pytest.raises(TransitionRejected) as exc:
            coordinator.on_source_stage_changed(committed_deal, "negotiation", "closed_won")

        assert exc.value.code == "APPROVAL_PENDING"
        assert approval.calls == [("deal:D-1", "closed_won")]
        assert on_hand("SKU-A") == 10
        assert Commitment.objects.active().count() == 2

    def test_rejected_releases(self, committed_deal, approval):
        approval.decision = ApprovalDecision.REJECTED
        saved = {}

        result = coordinator.on_source_stage_changed(
            committed_deal,
            "negotiation",
            "closed_won",
            commit=lambda stage: saved.update(stage=stage),
        )

        assert not result.approved
        assert result.action == "released"
        assert result.stage == "closed_lost"
        assert saved == {"stage": "closed_lost"}
        assert on_hand("SKU-A") == 10
        assert ledger.committed("SKU-A") == 0

    def test_release_stages_skip_approval(self, committed_deal, approval):
        approval.decision = ApprovalDecision.PENDING

        result = coordinator.on_source_stage_changed(committed_deal, "negotiation", "closed_lost")

        assert result.action == "released"
        assert approval.calls == []

    def test_explicit_backend(self, committed_deal):
        class Reject:
            def check(self, source, target_stage):
                return "rejected"

        result = CommitmentLifecycleCoordinator(approval_backend=Reject()).on_source_stage_changed(
            committed_deal, "negotiation", "closed_won"
        )

        assert result.stage == "closed_lost"


# ═══════════════════════════════════════════════════════════════════
# Purchase orders
# ═══════════════════════════════════════════════════════════════════


@pytest.fixture
def purchase_order():
    return SourceRef("purchase_order", "PO-1", stage="ordered")


class TestPurchaseReceived:
    def test_receive_adds_stock(self, stock, purchase_order):
        result = coordinator.on_purchase_received(
            purchase_order,
            [LineItem("L1", "SKU-A", 5), LineItem("L2", "SKU-C", 2), LineItem("L3", "SKU-B", 0)],
            stage="received",
        )

        assert result.stage == "received"
        assert result.quantity == 7
        assert [line.product_id for line in result.lines] == ["SKU-A", "SKU-C"]
        assert on_hand("SKU-A") == 15
        assert on_hand("SKU-C") == 2

    def test_not_a_receipt_stage(self, stock, purchase_order):
        with pytest.raises(InvalidInput) as exc:
            coordinator.on_purchase_received(
                purchase_order, [LineItem("L1", "SKU-A", 5)], stage="shipped"
            )

        assert exc.value.field == "stage"

    def test_deal_rejected(self, stock, deal):
        with pytest.raises(InvalidInput):
            coordinator.on_purchase_received(deal, [LineItem("L1", "SKU-A", 5)], stage="received")

    def test_rejected_adds_nothing(self, stock, purchase_order, approval):
        approval.decision = ApprovalDecision.REJECTED

        result = coordinator.on_purchase_received(
            purchase_order, [LineItem("L1", "SKU-A", 5)], stage="received"
        )

        assert result.stage == "cancelled"
        assert result.lines == []
        assert on_hand("SKU-A") == 10

    def test_pending_blocks(self, stock, purchase_order, approval):
        approval.decision = ApprovalDecision.PENDING

        with pytest.raises(TransitionRejected) as exc:
            coordinator.on_purchase_received(
                purchase_order, [LineItem("L1", "SKU-A", 5)], stage="received"
            )

        assert exc.value.code == "APPROVAL_PENDING"
        assert on_hand("SKU-A") == 10

    def test_failed_line_reverts_others(self, purchase_order, dict_inventory):
        real_receive = ledger.receive

        def flaky_receive(product_id, quantity, reference=""):
            if product_id == "SKU-B":
                raise TallyError("WAREHOUSE_OFFLINE", product_id=product_id)
            return real_receive(product_id, quantity, reference=reference)

        with patch("tallyman.services.lifecycle.Ledger.receive", side_effect=flaky_receive):
            with pytest.raises(TransitionRejected) as exc:
                coordinator.on_purchase_received(
                    purchase_order,
                    [LineItem("L1", "SKU-A", 5), LineItem("L2", "SKU-B", 5)],
                    stage="received",
                )

        assert exc.value.code == "RECEIPT_FAILED"
        assert dict_inventory.stock == {"SKU-A": 10, "SKU-B": 10}

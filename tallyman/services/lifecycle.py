"""
Commitment lifecycle — from line item edits and stage changes to ledger calls.

Deals and sales orders are owned elsewhere. They tell the coordinator
when a line item is added, changed or removed, and when the source moves
to another stage; the coordinator keeps the ledger in step:

    line added / changed / removed   →  reserve / adjust / release
    terminal stage without delivery  →  release every commitment
    terminal stage with delivery     →  fulfill every commitment (all or none)

Over-requests are not errors here: the edit is rejected and the quantity
clamped to what is available, like the "Only N units available" warning
users see while editing.

Usage:
    from tallyman.protocols import LineItem, SourceRef
    from tallyman.services.lifecycle import coordinator

    deal = SourceRef("deal", "D-17", stage="proposal")
    result = coordinator.on_line_item_added(deal, LineItem("L1", "SKU-42", 10))
    if result.clamped:
        line.quantity = result.quantity

    coordinator.on_source_stage_changed(
        deal, "negotiation", "closed_won", commit=save_stage,
    )
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from django.db import transaction

from tallyman.conf import (
    get_approval_backend,
    get_inventory_backend,
    get_rejection_stage,
    get_stages,
)
from tallyman.exceptions import (
    InsufficientStock,
    InvalidInput,
    TallyError,
    TransitionRejected,
)
from tallyman.models import COMMITTING_SOURCES, Commitment, SourceType
from tallyman.protocols.approval import ApprovalDecision
from tallyman.protocols.source import LineItem, SourceRef
from tallyman.results import LineItemResult, ReceiptLine, ReceiptResult, TransitionResult
from tallyman.service import Ledger, clean_quantity

logger = logging.getLogger(__name__)

# Availability can shrink between a refusal and the clamped retry.
_MAX_CLAMP_ATTEMPTS = 3


class CommitmentLifecycleCoordinator:
    """
    Translates source events into ledger operations.

    The approval backend defaults to the configured one; pass one
    explicitly to bind a coordinator to a specific approval workflow.
    """

    def __init__(self, approval_backend=None):
        self._approval_backend = approval_backend

    @property
    def approval(self):
        return self._approval_backend or get_approval_backend()

    @property
    def inventory(self):
        return get_inventory_backend()

    # ══════════════════════════════════════════════════════════════
    # LINE ITEMS
    # ══════════════════════════════════════════════════════════════

    def on_line_item_added(self, source: SourceRef, item: LineItem) -> LineItemResult:
        """Reserve stock for a new line, clamping on shortage."""
        self._check_open(source)
        requested = clean_quantity(item.quantity, allow_zero=True)

        existing = Ledger.commitment_for_line(
            source.source_type, source.source_id, item.line_id
        )
        if existing is not None:
            return self.on_line_item_changed(source, item)

        if requested == 0:
            return self._result(item, 0, 0)
        return self._reserve_clamped(source, item, requested)

    def on_line_item_changed(self, source: SourceRef, item: LineItem) -> LineItemResult:
        """Follow a quantity or product change of an existing line."""
        self._check_open(source)
        requested = clean_quantity(item.quantity, allow_zero=True)

        existing = Ledger.commitment_for_line(
            source.source_type, source.source_id, item.line_id
        )
        if existing is None:
            if requested == 0:
                return self._result(item, 0, 0)
            return self._reserve_clamped(source, item, requested)

        if existing.product_id != str(item.product_id):
            Ledger.release(existing, reason="product_changed")
            if requested == 0:
                return self._result(item, 0, 0)
            return self._reserve_clamped(source, item, requested)

        # A zero line destroys its commitment
        if requested == 0:
            Ledger.release(existing, reason="quantity_zero")
            return self._result(item, 0, 0)

        return self._adjust_clamped(existing, item, requested)

    def on_line_item_removed(self, source: SourceRef, item: LineItem) -> LineItemResult:
        """Release the line's commitment, if it has one."""
        existing = Ledger.commitment_for_line(
            source.source_type, source.source_id, item.line_id
        )
        if existing is not None:
            Ledger.release(existing, reason="line_removed")
        return self._result(item, 0, 0)

    def _reserve_clamped(
        self, source: SourceRef, item: LineItem, requested: int
    ) -> LineItemResult:
        quantity = requested
        for _attempt in range(_MAX_CLAMP_ATTEMPTS):
            try:
                commitment = Ledger.reserve(
                    item.product_id,
                    source.source_type,
                    source.source_id,
                    quantity,
                    line_id=item.line_id,
                )
            except InsufficientStock as e:
                quantity = min(quantity, e.available)
                if quantity <= 0:
                    break
                continue
            return self._result(item, requested, quantity, commitment)

        return self._result(item, requested, 0)

    def _adjust_clamped(
        self, existing: Commitment, item: LineItem, requested: int
    ) -> LineItemResult:
        quantity = requested
        for _attempt in range(_MAX_CLAMP_ATTEMPTS):
            try:
                commitment = Ledger.adjust(existing, quantity)
            except InsufficientStock as e:
                quantity = min(quantity, e.available)
                if quantity <= 0:
                    break
                continue
            return self._result(item, requested, quantity, commitment)

        # Stock was cut below what this line already held
        Ledger.release(existing, reason="out_of_stock")
        return self._result(item, requested, 0)

    def _result(
        self,
        item: LineItem,
        requested: int,
        quantity: int,
        commitment: Commitment | None = None,
    ) -> LineItemResult:
        result = LineItemResult(
            line_id=str(item.line_id),
            product_id=str(item.product_id),
            requested=requested,
            quantity=quantity,
            commitment=commitment,
        )
        if result.clamped:
            result.message = f"Only {quantity} units available"
            logger.warning(
                f"Line {item.line_id}: {requested} of {item.product_id} requested, "
                f"clamped to {quantity}",
                extra={
                    "line_id": str(item.line_id),
                    "product_id": str(item.product_id),
                    "requested": requested,
                    "quantity": quantity,
                },
            )
        return result

    def _check_open(self, source: SourceRef) -> None:
        if str(source.source_type) not in COMMITTING_SOURCES:
            raise InvalidInput("source_type", source.source_type)

        if source.stage and self._is_terminal(source.source_type, source.stage):
            raise TallyError("SOURCE_CLOSED", source=str(source), stage=source.stage)

    def _is_terminal(self, source_type: str, stage: str) -> bool:
        return stage in get_stages("FULFILLMENT_STAGES", source_type) or stage in get_stages(
            "RELEASE_STAGES", source_type
        )

    # ══════════════════════════════════════════════════════════════
    # STAGE TRANSITIONS
    # ══════════════════════════════════════════════════════════════

    def on_source_stage_changed(
        self,
        source: SourceRef,
        old_stage: str | None,
        new_stage: str,
        commit: Callable[[str], None] | None = None,
    ) -> TransitionResult:
        """
        Apply the ledger side of a stage change.

        Args:
            source: The deal or sales order
            old_stage: Stage the source is leaving
            new_stage: Stage requested
            commit: Optional callable persisting the source's stage. Called
                with the effective stage inside the same transaction, after
                the ledger work succeeded.

        Returns:
            TransitionResult

        Raises:
            TransitionRejected: approval pending, or a commitment could not
                be fulfilled/released. Nothing was changed.
        """
        source_type = str(source.source_type)
        new_stage = str(new_stage)

        with transaction.atomic():
            if new_stage == old_stage:
                result = TransitionResult(source, old_stage, new_stage)
            elif new_stage in get_stages("FULFILLMENT_STAGES", source_type):
                result = self._fulfillment_transition(source, old_stage, new_stage)
            elif new_stage in get_stages("RELEASE_STAGES", source_type):
                released = self._release_all(source, new_stage, reason=new_stage)
                result = TransitionResult(
                    source, old_stage, new_stage, action="released", commitments=released
                )
            else:
                result = TransitionResult(source, old_stage, new_stage)

            self._commit_stage(commit, result)

        logger.info(
            f"{source}: {old_stage} → {result.stage} ({result.action}, "
            f"{len(result.commitments)} commitments)",
            extra={
                "source": str(source),
                "old_stage": old_stage,
                "stage": result.stage,
                "action": result.action,
                "approved": result.approved,
            },
        )
        return result

    def _fulfillment_transition(
        self, source: SourceRef, old_stage: str | None, new_stage: str
    ) -> TransitionResult:
        decision = ApprovalDecision(self.approval.check(source, new_stage))

        if decision == ApprovalDecision.PENDING:
            logger.warning(
                f"{source}: {new_stage} awaits stock approval",
                extra={"source": str(source), "stage": new_stage},
            )
            raise TransitionRejected(
                "APPROVAL_PENDING", source, new_stage, reason="awaiting stock approval"
            )

        if decision == ApprovalDecision.REJECTED:
            # Same as a cancellation for ledger purposes
            stage = get_rejection_stage(source.source_type)
            if not stage:
                raise TransitionRejected(
                    "APPROVAL_REJECTED", source, new_stage, reason="stock approval rejected"
                )
            released = self._release_all(source, stage, reason="approval_rejected")
            return TransitionResult(
                source,
                old_stage,
                stage,
                action="released",
                approved=False,
                commitments=released,
            )

        fulfilled = self._fulfill_all(source, new_stage)
        return TransitionResult(
            source, old_stage, new_stage, action="fulfilled", commitments=fulfilled
        )

    def _ordered_commitments(self, source: SourceRef) -> list[Commitment]:
        # Sorted by product so concurrent transitions lock rows in the same order
        return list(
            Ledger.commitments_for(source.source_type, source.source_id).order_by(
                "product_id", "id"
            )
        )

    def _fulfill_all(self, source: SourceRef, stage: str) -> list[Commitment]:
        """Fulfill every active commitment of source, or none of them."""
        fulfilled: list[Commitment] = []

        with transaction.atomic():
            for commitment in self._ordered_commitments(source):
                try:
                    fulfilled.append(Ledger.fulfill(commitment))
                except Exception as e:
                    logger.error(
                        f"{source}: fulfilling commitment {commitment.pk} "
                        f"({commitment.quantity} of {commitment.product_id}) failed: {e}",
                        extra={
                            "source": str(source),
                            "commitment": commitment.pk,
                            "product_id": commitment.product_id,
                        },
                    )
                    self._compensate(fulfilled)
                    raise TransitionRejected(
                        "FULFILLMENT_FAILED", source, stage, reason=str(e)
                    ) from e

        return fulfilled

    def _release_all(self, source: SourceRef, stage: str, reason: str) -> list[Commitment]:
        released: list[Commitment] = []

        with transaction.atomic():
            for commitment in self._ordered_commitments(source):
                try:
                    released.append(Ledger.release(commitment, reason=reason))
                except TallyError as e:
                    raise TransitionRejected(
                        "RELEASE_FAILED", source, stage, reason=str(e)
                    ) from e

        return released

    def _compensate(self, fulfilled: list[Commitment]) -> None:
        """
        Put back stock already deducted for a failed fulfillment.

        The surrounding transaction rolls back database-backed inventories on
        its own; this covers inventories that live outside it.
        """
        for commitment in reversed(fulfilled):
            try:
                self.inventory.increment_on_hand(commitment.product_id, commitment.quantity)
            except Exception as e:
                logger.error(
                    f"Compensation failed for {commitment.quantity} of "
                    f"{commitment.product_id}: {e}",
                    extra={
                        "commitment": commitment.pk,
                        "product_id": commitment.product_id,
                        "quantity": commitment.quantity,
                    },
                )

    def _commit_stage(self, commit, result: TransitionResult) -> None:
        if commit is None:
            return
        try:
            commit(result.stage)
        except Exception:
            if result.action == "fulfilled":
                self._compensate(result.commitments)
            raise

    # ══════════════════════════════════════════════════════════════
    # PURCHASE ORDERS
    # ══════════════════════════════════════════════════════════════

    def on_purchase_received(
        self,
        source: SourceRef,
        items: Iterable[LineItem],
        stage: str | None = None,
        commit: Callable[[str], None] | None = None,
    ) -> ReceiptResult:
        """
        Add a received purchase order to stock, all lines or none.

        Gated by the approval backend. A rejected receipt adds nothing and
        moves the purchase order to its rejection stage.

        Raises:
            InvalidInput: not a purchase order, or not a receipt stage
            TransitionRejected: approval pending, or a line failed
        """
        if str(source.source_type) != SourceType.PURCHASE_ORDER.value:
            raise InvalidInput("source_type", source.source_type)

        receipt_stages = get_stages("RECEIPT_STAGES", source.source_type)
        stage = str(stage or source.stage or next(iter(sorted(receipt_stages)), ""))
        if stage not in receipt_stages:
            raise InvalidInput("stage", stage)

        lines = [
            (str(item.product_id), clean_quantity(item.quantity, allow_zero=True))
            for item in items
        ]

        decision = ApprovalDecision(self.approval.check(source, stage))
        if decision == ApprovalDecision.PENDING:
            raise TransitionRejected(
                "APPROVAL_PENDING", source, stage, reason="awaiting stock approval"
            )

        with transaction.atomic():
            if decision == ApprovalDecision.REJECTED:
                rejection_stage = get_rejection_stage(source.source_type)
                if not rejection_stage:
                    raise TransitionRejected(
                        "APPROVAL_REJECTED", source, stage, reason="stock approval rejected"
                    )
                result = ReceiptResult(source, rejection_stage)
            else:
                result = ReceiptResult(source, stage, self._receive_all(source, stage, lines))

            if commit is not None:
                try:
                    commit(result.stage)
                except Exception:
                    self._revert_receipt(result.lines)
                    raise

        logger.info(
            f"{source}: received {result.quantity} units on {len(result.lines)} lines",
            extra={"source": str(source), "stage": result.stage},
        )
        return result

    def _receive_all(self, source: SourceRef, stage: str, lines) -> list[ReceiptLine]:
        received: list[ReceiptLine] = []

        with transaction.atomic():
            for product_id, quantity in sorted(lines):
                if quantity == 0:
                    continue
                try:
                    on_hand = Ledger.receive(product_id, quantity, reference=str(source))
                except Exception as e:
                    logger.error(
                        f"{source}: receiving {quantity} of {product_id} failed: {e}",
                        extra={"source": str(source), "product_id": product_id},
                    )
                    self._revert_receipt(received)
                    raise TransitionRejected(
                        "RECEIPT_FAILED", source, stage, reason=str(e)
                    ) from e
                received.append(ReceiptLine(product_id, quantity, on_hand))

        return received

    def _revert_receipt(self, received: list[ReceiptLine]) -> None:
        for line in reversed(received):
            try:
                self.inventory.decrement_on_hand(line.product_id, line.quantity)
            except Exception as e:
                logger.error(
                    f"Receipt revert failed for {line.quantity} of {line.product_id}: {e}",
                    extra={"product_id": line.product_id, "quantity": line.quantity},
                )


coordinator = CommitmentLifecycleCoordinator()

"""
Tallyman Ledger — authoritative record of committed stock.

Every mutating call runs in a per-product critical section:
an in-process lock (bounded wait → LedgerBusy) plus SELECT FOR UPDATE on
the product's LedgerAccount row inside transaction.atomic(). Two
reservations on the same product therefore never both see the same spare
capacity; different products proceed in parallel.

Usage:
    from tallyman import ledger, InsufficientStock

    try:
        commitment = ledger.reserve("SKU-42", "deal", "D-17", 5, line_id="L1")
    except InsufficientStock as e:
        print(f"Only {e.available} left")

    ledger.adjust(commitment, 3)
    ledger.fulfill(commitment)      # on-hand -= 3, commitment closed
    ledger.current_available("SKU-42")
"""

import logging
import threading
from contextlib import contextmanager
from decimal import Decimal

from django.db import OperationalError, transaction
from django.utils import timezone

from tallyman.conf import get_inventory_backend, get_lock_timeout
from tallyman.exceptions import InsufficientStock, InvalidInput, LedgerBusy, TallyError
from tallyman.models import (
    COMMITTING_SOURCES,
    Commitment,
    CommitmentStatus,
    LedgerAccount,
    SourceType,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════
# PER-PRODUCT LOCKING
# ══════════════════════════════════════════════════════════════


class _ProductLocks:
    """Registry of one threading.Lock per product id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, product_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = self._locks[product_id] = threading.Lock()
            return lock


_product_locks = _ProductLocks()


@contextmanager
def product_lock(product_id: str):
    """
    Critical section for one product.

    Yields the locked LedgerAccount. The database work done inside is one
    transaction (a savepoint when nested in an outer atomic block).

    Raises:
        LedgerBusy: lock not acquired within TALLYMAN['LOCK_TIMEOUT'] seconds,
            or the database refused the row lock
    """
    lock = _product_locks.get(product_id)
    if not lock.acquire(timeout=max(get_lock_timeout(), 0)):
        logger.warning(
            f"Ledger busy for {product_id}",
            extra={"product_id": product_id},
        )
        raise LedgerBusy(product_id)

    try:
        with transaction.atomic():
            try:
                account = LedgerAccount.lock(product_id)
            except OperationalError as e:
                logger.warning(
                    f"Ledger row lock failed for {product_id}: {e}",
                    extra={"product_id": product_id},
                )
                raise LedgerBusy(product_id) from e
            yield account
    finally:
        lock.release()


# ══════════════════════════════════════════════════════════════
# INPUT CLEANING
# ══════════════════════════════════════════════════════════════


def _clean_id(value, field: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text or len(text) > 64:
        raise InvalidInput(field, value)
    return text


def clean_quantity(value, field: str = "quantity", allow_zero: bool = False) -> int:
    """Whole number of units; positive unless allow_zero."""
    if isinstance(value, bool):
        raise InvalidInput(field, value)
    if isinstance(value, int):
        number = value
    elif isinstance(value, (Decimal, str)):
        try:
            as_decimal = Decimal(str(value).strip())
        except ArithmeticError:
            raise InvalidInput(field, value) from None
        if not as_decimal.is_finite() or as_decimal != as_decimal.to_integral_value():
            raise InvalidInput(field, value)
        number = int(as_decimal)
    else:
        raise InvalidInput(field, value)

    if number < 0 or (number == 0 and not allow_zero):
        raise InvalidInput(field, value)
    return number


def _clean_source_type(value) -> str:
    if str(value) not in COMMITTING_SOURCES:
        raise InvalidInput("source_type", value)
    return SourceType(str(value)).value


def _send_on_commit(signal, commitment: Commitment, **extra) -> None:
    transaction.on_commit(
        lambda: signal.send(sender=Ledger, commitment=commitment, **extra)
    )


# ══════════════════════════════════════════════════════════════
# LEDGER
# ══════════════════════════════════════════════════════════════


class Ledger:
    """
    Reservation ledger API.

    Commitment arguments accept a Commitment instance or its primary key.
    """

    # ── Queries ──

    @classmethod
    def committed(cls, product_id: str) -> int:
        """Sum of active commitment quantities for a product."""
        return Commitment.objects.committed_total(str(product_id))

    @classmethod
    def current_available(cls, product_id: str) -> int:
        """on_hand − Σ active commitments (negative only if stock was cut under us)."""
        product_id = str(product_id)
        on_hand = get_inventory_backend().get_on_hand(product_id)
        return on_hand - cls.committed(product_id)

    @classmethod
    def commitments_for(cls, source_type: str, source_id: str):
        """Active commitments of one source."""
        return Commitment.objects.active().for_source(source_type, source_id)

    @classmethod
    def commitment_for_line(
        cls, source_type: str, source_id: str, line_id: str
    ) -> Commitment | None:
        """Active commitment of one line item, if any."""
        return (
            cls.commitments_for(source_type, source_id)
            .filter(line_id=str(line_id))
            .first()
        )

    # ── Mutations ──

    @classmethod
    def reserve(
        cls,
        product_id: str,
        source_type: str,
        source_id: str,
        quantity: int,
        line_id: str = "",
        metadata: dict | None = None,
    ) -> Commitment:
        """
        Commit quantity of a product to a source line.

        Availability is re-checked under the product lock; on failure
        nothing is written.

        Raises:
            InvalidInput: bad product, source or quantity
            InsufficientStock: quantity > available right now
            LedgerBusy: product lock contended
        """
        product_id = _clean_id(product_id, "product_id")
        source_type = _clean_source_type(source_type)
        source_id = _clean_id(source_id, "source_id")
        quantity = clean_quantity(quantity)
        line_id = str(line_id or "")

        with product_lock(product_id) as account:
            available = cls.current_available(product_id)
            if quantity > available:
                logger.info(
                    f"Reserve refused: {quantity} of {product_id} for "
                    f"{source_type}:{source_id} (available {available})",
                    extra={
                        "product_id": product_id,
                        "requested": quantity,
                        "available": available,
                    },
                )
                raise InsufficientStock(product_id, quantity, max(available, 0))

            commitment = Commitment.objects.create(
                product_id=product_id,
                quantity=quantity,
                source_type=source_type,
                source_id=source_id,
                line_id=line_id,
                metadata=metadata or {},
            )
            account.bump()

            from tallyman.signals import commitment_reserved

            _send_on_commit(commitment_reserved, commitment)

        logger.info(
            f"Reserved {quantity} of {product_id} for {source_type}:{source_id}",
            extra={
                "commitment": commitment.pk,
                "product_id": product_id,
                "quantity": quantity,
                "source_type": source_type,
                "source_id": source_id,
                "line_id": line_id,
            },
        )
        return commitment

    @classmethod
    def adjust(cls, commitment, new_quantity: int) -> Commitment:
        """
        Change the quantity of an active commitment.

        The ceiling is available + the commitment's current quantity.
        A zero quantity is not an adjustment: release the commitment instead.

        Raises:
            InvalidInput: new_quantity not a positive integer
            InsufficientStock: new_quantity above the ceiling (old kept);
                ``available`` carries the ceiling
            TallyError: COMMITMENT_NOT_FOUND / COMMITMENT_NOT_ACTIVE
        """
        new_quantity = clean_quantity(new_quantity, "new_quantity")
        pk, product_id = cls._locate(commitment)

        with product_lock(product_id) as account:
            current = cls._get_active(pk)
            ceiling = cls.current_available(product_id) + current.quantity

            if new_quantity > ceiling:
                logger.info(
                    f"Adjust refused: {current.quantity} → {new_quantity} of "
                    f"{product_id} (ceiling {ceiling})",
                    extra={
                        "commitment": pk,
                        "product_id": product_id,
                        "requested": new_quantity,
                        "available": ceiling,
                    },
                )
                raise InsufficientStock(product_id, new_quantity, max(ceiling, 0))

            if new_quantity == current.quantity:
                return current

            old_quantity = current.quantity
            current.quantity = new_quantity
            current.save(update_fields=["quantity", "updated_at"])
            account.bump()

            from tallyman.signals import commitment_adjusted

            _send_on_commit(commitment_adjusted, current, old_quantity=old_quantity)

        logger.info(
            f"Adjusted commitment {pk}: {old_quantity} → {new_quantity} of {product_id}",
            extra={
                "commitment": pk,
                "product_id": product_id,
                "old_quantity": old_quantity,
                "quantity": new_quantity,
            },
        )
        return current

    @classmethod
    def release(cls, commitment, reason: str = "") -> Commitment:
        """
        Close a commitment without touching stock.

        Its quantity is available to others as soon as the transaction commits.
        """
        pk, product_id = cls._locate(commitment)

        with product_lock(product_id) as account:
            current = cls._get_active(pk)
            cls._close(current, CommitmentStatus.RELEASED, reason)
            account.bump()

            from tallyman.signals import commitment_released

            _send_on_commit(commitment_released, current, reason=reason)

        logger.info(
            f"Released {current.quantity} of {product_id} from "
            f"{current.source_type}:{current.source_id}",
            extra={
                "commitment": pk,
                "product_id": product_id,
                "quantity": current.quantity,
                "reason": reason,
            },
        )
        return current

    @classmethod
    def fulfill(cls, commitment) -> Commitment:
        """
        Turn a commitment into a permanent stock deduction.

        On-hand is decremented by the commitment quantity and the commitment
        is closed in the same transaction, so the units are counted once.

        Raises:
            InsufficientStock: on-hand dropped below the committed quantity
            TallyError: COMMITMENT_NOT_FOUND / COMMITMENT_NOT_ACTIVE
        """
        pk, product_id = cls._locate(commitment)

        with product_lock(product_id) as account:
            current = cls._get_active(pk)
            inventory = get_inventory_backend()

            on_hand = inventory.get_on_hand(product_id)
            if on_hand < current.quantity:
                logger.error(
                    f"Cannot fulfill commitment {pk}: {current.quantity} of "
                    f"{product_id} committed but only {on_hand} on hand",
                    extra={
                        "commitment": pk,
                        "product_id": product_id,
                        "quantity": current.quantity,
                        "on_hand": on_hand,
                    },
                )
                raise InsufficientStock(product_id, current.quantity, on_hand)

            remaining = inventory.decrement_on_hand(product_id, current.quantity)
            cls._close(current, CommitmentStatus.FULFILLED)
            account.bump()

            from tallyman.signals import commitment_fulfilled

            _send_on_commit(commitment_fulfilled, current)

        logger.info(
            f"Fulfilled {current.quantity} of {product_id} for "
            f"{current.source_type}:{current.source_id} (on hand now {remaining})",
            extra={
                "commitment": pk,
                "product_id": product_id,
                "quantity": current.quantity,
                "on_hand": remaining,
            },
        )
        return current

    @classmethod
    def receive(cls, product_id: str, quantity: int, reference: str = "") -> int:
        """
        Add received units to on-hand (purchase order receipt).

        Runs under the product lock so reservations never read a half-applied
        receipt. Returns the new on-hand quantity.
        """
        product_id = _clean_id(product_id, "product_id")
        quantity = clean_quantity(quantity)

        with product_lock(product_id) as account:
            on_hand = get_inventory_backend().increment_on_hand(product_id, quantity)
            account.bump()

        logger.info(
            f"Received {quantity} of {product_id} (on hand now {on_hand})",
            extra={
                "product_id": product_id,
                "quantity": quantity,
                "on_hand": on_hand,
                "reference": reference,
            },
        )
        return on_hand

    # ── Helpers ──

    @classmethod
    def _locate(cls, commitment) -> tuple[int, str]:
        """Return (pk, product_id) without locking."""
        pk = commitment.pk if isinstance(commitment, Commitment) else commitment
        try:
            product_id = (
                Commitment.objects.filter(pk=pk)
                .values_list("product_id", flat=True)
                .first()
            )
        except (TypeError, ValueError):
            product_id = None

        if product_id is None:
            raise TallyError("COMMITMENT_NOT_FOUND", commitment_id=str(pk))
        return pk, product_id

    @classmethod
    def _get_active(cls, pk) -> Commitment:
        """Fetch and row-lock a commitment, which must still be active."""
        try:
            current = Commitment.objects.select_for_update().get(pk=pk)
        except Commitment.DoesNotExist:
            raise TallyError("COMMITMENT_NOT_FOUND", commitment_id=str(pk))

        if not current.is_active:
            raise TallyError(
                "COMMITMENT_NOT_ACTIVE",
                commitment_id=str(pk),
                status=current.status,
            )
        return current

    @classmethod
    def _close(cls, commitment: Commitment, status: str, reason: str = "") -> None:
        commitment.status = status
        commitment.closed_at = timezone.now()
        if reason:
            commitment.metadata["close_reason"] = reason
        commitment.save(update_fields=["status", "closed_at", "metadata", "updated_at"])


# Module-level alias: `from tallyman import ledger`
ledger = Ledger

"""
Concurrency tests for the per-product critical section.

Threads need committed data and their own connections, hence
django_db(transaction=True).
"""

import threading

import pytest
from django.db import connection
from django.test import override_settings

from tallyman import ledger
from tallyman.exceptions import InsufficientStock, LedgerBusy
from tallyman.models import Commitment, StockLevel
from tallyman.service import _product_locks


def _run_in_threads(targets):
    """Start all targets at once and wait for them."""
    barrier = threading.Barrier(len(targets))
    outcomes = [None] * len(targets)

    def runner(index, target):
        try:
            barrier.wait()
            outcomes[index] = target()
        except Exception as e:  # collected for assertions
            outcomes[index] = e
        finally:
            connection.close()

    threads = [
        threading.Thread(target=runner, args=(i, target)) for i, target in enumerate(targets)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return outcomes


@pytest.mark.django_db(transaction=True)
class TestConcurrentReservations:
    def test_double_reservation_race(self):
        """Two 5-unit reservations on 5 units: exactly one wins."""
        StockLevel.objects.create(product_id="SKU-RACE", on_hand=5)

        outcomes = _run_in_threads(
            [
                lambda: ledger.reserve("SKU-RACE", "deal", "D-1", 5, line_id="L1"),
                lambda: ledger.reserve("SKU-RACE", "sales_order", "SO-1", 5, line_id="L1"),
            ]
        )

        winners = [o for o in outcomes if isinstance(o, Commitment)]
        losers = [o for o in outcomes if isinstance(o, InsufficientStock)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].available == 0
        assert ledger.committed("SKU-RACE") == 5

    def test_many_small_reservations(self):
        StockLevel.objects.create(product_id="SKU-MANY", on_hand=6)

        outcomes = _run_in_threads(
            [
                (lambda i=i: ledger.reserve("SKU-MANY", "deal", f"D-{i}", 1))
                for i in range(10)
            ]
        )

        assert sum(isinstance(o, Commitment) for o in outcomes) == 6
        assert sum(isinstance(o, InsufficientStock) for o in outcomes) == 4
        assert ledger.committed("SKU-MANY") == 6


@pytest.mark.django_db
class TestLedgerBusy:
    @override_settings(TALLYMAN={"LOCK_TIMEOUT": 0.05})
    def test_contended_lock_raises_busy(self):
        StockLevel.objects.create(product_id="SKU-BUSY", on_hand=5)
        lock = _product_locks.get("SKU-BUSY")

        lock.acquire()
        try:
            with pytest.raises(LedgerBusy) as exc:
                ledger.reserve("SKU-BUSY", "deal", "D-1", 1)
        finally:
            lock.release()

        assert exc.value.code == "LEDGER_BUSY"
        assert exc.value.details["product_id"] == "SKU-BUSY"
        assert not Commitment.objects.exists()

    @override_settings(TALLYMAN={"LOCK_TIMEOUT": 0.05})
    def test_other_products_not_blocked(self):
        StockLevel.objects.create(product_id="SKU-FREE", on_hand=5)
        lock = _product_locks.get("SKU-BUSY")

        lock.acquire()
        try:
            commitment = ledger.reserve("SKU-FREE", "deal", "D-1", 1)
        finally:
            lock.release()

        assert commitment.quantity == 1

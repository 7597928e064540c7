"""
Availability hints for the UI.

Answers "how much of this product can I still allocate?" before the user
commits an edit. The answer is advisory: it is read without locks and can
be stale by the time the user saves. The authoritative check happens in
Ledger.reserve() / Ledger.adjust().

Usage:
    from tallyman.services.availability import check, get_available

    get_available("SKU-42")          # 7
    hint = check("SKU-42", 10)
    if not hint.sufficient:
        print(f"Only {hint.available} units available")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from tallyman.conf import get_inventory_backend
from tallyman.models import Commitment


@dataclass(frozen=True)
class AvailabilityHint:
    """Availability of one product against a requested quantity."""

    product_id: str
    requested: int
    available: int

    @property
    def sufficient(self) -> bool:
        return self.available >= self.requested

    @property
    def shortage(self) -> int:
        return max(0, self.requested - self.available)


def get_available(product_id: str) -> int:
    """on_hand − Σ active commitments, floored at zero. Not a guarantee."""
    product_id = str(product_id)
    on_hand = get_inventory_backend().get_on_hand(product_id)
    committed = Commitment.objects.committed_total(product_id)
    return max(0, on_hand - committed)


def get_availability(product_ids: Iterable[str]) -> dict[str, int]:
    """Batch variant of get_available (one query for committed totals)."""
    product_ids = [str(pid) for pid in product_ids]
    inventory = get_inventory_backend()
    committed = Commitment.objects.committed_by_product(product_ids)
    return {
        pid: max(0, inventory.get_on_hand(pid) - committed.get(pid, 0))
        for pid in product_ids
    }


def check(product_id: str, requested: int) -> AvailabilityHint:
    """Compare a requested quantity with current availability."""
    return AvailabilityHint(
        product_id=str(product_id),
        requested=int(requested),
        available=get_available(product_id),
    )

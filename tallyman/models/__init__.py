"""
Tallyman Models.

Core models for stock commitments:
- StockLevel: Default product master (on-hand quantity + tax rate)
- Commitment: Quantity promised to a deal or draft order line item
- LedgerAccount: Per-product lock row for the reservation ledger
"""

from tallyman.models.account import LedgerAccount
from tallyman.models.commitment import (
    COMMITTING_SOURCES,
    Commitment,
    CommitmentStatus,
    SourceType,
)
from tallyman.models.stock import StockLevel

__all__ = [
    "StockLevel",
    "Commitment",
    "CommitmentStatus",
    "SourceType",
    "COMMITTING_SOURCES",
    "LedgerAccount",
]

"""
Source and line item references.

Deals, sales orders and purchase orders live in other apps. Tallyman only
sees them through these value objects when they notify it of edits and
stage changes.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SourceRef:
    """A deal, sales order or purchase order, by type and id."""

    source_type: str
    source_id: str
    stage: str | None = None

    def __str__(self) -> str:
        return f"{self.source_type}:{self.source_id}"


@dataclass(frozen=True)
class LineItem:
    """One product line of a source."""

    line_id: str
    product_id: str
    quantity: int = 0

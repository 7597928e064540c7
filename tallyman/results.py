"""
Tallyman Result Types.

Structured results for line item edits and stage transitions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tallyman.models import Commitment
    from tallyman.protocols.source import SourceRef


@dataclass
class LineItemResult:
    """
    Outcome of a line item add/change/remove.

    If the requested quantity could not be committed, the edit is rejected
    and quantity holds the clamped value the caller should write back to
    the line item.
    """

    line_id: str
    product_id: str
    requested: int
    quantity: int
    commitment: Commitment | None = None
    message: str | None = None

    @property
    def clamped(self) -> bool:
        return self.quantity != self.requested

    @property
    def accepted(self) -> bool:
        return not self.clamped


@dataclass
class TransitionResult:
    """
    Outcome of a stage transition.

    action is "fulfilled", "released" or "none". stage is the stage the
    source should end up in: the requested one, or the rejection stage
    when approval was refused.
    """

    source: SourceRef
    old_stage: str | None
    stage: str
    action: str = "none"
    approved: bool = True
    commitments: list[Commitment] = field(default_factory=list)

    @property
    def quantity(self) -> int:
        return sum(c.quantity for c in self.commitments)


@dataclass
class ReceiptLine:
    product_id: str
    quantity: int
    on_hand: int


@dataclass
class ReceiptResult:
    """Outcome of receiving a purchase order into stock."""

    source: SourceRef
    stage: str
    lines: list[ReceiptLine] = field(default_factory=list)

    @property
    def quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

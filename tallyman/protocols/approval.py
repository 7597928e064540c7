"""
Approval Protocol — Interface for the stock approval workflow.

Sales orders may only ship, and purchase orders may only be received,
once someone signs off. Tallyman asks this backend before turning
commitments into stock deductions (or receipts into stock additions).
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from tallyman.protocols.source import SourceRef


class ApprovalDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"


@runtime_checkable
class ApprovalBackend(Protocol):
    """
    Protocol for gating stock-impacting stage transitions.

    A REJECTED decision is treated like a cancellation: commitments are
    released and nothing is deducted.
    """

    def check(self, source: SourceRef, target_stage: str) -> ApprovalDecision:
        """
        Return the approval state for moving source into target_stage.

        Args:
            source: The deal / sales order / purchase order
            target_stage: The fulfillment or receipt stage requested

        Returns:
            ApprovalDecision
        """
        ...

"""
Auto-approve Backend -- approves every stock-impacting transition.

Use this adapter when the project has no stock approval workflow, or for
tests that should not depend on one.

Configuration (this is the default):
    TALLYMAN = {
        "APPROVAL_BACKEND": "tallyman.adapters.noop.AutoApproveBackend",
    }
"""

from __future__ import annotations

from tallyman.protocols.approval import ApprovalDecision
from tallyman.protocols.source import SourceRef


class AutoApproveBackend:
    """
    No-operation implementation of the ApprovalBackend protocol.

    Returns APPROVED for every source and stage, so moving a sales order to
    "shipped" deducts stock immediately.
    """

    def check(self, source: SourceRef, target_stage: str) -> ApprovalDecision:
        return ApprovalDecision.APPROVED

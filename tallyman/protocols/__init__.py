"""
Tallyman Protocols.

Defines interfaces for external integrations.
"""

from tallyman.protocols.approval import ApprovalBackend, ApprovalDecision
from tallyman.protocols.inventory import InventoryBackend
from tallyman.protocols.source import LineItem, SourceRef
from tallyman.protocols.tax import TaxConfigBackend

__all__ = [
    # Inventory Protocol
    "InventoryBackend",
    # Approval Protocol
    "ApprovalBackend",
    "ApprovalDecision",
    # Tax configuration Protocol
    "TaxConfigBackend",
    # Source value objects
    "SourceRef",
    "LineItem",
]

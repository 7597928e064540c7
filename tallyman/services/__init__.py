"""
Tallyman Services.

Business logic that doesn't belong in models:
- tax: GST split of line item amounts
- availability: advisory availability for the UI
- lifecycle: line item and stage events → ledger operations
"""

from tallyman.services.availability import AvailabilityHint, get_availability, get_available
from tallyman.services.lifecycle import CommitmentLifecycleCoordinator, coordinator
from tallyman.services.tax import BillingMode, LineItemQuote, compute_line_amounts, quote_line

__all__ = [
    "AvailabilityHint",
    "get_available",
    "get_availability",
    "CommitmentLifecycleCoordinator",
    "coordinator",
    "BillingMode",
    "LineItemQuote",
    "compute_line_amounts",
    "quote_line",
]

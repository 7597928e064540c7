"""
Django Tallyman - Stock commitments and GST quoting for CRM sources.

Deals and sales orders promise stock; tallyman keeps the promises honest.

Usage:
    from tallyman import ledger, InsufficientStock, compute_line_amounts

    # Quoting
    quote = compute_line_amounts("2000.00", 1, 18, "exclusive_gst")
    quote.cgst_amount, quote.sgst_amount, quote.total_amount
    # Decimal('90.00'), Decimal('90.00'), Decimal('2360.00')

    # Committing stock
    try:
        commitment = ledger.reserve("SKU-42", "deal", "D-17", 5, line_id="L1")
    except InsufficientStock as e:
        print(f"Only {e.available} units available")

    # Line item and stage events
    from tallyman import coordinator
    coordinator.on_source_stage_changed(deal, "negotiation", "closed_won")
"""

from tallyman.exceptions import (
    InsufficientStock,
    InvalidInput,
    LedgerBusy,
    TallyError,
    TransitionRejected,
)


def __getattr__(name):
    """Lazy import to avoid AppRegistryNotReady errors."""
    if name in ("ledger", "Ledger"):
        from tallyman.service import Ledger

        return Ledger
    if name in ("coordinator", "CommitmentLifecycleCoordinator"):
        from tallyman.services import lifecycle

        return getattr(lifecycle, name)
    if name in ("compute_line_amounts", "quote_line", "BillingMode", "LineItemQuote"):
        from tallyman.services import tax

        return getattr(tax, name)
    if name in ("LineItemResult", "TransitionResult", "ReceiptResult"):
        from tallyman import results

        return getattr(results, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ledger",
    "Ledger",
    "coordinator",
    "CommitmentLifecycleCoordinator",
    "compute_line_amounts",
    "quote_line",
    "BillingMode",
    "LineItemQuote",
    "LineItemResult",
    "TransitionResult",
    "ReceiptResult",
    "TallyError",
    "InvalidInput",
    "InsufficientStock",
    "LedgerBusy",
    "TransitionRejected",
]
__version__ = "0.1.0"

"""
Tallyman Signals.

Sources (deals, sales orders, purchase orders) live in other apps and talk
to the ledger through signals, so neither side imports the other.

Inbound (sent by the owning app, handled by tallyman.signals.handlers):
    line_item_added: Args: source (SourceRef), item (LineItem)
    line_item_changed: Args: source, item
    line_item_removed: Args: source, item
    source_stage_changed: Args: source, old_stage, new_stage, commit=None
    purchase_received: Args: source, items (list of LineItem), stage=None, commit=None

Use Signal.send() (not send_robust) for inbound signals: the handlers raise
TallyError subclasses the sender must see. Handler results are returned in
the usual (receiver, response) pairs.

Outbound (sent by the ledger after the transaction commits):
    commitment_reserved: Args: commitment
    commitment_adjusted: Args: commitment, old_quantity
    commitment_released: Args: commitment, reason
    commitment_fulfilled: Args: commitment
"""

from django.dispatch import Signal

# Line item edits on a deal or sales order
line_item_added = Signal()
line_item_changed = Signal()
line_item_removed = Signal()

# Source moved to another stage
source_stage_changed = Signal()

# Purchase order goods arrived
purchase_received = Signal()

# Ledger changes, sent on commit
commitment_reserved = Signal()
commitment_adjusted = Signal()
commitment_released = Signal()
commitment_fulfilled = Signal()

__all__ = [
    "line_item_added",
    "line_item_changed",
    "line_item_removed",
    "source_stage_changed",
    "purchase_received",
    "commitment_reserved",
    "commitment_adjusted",
    "commitment_released",
    "commitment_fulfilled",
]

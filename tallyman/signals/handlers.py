"""
Tallyman Signal Handlers.

Route inbound source events to the lifecycle coordinator.

This module is imported in apps.py to register handlers.
"""

import logging

from django.dispatch import receiver

from tallyman.signals import (
    line_item_added,
    line_item_changed,
    line_item_removed,
    purchase_received,
    source_stage_changed,
)

logger = logging.getLogger(__name__)


def _coordinator():
    from tallyman.services.lifecycle import coordinator

    return coordinator


@receiver(line_item_added)
def reserve_on_line_added(sender, source, item, **kwargs):
    """Reserve stock for a new line item. Returns a LineItemResult."""
    return _coordinator().on_line_item_added(source, item)


@receiver(line_item_changed)
def adjust_on_line_changed(sender, source, item, **kwargs):
    """Follow a line item edit. Returns a LineItemResult."""
    return _coordinator().on_line_item_changed(source, item)


@receiver(line_item_removed)
def release_on_line_removed(sender, source, item, **kwargs):
    """Release the removed line's commitment."""
    return _coordinator().on_line_item_removed(source, item)


@receiver(source_stage_changed)
def settle_on_stage_changed(sender, source, old_stage, new_stage, commit=None, **kwargs):
    """
    Fulfill or release commitments when a source reaches a terminal stage.

    TransitionRejected propagates to the sender, which must keep the
    source in old_stage.
    """
    return _coordinator().on_source_stage_changed(
        source, old_stage, new_stage, commit=commit
    )


@receiver(purchase_received)
def stock_on_purchase_received(sender, source, items, stage=None, commit=None, **kwargs):
    """Add received purchase order lines to on-hand. Returns a ReceiptResult."""
    logger.debug(
        f"Purchase receipt for {source}",
        extra={"source": str(source)},
    )
    return _coordinator().on_purchase_received(source, items, stage=stage, commit=commit)

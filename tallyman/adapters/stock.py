"""
StockLevel Backends.

Default collaborators backed by tallyman.StockLevel:

    StockLevelBackend    →  InventoryBackend (on-hand quantities)
    StockLevelTaxConfig  →  TaxConfigBackend (tax rate per product,
                            billing mode from settings)

Configuration (these are the defaults):
    TALLYMAN = {
        "INVENTORY_BACKEND": "tallyman.adapters.stock.StockLevelBackend",
        "TAX_CONFIG_BACKEND": "tallyman.adapters.stock.StockLevelTaxConfig",
    }
"""

import logging
from decimal import Decimal

from django.db import transaction

from tallyman.exceptions import InsufficientStock, TallyError

logger = logging.getLogger(__name__)


class StockLevelBackend:
    """
    InventoryBackend over StockLevel rows.

    Writes lock the row and run inside the caller's transaction, so a
    ledger rollback undoes them too.
    """

    def get_on_hand(self, product_id: str) -> int:
        from tallyman.models import StockLevel

        on_hand = (
            StockLevel.objects.filter(product_id=product_id)
            .values_list("on_hand", flat=True)
            .first()
        )
        return on_hand or 0

    @transaction.atomic
    def decrement_on_hand(self, product_id: str, quantity: int) -> int:
        from tallyman.models import StockLevel

        try:
            level = StockLevel.objects.select_for_update().get(product_id=product_id)
        except StockLevel.DoesNotExist:
            raise TallyError("PRODUCT_NOT_FOUND", product_id=product_id)

        if level.on_hand < quantity:
            raise InsufficientStock(product_id, quantity, level.on_hand)

        level.on_hand -= quantity
        level.save(update_fields=["on_hand", "updated_at"])
        return level.on_hand

    @transaction.atomic
    def increment_on_hand(self, product_id: str, quantity: int) -> int:
        from tallyman.models import StockLevel

        level, created = StockLevel.objects.select_for_update().get_or_create(
            product_id=product_id
        )
        if created:
            logger.info(
                f"Created stock level for {product_id} on first receipt",
                extra={"product_id": product_id},
            )

        level.on_hand += quantity
        level.save(update_fields=["on_hand", "updated_at"])
        return level.on_hand


class StockLevelTaxConfig:
    """
    TaxConfigBackend over StockLevel.tax_rate and DEFAULT_BILLING_MODE.
    """

    def default_billing_mode(self):
        from tallyman.conf import get_setting
        from tallyman.services.tax import normalize_billing_mode

        configured = get_setting("DEFAULT_BILLING_MODE")
        return normalize_billing_mode(configured, default="inclusive_gst")

    def tax_rate(self, product_id: str) -> Decimal:
        from tallyman.models import StockLevel

        rate = (
            StockLevel.objects.filter(product_id=product_id)
            .values_list("tax_rate", flat=True)
            .first()
        )
        return rate if rate is not None else Decimal("0")

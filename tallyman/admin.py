"""
Tallyman Admin — StockLevel and Commitment.

Commitments are changed through the ledger only, so the admin shows them
read-only. Stock edits go through StockLevel.clean(), which refuses an
on-hand below the active committed total.
"""

from django.contrib import admin
from simple_history.admin import SimpleHistoryAdmin

from tallyman.models import Commitment, StockLevel


@admin.register(StockLevel)
class StockLevelAdmin(SimpleHistoryAdmin):
    """Admin for on-hand stock and tax rates."""

    list_display = ("product_id", "name", "on_hand", "tax_rate", "updated_at")
    search_fields = ("product_id", "name")
    readonly_fields = ("created_at", "updated_at")

    def get_readonly_fields(self, request, obj=None):
        # Commitments reference the product id
        if obj is not None:
            return ("product_id",) + self.readonly_fields
        return self.readonly_fields


@admin.register(Commitment)
class CommitmentAdmin(SimpleHistoryAdmin):
    """Admin for stock commitments (read-only)."""

    list_display = (
        "product_id",
        "quantity",
        "source_type",
        "source_id",
        "line_id",
        "status",
        "created_at",
    )
    list_filter = ("status", "source_type")
    search_fields = ("product_id", "source_id", "line_id")
    readonly_fields = (
        "uuid",
        "product_id",
        "quantity",
        "source_type",
        "source_id",
        "line_id",
        "status",
        "metadata",
        "created_at",
        "updated_at",
        "closed_at",
    )

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

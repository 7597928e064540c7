"""
Per-product ledger lock row.

Replaces the fragile "sum the line items, then insert" approach with a
row that every mutating ledger operation locks with SELECT FOR UPDATE.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class LedgerAccount(models.Model):
    """
    Lock row and version counter for one product.

    One row per product, e.g. "SKU-42" → version = 17.
    Thread-safe via SELECT FOR UPDATE.

    Usage (internal to Ledger):
        with transaction.atomic():
            account = LedgerAccount.lock("SKU-42")
            ...
            account.bump()
    """

    product_id = models.CharField(
        max_length=64,
        unique=True,
        verbose_name=_("Product"),
    )
    version = models.PositiveBigIntegerField(
        default=0,
        verbose_name=_("Version"),
    )
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("Updated at"))

    class Meta:
        db_table = "tallyman_ledger_account"
        verbose_name = _("Ledger account")
        verbose_name_plural = _("Ledger accounts")

    def __str__(self) -> str:
        return f"{self.product_id} @ v{self.version}"

    @classmethod
    def lock(cls, product_id: str) -> "LedgerAccount":
        """
        Return the product's row, locked until the current transaction ends.

        Must be called inside transaction.atomic().
        """
        account, _created = cls.objects.select_for_update().get_or_create(
            product_id=product_id, defaults={"version": 0}
        )
        return account

    def bump(self) -> int:
        """Record one mutation against the product."""
        self.version += 1
        self.save(update_fields=["version", "updated_at"])
        return self.version

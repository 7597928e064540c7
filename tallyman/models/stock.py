"""
StockLevel model.

StockLevel = default product master for standalone installs: on-hand
quantity and tax rate per product. Projects with their own inventory point
TALLYMAN['INVENTORY_BACKEND'] elsewhere and never touch this table.
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _
from simple_history.models import HistoricalRecords

from tallyman.models.commitment import Commitment


class StockLevel(models.Model):
    """
    On-hand quantity of one product.

    on_hand is physical stock only; quantities committed to open deals and
    draft orders live in Commitment and are subtracted at query time.
    """

    product_id = models.CharField(
        max_length=64,
        unique=True,
        verbose_name=_("Product"),
        help_text=_("Product identifier in the catalog"),
    )
    name = models.CharField(
        max_length=200,
        blank=True,
        verbose_name=_("Name"),
    )
    on_hand = models.PositiveIntegerField(
        default=0,
        verbose_name=_("On hand"),
    )
    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
        verbose_name=_("Tax rate (%)"),
        help_text=_("Total rate, split evenly into CGST and SGST"),
    )

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Created at"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("Updated at"))

    history = HistoricalRecords()

    class Meta:
        db_table = "tallyman_stock_level"
        verbose_name = _("Stock level")
        verbose_name_plural = _("Stock levels")
        ordering = ["product_id"]

    def __str__(self) -> str:
        label = self.name or self.product_id
        return f"{label} ({self.on_hand})"

    def clean(self):
        """On-hand may not drop below what is already committed."""
        super().clean()
        if self.on_hand is None or not self.product_id:
            return

        committed = Commitment.objects.committed_total(self.product_id)
        if self.on_hand < committed:
            raise ValidationError(
                {
                    "on_hand": _(
                        "%(committed)s units are committed to open deals and orders; "
                        "on hand cannot go below that."
                    )
                    % {"committed": committed}
                }
            )

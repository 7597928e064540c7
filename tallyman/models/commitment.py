"""
Commitment model.

Commitment = quantity of a product promised to one line item of an
in-flight deal or draft sales order. Counted against availability, but not
yet a physical stock change.

Mutate only through tallyman.service.Ledger; it holds the product lock.
"""

import uuid

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q, Sum
from django.utils.translation import gettext_lazy as _
from simple_history.models import HistoricalRecords


class SourceType(models.TextChoices):
    """Kind of record a line item belongs to."""

    DEAL = "deal", _("Deal")
    SALES_ORDER = "sales_order", _("Sales order")
    PURCHASE_ORDER = "purchase_order", _("Purchase order")


# Purchase orders add stock on receipt; they never hold commitments.
COMMITTING_SOURCES = frozenset({SourceType.DEAL.value, SourceType.SALES_ORDER.value})


class CommitmentStatus(models.TextChoices):
    """Commitment lifecycle status."""

    ACTIVE = "active", _("Active")
    RELEASED = "released", _("Released")
    FULFILLED = "fulfilled", _("Fulfilled")


class CommitmentQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status=CommitmentStatus.ACTIVE)

    def for_product(self, product_id: str):
        return self.filter(product_id=product_id)

    def for_source(self, source_type: str, source_id: str):
        return self.filter(source_type=source_type, source_id=str(source_id))

    def committed_total(self, product_id: str) -> int:
        """Sum of active quantities for one product."""
        total = (
            self.active()
            .for_product(product_id)
            .aggregate(total=Sum("quantity"))["total"]
        )
        return total or 0

    def committed_by_product(self, product_ids=None) -> dict[str, int]:
        """Active totals keyed by product, in one query."""
        qs = self.active()
        if product_ids is not None:
            qs = qs.filter(product_id__in=list(product_ids))
        rows = qs.values("product_id").annotate(total=Sum("quantity"))
        return {row["product_id"]: row["total"] or 0 for row in rows}


class Commitment(models.Model):
    """
    Stock promised to one line item.

    Status: ACTIVE → RELEASED (capacity returned)
            ACTIVE → FULFILLED (capacity returned AND on-hand decremented)

    Closed rows are kept for the audit trail; only ACTIVE rows count.
    """

    uuid = models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        unique=True,
        verbose_name=_("UUID"),
    )
    product_id = models.CharField(
        max_length=64,
        db_index=True,
        verbose_name=_("Product"),
    )
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        verbose_name=_("Quantity"),
    )

    # Source tracking
    source_type = models.CharField(
        max_length=20,
        choices=SourceType.choices,
        verbose_name=_("Source type"),
    )
    source_id = models.CharField(
        max_length=64,
        verbose_name=_("Source ID"),
    )
    line_id = models.CharField(
        max_length=64,
        blank=True,
        verbose_name=_("Line ID"),
        help_text=_("Line item identifier within the source"),
    )

    status = models.CharField(
        max_length=20,
        choices=CommitmentStatus.choices,
        default=CommitmentStatus.ACTIVE,
        db_index=True,
        verbose_name=_("Status"),
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        verbose_name=_("Metadata"),
    )

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_("Created at"))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_("Updated at"))
    closed_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Closed at"))

    history = HistoricalRecords()

    objects = CommitmentQuerySet.as_manager()

    class Meta:
        db_table = "tallyman_commitment"
        verbose_name = _("Commitment")
        verbose_name_plural = _("Commitments")
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["product_id", "status"], name="tallyman_co_product_6b1c0e_idx"),
            models.Index(
                fields=["source_type", "source_id", "status"],
                name="tallyman_co_source__4f2d7a_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["source_type", "source_id", "line_id"],
                condition=Q(status="active") & ~Q(line_id=""),
                name="tallyman_one_active_commitment_per_line",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"{self.quantity} × {self.product_id} → "
            f"{self.source_type}:{self.source_id} ({self.status})"
        )

    @property
    def is_active(self) -> bool:
        return self.status == CommitmentStatus.ACTIVE

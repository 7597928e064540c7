"""
Initial Tallyman schema.

- StockLevel (default inventory and tax rate source)
- LedgerAccount (per-product lock row)
- Commitment (one active row per committed line item)
- History tracking for StockLevel and Commitment
"""

import decimal
import uuid

import django.core.validators
import django.db.models.deletion
import simple_history.models
from django.conf import settings
from django.db import migrations, models


SOURCE_TYPE_CHOICES = [
    ("deal", "Deal"),
    ("sales_order", "Sales order"),
    ("purchase_order", "Purchase order"),
]

STATUS_CHOICES = [
    ("active", "Active"),
    ("released", "Released"),
    ("fulfilled", "Fulfilled"),
]

HISTORY_TYPE_CHOICES = [("+", "Created"), ("~", "Changed"), ("-", "Deleted")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # ══════════════════════════════════════════════════════════════
        # STOCK LEVEL
        # ══════════════════════════════════════════════════════════════
        migrations.CreateModel(
            name="StockLevel",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "product_id",
                    models.CharField(
                        help_text="Product identifier in the catalog",
                        max_length=64,
                        unique=True,
                        verbose_name="Product",
                    ),
                ),
                ("name", models.CharField(blank=True, max_length=200, verbose_name="Name")),
                ("on_hand", models.PositiveIntegerField(default=0, verbose_name="On hand")),
                (
                    "tax_rate",
                    models.DecimalField(
                        decimal_places=2,
                        default=decimal.Decimal("0"),
                        help_text="Total rate, split evenly into CGST and SGST",
                        max_digits=5,
                        validators=[
                            django.core.validators.MinValueValidator(decimal.Decimal("0")),
                            django.core.validators.MaxValueValidator(decimal.Decimal("100")),
                        ],
                        verbose_name="Tax rate (%)",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="Updated at")),
            ],
            options={
                "verbose_name": "Stock level",
                "verbose_name_plural": "Stock levels",
                "db_table": "tallyman_stock_level",
                "ordering": ["product_id"],
            },
        ),
        # ══════════════════════════════════════════════════════════════
        # LEDGER ACCOUNT
        # ══════════════════════════════════════════════════════════════
        migrations.CreateModel(
            name="LedgerAccount",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("product_id", models.CharField(max_length=64, unique=True, verbose_name="Product")),
                ("version", models.PositiveBigIntegerField(default=0, verbose_name="Version")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="Updated at")),
            ],
            options={
                "verbose_name": "Ledger account",
                "verbose_name_plural": "Ledger accounts",
                "db_table": "tallyman_ledger_account",
            },
        ),
        # ══════════════════════════════════════════════════════════════
        # COMMITMENT
        # ══════════════════════════════════════════════════════════════
        migrations.CreateModel(
            name="Commitment",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "uuid",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, unique=True, verbose_name="UUID"
                    ),
                ),
                ("product_id", models.CharField(db_index=True, max_length=64, verbose_name="Product")),
                (
                    "quantity",
                    models.PositiveIntegerField(
                        validators=[django.core.validators.MinValueValidator(1)],
                        verbose_name="Quantity",
                    ),
                ),
                (
                    "source_type",
                    models.CharField(
                        choices=SOURCE_TYPE_CHOICES, max_length=20, verbose_name="Source type"
                    ),
                ),
                ("source_id", models.CharField(max_length=64, verbose_name="Source ID")),
                (
                    "line_id",
                    models.CharField(
                        blank=True,
                        help_text="Line item identifier within the source",
                        max_length=64,
                        verbose_name="Line ID",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=STATUS_CHOICES,
                        db_index=True,
                        default="active",
                        max_length=20,
                        verbose_name="Status",
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="Metadata")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="Created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="Updated at")),
                ("closed_at", models.DateTimeField(blank=True, null=True, verbose_name="Closed at")),
            ],
            options={
                "verbose_name": "Commitment",
                "verbose_name_plural": "Commitments",
                "db_table": "tallyman_commitment",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["product_id", "status"], name="tallyman_co_product_6b1c0e_idx"
                    ),
                    models.Index(
                        fields=["source_type", "source_id", "status"],
                        name="tallyman_co_source__4f2d7a_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "active"), models.Q(("line_id", ""), _negated=True)),
                        fields=("source_type", "source_id", "line_id"),
                        name="tallyman_one_active_commitment_per_line",
                    ),
                ],
            },
        ),
        # ══════════════════════════════════════════════════════════════
        # HISTORY
        # ══════════════════════════════════════════════════════════════
        migrations.CreateModel(
            name="HistoricalStockLevel",
            fields=[
                (
                    "id",
                    models.BigIntegerField(
                        auto_created=True, blank=True, db_index=True, verbose_name="ID"
                    ),
                ),
                (
                    "product_id",
                    models.CharField(
                        db_index=True,
                        help_text="Product identifier in the catalog",
                        max_length=64,
                        verbose_name="Product",
                    ),
                ),
                ("name", models.CharField(blank=True, max_length=200, verbose_name="Name")),
                ("on_hand", models.PositiveIntegerField(default=0, verbose_name="On hand")),
                (
                    "tax_rate",
                    models.DecimalField(
                        decimal_places=2,
                        default=decimal.Decimal("0"),
                        help_text="Total rate, split evenly into CGST and SGST",
                        max_digits=5,
                        validators=[
                            django.core.validators.MinValueValidator(decimal.Decimal("0")),
                            django.core.validators.MaxValueValidator(decimal.Decimal("100")),
                        ],
                        verbose_name="Tax rate (%)",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(blank=True, editable=False, verbose_name="Created at"),
                ),
                (
                    "updated_at",
                    models.DateTimeField(blank=True, editable=False, verbose_name="Updated at"),
                ),
                ("history_id", models.AutoField(primary_key=True, serialize=False)),
                ("history_date", models.DateTimeField(db_index=True)),
                ("history_change_reason", models.CharField(max_length=100, null=True)),
                (
                    "history_type",
                    models.CharField(choices=HISTORY_TYPE_CHOICES, max_length=1),
                ),
                (
                    "history_user",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "historical Stock level",
                "verbose_name_plural": "historical Stock levels",
                "ordering": ("-history_date", "-history_id"),
                "get_latest_by": ("history_date", "history_id"),
            },
            bases=(simple_history.models.HistoricalChanges, models.Model),
        ),
        migrations.CreateModel(
            name="HistoricalCommitment",
            fields=[
                (
                    "id",
                    models.BigIntegerField(
                        auto_created=True, blank=True, db_index=True, verbose_name="ID"
                    ),
                ),
                (
                    "uuid",
                    models.UUIDField(
                        db_index=True, default=uuid.uuid4, editable=False, verbose_name="UUID"
                    ),
                ),
                ("product_id", models.CharField(db_index=True, max_length=64, verbose_name="Product")),
                (
                    "quantity",
                    models.PositiveIntegerField(
                        validators=[django.core.validators.MinValueValidator(1)],
                        verbose_name="Quantity",
                    ),
                ),
                (
                    "source_type",
                    models.CharField(
                        choices=SOURCE_TYPE_CHOICES, max_length=20, verbose_name="Source type"
                    ),
                ),
                ("source_id", models.CharField(max_length=64, verbose_name="Source ID")),
                (
                    "line_id",
                    models.CharField(
                        blank=True,
                        help_text="Line item identifier within the source",
                        max_length=64,
                        verbose_name="Line ID",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=STATUS_CHOICES,
                        db_index=True,
                        default="active",
                        max_length=20,
                        verbose_name="Status",
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="Metadata")),
                (
                    "created_at",
                    models.DateTimeField(blank=True, editable=False, verbose_name="Created at"),
                ),
                (
                    "updated_at",
                    models.DateTimeField(blank=True, editable=False, verbose_name="Updated at"),
                ),
                ("closed_at", models.DateTimeField(blank=True, null=True, verbose_name="Closed at")),
                ("history_id", models.AutoField(primary_key=True, serialize=False)),
                ("history_date", models.DateTimeField(db_index=True)),
                ("history_change_reason", models.CharField(max_length=100, null=True)),
                (
                    "history_type",
                    models.CharField(choices=HISTORY_TYPE_CHOICES, max_length=1),
                ),
                (
                    "history_user",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "historical Commitment",
                "verbose_name_plural": "historical Commitments",
                "ordering": ("-history_date", "-history_id"),
                "get_latest_by": ("history_date", "history_id"),
            },
            bases=(simple_history.models.HistoricalChanges, models.Model),
        ),
    ]

"""
Tallyman API Serializers.
"""

from decimal import Decimal

from rest_framework import serializers

from tallyman.models import Commitment, CommitmentStatus, SourceType


class QuoteRequestSerializer(serializers.Serializer):
    """Input for the quote endpoint."""

    product_id = serializers.CharField(max_length=64, allow_blank=True, default="")
    unit_price = serializers.DecimalField(max_digits=14, decimal_places=4, min_value=Decimal("0"))
    quantity = serializers.DecimalField(
        max_digits=12, decimal_places=3, min_value=Decimal("0"), default=1
    )
    # Normalized by the tax service: case and surrounding spaces are ignored
    billing_mode = serializers.CharField(
        max_length=20,
        required=False,
        allow_blank=True,
        allow_null=True,
        help_text="inclusive_gst, exclusive_gst or no_gst; defaults to the tenant mode",
    )
    tax_rate = serializers.DecimalField(
        max_digits=5,
        decimal_places=2,
        min_value=Decimal("0"),
        max_value=Decimal("100"),
        required=False,
        allow_null=True,
        help_text="Manual rate; defaults to the product's rate",
    )


class CommitmentSerializer(serializers.ModelSerializer):
    """Serializer for Commitment model."""

    is_active = serializers.BooleanField(read_only=True)

    class Meta:
        model = Commitment
        fields = [
            "id",
            "uuid",
            "product_id",
            "quantity",
            "source_type",
            "source_id",
            "line_id",
            "status",
            "is_active",
            "metadata",
            "created_at",
            "updated_at",
            "closed_at",
        ]
        read_only_fields = fields


class CommitmentFilterSerializer(serializers.Serializer):
    """Query parameters accepted by the commitment list."""

    product_id = serializers.CharField(max_length=64, required=False)
    source_type = serializers.ChoiceField(choices=SourceType.choices, required=False)
    source_id = serializers.CharField(max_length=64, required=False)
    status = serializers.ChoiceField(choices=CommitmentStatus.choices, required=False)

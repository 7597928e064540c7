"""
Tallyman API Views.
"""

from rest_framework import status, viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from tallyman.conf import get_inventory_backend
from tallyman.exceptions import TallyError
from tallyman.models import Commitment
from tallyman.service import Ledger
from tallyman.services import availability
from tallyman.services.tax import quote_line

from .serializers import (
    CommitmentFilterSerializer,
    CommitmentSerializer,
    QuoteRequestSerializer,
)

# Codes that describe a conflict with current state rather than bad input
CONFLICT_CODES = frozenset({"INSUFFICIENT_STOCK", "LEDGER_BUSY"})


def error_response(error: TallyError) -> Response:
    code = (
        status.HTTP_409_CONFLICT
        if error.code in CONFLICT_CODES
        else status.HTTP_400_BAD_REQUEST
    )
    return Response(error.as_dict(), status=code)


class QuoteView(APIView):
    """
    Tax split for one line item.

    POST /api/tallyman/quote/
    {
        "product_id": "SKU-42",
        "unit_price": "2000.00",
        "quantity": 1,
        "billing_mode": "exclusive_gst",   // optional
        "tax_rate": "18"                   // optional
    }
    """

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = QuoteRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            quote = quote_line(
                data["product_id"],
                data["unit_price"],
                data["quantity"],
                billing_mode=data.get("billing_mode"),
                rate_override=data.get("tax_rate"),
            )
        except TallyError as e:
            return error_response(e)

        return Response(quote.as_dict())


class AvailabilityView(APIView):
    """
    Advisory availability of one product.

    GET /api/tallyman/availability/{product_id}/
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, product_id):
        return Response(
            {
                "product_id": product_id,
                "on_hand": get_inventory_backend().get_on_hand(product_id),
                "committed": Ledger.committed(product_id),
                "available": availability.get_available(product_id),
            }
        )


class CommitmentViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for Commitment (read-only).

    list: Commitments, filterable by product_id, source_type, source_id, status
    retrieve: Get a specific commitment by UUID
    """

    permission_classes = [IsAuthenticated]
    queryset = Commitment.objects.all()
    serializer_class = CommitmentSerializer
    lookup_field = "uuid"

    def get_queryset(self):
        qs = super().get_queryset()
        if self.action != "list":
            return qs

        filters = CommitmentFilterSerializer(data=self.request.query_params)
        if not filters.is_valid():
            raise ValidationError(filters.errors)
        return qs.filter(**filters.validated_data)

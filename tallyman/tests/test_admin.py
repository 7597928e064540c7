"""
Tests for StockLevel validation and the Tallyman admin.
"""

import pytest
from django.contrib import admin
from django.core.exceptions import ValidationError
from django.test import RequestFactory

from tallyman import ledger
from tallyman.admin import CommitmentAdmin, StockLevelAdmin
from tallyman.models import Commitment, StockLevel


@pytest.fixture
def stock(db):
    return StockLevel.objects.create(product_id="ADM-1", name="Widget", on_hand=5)


@pytest.fixture
def admin_request(admin_user):
    request = RequestFactory().post("/")
    request.user = admin_user
    return request


class TestStockLevelClean:
    """On-hand edits may not undercut active commitments."""

    def test_below_committed_rejected(self, stock):
        ledger.reserve("ADM-1", "deal", "D-1", 5, line_id="L1")

        stock.on_hand = 1
        with pytest.raises(ValidationError) as exc:
            stock.full_clean()

        assert "on_hand" in exc.value.message_dict
        stock.refresh_from_db()
        assert ledger.current_available("ADM-1") == 0

    def test_down_to_committed_allowed(self, stock):
        ledger.reserve("ADM-1", "deal", "D-1", 3, line_id="L1")

        stock.on_hand = 3
        stock.full_clean()
        stock.save()

        assert ledger.current_available("ADM-1") == 0

    def test_released_commitments_ignored(self, stock):
        c = ledger.reserve("ADM-1", "deal", "D-1", 5, line_id="L1")
        ledger.release(c)

        stock.on_hand = 0
        stock.full_clean()

    def test_new_product(self, db):
        StockLevel(product_id="ADM-NEW", on_hand=0).full_clean()


class TestStockLevelAdmin:
    def test_form_rejects_on_hand_below_committed(self, stock, admin_request):
        ledger.reserve("ADM-1", "sales_order", "SO-1", 5, line_id="L1")
        model_admin = StockLevelAdmin(StockLevel, admin.site)

        form_class = model_admin.get_form(admin_request, stock)
        form = form_class(
            data={"name": "Widget", "on_hand": 1, "tax_rate": "18.00"},
            instance=stock,
        )

        assert not form.is_valid()
        assert "on_hand" in form.errors
        stock.refresh_from_db()
        assert stock.on_hand == 5

    def test_form_accepts_raise(self, stock, admin_request):
        ledger.reserve("ADM-1", "sales_order", "SO-1", 5, line_id="L1")
        model_admin = StockLevelAdmin(StockLevel, admin.site)

        form_class = model_admin.get_form(admin_request, stock)
        form = form_class(
            data={"name": "Widget", "on_hand": 8, "tax_rate": "18.00"},
            instance=stock,
        )

        assert form.is_valid(), form.errors
        form.save()
        assert ledger.current_available("ADM-1") == 3

    def test_product_id_locked_on_change(self, stock, admin_request):
        model_admin = StockLevelAdmin(StockLevel, admin.site)

        assert "product_id" in model_admin.get_readonly_fields(admin_request, stock)
        assert "product_id" not in model_admin.get_readonly_fields(admin_request)


class TestCommitmentAdmin:
    def test_read_only(self, stock, admin_request):
        c = ledger.reserve("ADM-1", "deal", "D-1", 2, line_id="L1")
        model_admin = CommitmentAdmin(Commitment, admin.site)

        assert not model_admin.has_add_permission(admin_request)
        assert not model_admin.has_delete_permission(admin_request, c)
        assert "quantity" in model_admin.get_readonly_fields(admin_request, c)

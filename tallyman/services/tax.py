"""
Line item tax computation (CGST/SGST split).

Given a unit price, a quantity, a tax rate and a billing mode, computes the
taxable value, the two tax components and the line total.

Rounding convention (line-item tax invoices):
- every line is rounded on its own, totals are sums of rounded lines;
- two decimal places, half away from zero;
- CGST is rounded, SGST is the remainder, so CGST + SGST == total tax
  to the paisa.

Usage:
    from tallyman.services.tax import BillingMode, compute_line_amounts

    quote = compute_line_amounts(1000, 2, 18, BillingMode.INCLUSIVE_GST)
    quote.taxable_value   # Decimal("1694.92")
    quote.cgst_amount     # Decimal("152.54")
    quote.total_amount    # Decimal("2000.00")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Iterable

from django.db import models
from django.utils.translation import gettext_lazy as _

from tallyman.exceptions import InvalidInput

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")
# Significant digits for line arithmetic; unit price × quantity is exact
# below this and every amount fits after rounding to paise.
MONEY_PRECISION = 50


class BillingMode(models.TextChoices):
    """Whether the entered unit price already contains tax."""

    INCLUSIVE_GST = "inclusive_gst", _("Inclusive of GST")
    EXCLUSIVE_GST = "exclusive_gst", _("Exclusive of GST")
    NO_GST = "no_gst", _("No GST")


@dataclass(frozen=True)
class LineItemQuote:
    """Tax-split amounts for one line. Not persisted here."""

    unit_price: Decimal
    quantity: Decimal
    tax_rate: Decimal
    billing_mode: BillingMode
    amount: Decimal
    taxable_value: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    total_tax: Decimal
    total_amount: Decimal

    @property
    def cgst_rate(self) -> Decimal:
        return self.tax_rate / 2

    @property
    def sgst_rate(self) -> Decimal:
        return self.tax_rate / 2

    def as_dict(self) -> dict:
        return {
            "unit_price": str(self.unit_price),
            "quantity": str(self.quantity),
            "tax_rate": str(self.tax_rate),
            "cgst_rate": str(self.cgst_rate),
            "sgst_rate": str(self.sgst_rate),
            "billing_mode": self.billing_mode.value,
            "amount": str(self.amount),
            "taxable_value": str(self.taxable_value),
            "cgst_amount": str(self.cgst_amount),
            "sgst_amount": str(self.sgst_amount),
            "total_tax": str(self.total_tax),
            "total_amount": str(self.total_amount),
        }


@dataclass(frozen=True)
class QuoteTotals:
    """Invoice footer: sums of already-rounded lines."""

    line_count: int
    taxable_value: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    total_tax: Decimal
    total_amount: Decimal


def round_money(value: Decimal) -> Decimal:
    """Round to two places, half away from zero."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _to_decimal(value, field: str) -> Decimal:
    """Convert a non-negative finite number to Decimal or raise InvalidInput."""
    # bool is an int subclass; True is not a price
    if isinstance(value, bool) or not isinstance(value, (Decimal, int, float, str)):
        raise InvalidInput(field, value)

    if isinstance(value, Decimal):
        number = value
    else:
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidInput(field, value) from None

    if not number.is_finite() or number < 0:
        raise InvalidInput(field, value)
    return number


def _to_billing_mode(value) -> BillingMode:
    if isinstance(value, BillingMode):
        return value
    try:
        return BillingMode(value)
    except ValueError:
        raise InvalidInput("billing_mode", value, code="INVALID_BILLING_MODE") from None


def compute_line_amounts(
    unit_price: Decimal | int | float | str,
    quantity: Decimal | int | float | str,
    rate_percent: Decimal | int | float | str,
    billing_mode: BillingMode,
) -> LineItemQuote:
    """
    Compute the tax-split amounts of one line item.

    Args:
        unit_price: Price per unit as entered by the user
        quantity: Number of units
        rate_percent: Total tax rate (e.g. 18 for 9% CGST + 9% SGST)
        billing_mode: Whether unit_price already contains tax

    Returns:
        LineItemQuote

    Raises:
        InvalidInput: negative, non-finite or non-numeric argument, an
            amount too large to carry in paise, or a billing mode that is
            not one of BillingMode's values
    """
    price = _to_decimal(unit_price, "unit_price")
    qty = _to_decimal(quantity, "quantity")
    rate = _to_decimal(rate_percent, "rate_percent")
    mode = _to_billing_mode(billing_mode)

    try:
        with localcontext() as ctx:
            ctx.prec = MONEY_PRECISION
            amounts = _split_amounts(price * qty, rate, mode)
    except InvalidOperation:
        # Finite, but more digits than two-place money can carry
        raise InvalidInput("unit_price", unit_price) from None

    return LineItemQuote(
        unit_price=price,
        quantity=qty,
        tax_rate=rate,
        billing_mode=mode,
        **amounts,
    )


def _split_amounts(amount: Decimal, rate: Decimal, mode: BillingMode) -> dict:
    if rate == 0 or mode == BillingMode.NO_GST:
        taxable_value = round_money(amount)
        total_tax = ZERO
        total_amount = taxable_value
    elif mode == BillingMode.INCLUSIVE_GST:
        exact_taxable = amount * HUNDRED / (HUNDRED + rate)
        taxable_value = round_money(exact_taxable)
        total_tax = round_money(amount - exact_taxable)
        total_amount = round_money(amount)
    else:
        taxable_value = round_money(amount)
        total_tax = round_money(amount * rate / HUNDRED)
        total_amount = taxable_value + total_tax

    cgst_amount = round_money(total_tax / 2)
    sgst_amount = total_tax - cgst_amount

    return {
        "amount": round_money(amount),
        "taxable_value": taxable_value,
        "cgst_amount": cgst_amount,
        "sgst_amount": sgst_amount,
        "total_tax": total_tax,
        "total_amount": total_amount,
    }


def normalize_billing_mode(value, default=None) -> BillingMode:
    """
    Turn a configured or user-supplied billing mode into a BillingMode.

    None or a blank string means "use the tenant default". Any other value
    must name a mode exactly (case and surrounding spaces ignored); typos
    raise instead of silently falling back.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is None:
            from tallyman.conf import get_tax_config_backend

            default = get_tax_config_backend().default_billing_mode()
        if default is None or (isinstance(default, str) and not default.strip()):
            raise InvalidInput("billing_mode", default, code="INVALID_BILLING_MODE")
        value = default

    if isinstance(value, BillingMode):
        return value
    if isinstance(value, str):
        return _to_billing_mode(value.strip().lower())
    raise InvalidInput("billing_mode", value, code="INVALID_BILLING_MODE")


def quote_line(
    product_id: str,
    unit_price: Decimal | int | float | str,
    quantity: Decimal | int | float | str,
    billing_mode=None,
    rate_override: Decimal | int | float | str | None = None,
) -> LineItemQuote:
    """
    Quote a line using the tenant's tax configuration.

    The rate comes from the product master unless rate_override is given
    (manual per-line rate). The billing mode is normalized first.
    """
    from tallyman.conf import get_tax_config_backend

    config = get_tax_config_backend()
    mode = normalize_billing_mode(billing_mode, default=config.default_billing_mode())
    rate = rate_override if rate_override is not None else config.tax_rate(product_id)

    quote = compute_line_amounts(unit_price, quantity, rate, mode)
    logger.debug(
        "Quoted %s × %s of %s at %s%% (%s): total %s",
        quote.quantity,
        quote.unit_price,
        product_id,
        quote.tax_rate,
        quote.billing_mode.value,
        quote.total_amount,
    )
    return quote


def summarize_quotes(quotes: Iterable[LineItemQuote]) -> QuoteTotals:
    """Add up rounded lines. The grand total is never re-rounded."""
    quotes = list(quotes)
    return QuoteTotals(
        line_count=len(quotes),
        taxable_value=sum((q.taxable_value for q in quotes), ZERO),
        cgst_amount=sum((q.cgst_amount for q in quotes), ZERO),
        sgst_amount=sum((q.sgst_amount for q in quotes), ZERO),
        total_tax=sum((q.total_tax for q in quotes), ZERO),
        total_amount=sum((q.total_amount for q in quotes), ZERO),
    )

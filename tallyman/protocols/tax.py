"""
Tax Configuration Protocol — Interface for tenant billing settings.

The tax engine is stateless; this backend supplies the tenant's default
billing mode and the per-product tax rate from the product master.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from tallyman.services.tax import BillingMode


@runtime_checkable
class TaxConfigBackend(Protocol):
    def default_billing_mode(self) -> BillingMode:
        """Billing mode used when a line does not specify one."""
        ...

    def tax_rate(self, product_id: str) -> Decimal:
        """Total tax rate percentage for a product (0 when untaxed)."""
        ...

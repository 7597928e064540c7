"""
Tallyman Exceptions.

All tallyman errors derive from TallyError for consistent handling.
The subclasses only pin the error code and the details that go with it,
so callers may catch either the specific class or TallyError and switch on
``code``.
"""

from typing import Any


class TallyError(Exception):
    """
    Base exception for all Tallyman errors.

    Usage:
        raise TallyError('COMMITMENT_NOT_FOUND', commitment_id=42)

    Attributes:
        code: Error code (INSUFFICIENT_STOCK, LEDGER_BUSY, etc.)
        details: Additional context as keyword arguments
    """

    def __init__(self, code: str, **details: Any):
        self.code = code
        self.details = details
        message = f"{code}: {details}" if details else code
        super().__init__(message)

    def as_dict(self) -> dict:
        """Return error as dictionary for API responses."""
        return {"code": self.code, **self.details}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"TallyError({self.code}: {details_str})"
        return f"TallyError({self.code})"


class InvalidInput(TallyError):
    """Non-numeric, negative or otherwise unusable argument."""

    def __init__(self, field: str, value: Any, code: str = "INVALID_INPUT"):
        super().__init__(code, field=field, value=str(value))

    @property
    def field(self) -> str:
        return self.details["field"]


class InsufficientStock(TallyError):
    """Requested quantity exceeds what can still be committed."""

    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__(
            "INSUFFICIENT_STOCK",
            product_id=product_id,
            requested=requested,
            available=available,
        )

    @property
    def product_id(self) -> str:
        return self.details["product_id"]

    @property
    def requested(self) -> int:
        return self.details["requested"]

    @property
    def available(self) -> int:
        return self.details["available"]


class LedgerBusy(TallyError):
    """Per-product lock could not be acquired in time. Safe to retry."""

    def __init__(self, product_id: str):
        super().__init__("LEDGER_BUSY", product_id=product_id)


class TransitionRejected(TallyError):
    """
    A stage transition was refused and every ledger effect rolled back.

    Codes: FULFILLMENT_FAILED, RELEASE_FAILED, RECEIPT_FAILED,
    APPROVAL_PENDING, APPROVAL_REJECTED.
    """

    def __init__(self, code: str, source: Any, stage: str, reason: str = ""):
        super().__init__(code, source=str(source), stage=stage, reason=reason)


# Plain TallyError codes
# COMMITMENT_NOT_FOUND: No commitment with that id
# COMMITMENT_NOT_ACTIVE: Commitment already released or fulfilled
# SOURCE_CLOSED: Line item edit on a source in a terminal stage
# PRODUCT_NOT_FOUND: Inventory has no record for the product

"""
Inventory Backend Protocol.

Defines the interface Tallyman uses to read and change physical on-hand
quantities. The inventory system owns products; Tallyman only owns
commitments against them.

Vocabulary:
    get_on_hand()        →  physical units in stock right now
    decrement_on_hand()  →  permanent deduction (commitment fulfilled)
    increment_on_hand()  →  permanent addition (purchase order received,
                            or compensation of a rolled-back deduction)
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class InventoryBackend(Protocol):
    """
    Interface for Tallyman to access on-hand stock.

    Implementations:
        - StockLevelBackend: Uses tallyman.StockLevel rows (default)
        - Any object with these three methods, e.g. a client for an
          external warehouse system
    """

    def get_on_hand(self, product_id: str) -> int:
        """
        Return physical on-hand quantity.

        Unknown products have nothing on hand and return 0.
        """
        ...

    def decrement_on_hand(self, product_id: str, quantity: int) -> int:
        """
        Permanently remove units from stock.

        Args:
            product_id: Product identifier
            quantity: Positive number of units

        Returns:
            New on-hand quantity

        Raises:
            InsufficientStock: on-hand is below quantity
            TallyError(PRODUCT_NOT_FOUND): unknown product
        """
        ...

    def increment_on_hand(self, product_id: str, quantity: int) -> int:
        """
        Permanently add units to stock.

        Args:
            product_id: Product identifier
            quantity: Positive number of units

        Returns:
            New on-hand quantity
        """
        ...

"""
Tallyman Adapters.

Default implementations of the collaborator protocols. Models are imported
lazily inside methods, so importing an adapter never touches the app
registry.
"""

from tallyman.adapters.noop import AutoApproveBackend
from tallyman.adapters.stock import StockLevelBackend, StockLevelTaxConfig

__all__ = [
    "StockLevelBackend",
    "StockLevelTaxConfig",
    "AutoApproveBackend",
]

"""
Tallyman Settings.

Supports two formats (dict takes priority):

    # Option 1: Dict
    TALLYMAN = {
        "INVENTORY_BACKEND": "myapp.inventory.WarehouseBackend",
        "DEFAULT_BILLING_MODE": "exclusive_gst",
    }

    # Option 2: Flat
    TALLYMAN_INVENTORY_BACKEND = "myapp.inventory.WarehouseBackend"
    TALLYMAN_DEFAULT_BILLING_MODE = "exclusive_gst"

All settings have sensible defaults — zero configuration required.
"""

import threading

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string


# ── Defaults ──

DEFAULTS = {
    "INVENTORY_BACKEND": "tallyman.adapters.stock.StockLevelBackend",
    "APPROVAL_BACKEND": "tallyman.adapters.noop.AutoApproveBackend",
    "TAX_CONFIG_BACKEND": "tallyman.adapters.stock.StockLevelTaxConfig",
    "DEFAULT_BILLING_MODE": "inclusive_gst",
    # Seconds to wait for a product's lock before raising LedgerBusy
    "LOCK_TIMEOUT": 5.0,
    # Stage vocabularies per source type
    "FULFILLMENT_STAGES": {
        "deal": ["closed_won"],
        "sales_order": ["shipped", "delivered"],
    },
    "RELEASE_STAGES": {
        "deal": ["closed_lost"],
        "sales_order": ["cancelled"],
        "purchase_order": ["cancelled"],
    },
    "REJECTION_STAGES": {
        "deal": "closed_lost",
        "sales_order": "cancelled",
        "purchase_order": "cancelled",
    },
    "RECEIPT_STAGES": {
        "purchase_order": ["received"],
    },
}


# ── Accessors ──

_sentinel = object()


def get_setting(name, default=_sentinel):
    """
    Get a tallyman setting.

    Looks up in order:
    1. TALLYMAN dict (e.g. TALLYMAN = {"LOCK_TIMEOUT": 2.0})
    2. Flat setting (e.g. TALLYMAN_LOCK_TIMEOUT = 2.0)
    3. DEFAULTS
    """
    tallyman_dict = getattr(settings, "TALLYMAN", {})
    if name in tallyman_dict:
        return tallyman_dict[name]

    flat_value = getattr(settings, f"TALLYMAN_{name}", _sentinel)
    if flat_value is not _sentinel:
        return flat_value

    if default is not _sentinel:
        return default

    return DEFAULTS.get(name)


def get_lock_timeout() -> float:
    return float(get_setting("LOCK_TIMEOUT"))


def get_stages(kind: str, source_type: str) -> frozenset[str]:
    """
    Return the configured stage names of a kind for one source type.

    kind is one of FULFILLMENT_STAGES, RELEASE_STAGES, RECEIPT_STAGES.
    """
    mapping = get_setting(kind) or {}
    return frozenset(mapping.get(str(source_type), ()))


def get_rejection_stage(source_type: str) -> str | None:
    return (get_setting("REJECTION_STAGES") or {}).get(str(source_type))


# ── Backends ──

_backend_lock = threading.Lock()
_backend_instances: dict[str, object] = {}


def _load_backend(setting_name: str):
    """
    Return the configured backend instance for setting_name.

    Instances are cached per setting and per dotted path, so swapping the
    setting (e.g. with override_settings) picks up the new class.
    """
    path = get_setting(setting_name)
    if not path:
        raise ImproperlyConfigured(f"TALLYMAN['{setting_name}'] must be configured.")

    key = f"{setting_name}:{path}"
    instance = _backend_instances.get(key)
    if instance is None:
        with _backend_lock:
            instance = _backend_instances.get(key)
            if instance is None:  # double-checked
                try:
                    backend_class = import_string(path)
                except ImportError as e:
                    raise ImproperlyConfigured(
                        f"Failed to import {setting_name.lower()} '{path}': {e}"
                    ) from e
                instance = backend_class()
                _backend_instances[key] = instance

    return instance


def get_inventory_backend():
    """Return the InventoryBackend that owns on-hand quantities."""
    return _load_backend("INVENTORY_BACKEND")


def get_approval_backend():
    """Return the ApprovalBackend gating fulfillment and receipt stages."""
    return _load_backend("APPROVAL_BACKEND")


def get_tax_config_backend():
    """Return the TaxConfigBackend supplying billing mode and tax rates."""
    return _load_backend("TAX_CONFIG_BACKEND")


def reset_backends() -> None:
    """Reset cached backend singletons (for tests)."""
    with _backend_lock:
        _backend_instances.clear()

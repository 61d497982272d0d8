"""
Bookman Settings.

Supports two formats (dict takes priority):

    # Option 1: Dict
    BOOKMAN = {
        "BILLING_PERIOD": timedelta(hours=1),
        "DEFAULT_PRICING_STRATEGY": "highest",
    }

    # Option 2: Flat
    BOOKMAN_BILLING_PERIOD = timedelta(hours=1)
    BOOKMAN_DEFAULT_PRICING_STRATEGY = "highest"

All settings have defaults; zero configuration required.
"""

import threading
from datetime import timedelta

from django.conf import settings


# ── Defaults ──

DEFAULTS = {
    "BILLING_PERIOD": timedelta(days=1),
    "DEFAULT_PRICING_STRATEGY": "lowest",
    "SWEEP_ON_CLAIM": True,
    "CLAIM_REFERENCE_PREFIX": "cart",
    "PRICE_BACKEND": None,
}


# ── Accessors ──

_sentinel = object()


def get_setting(name, default=_sentinel):
    """
    Get a bookman setting.

    Looks up in order:
    1. BOOKMAN dict (e.g. BOOKMAN = {"BILLING_PERIOD": ...})
    2. Flat setting (e.g. BOOKMAN_BILLING_PERIOD = ...)
    3. DEFAULTS
    """
    bookman_dict = getattr(settings, "BOOKMAN", {})
    if name in bookman_dict:
        return bookman_dict[name]

    flat_value = getattr(settings, f"BOOKMAN_{name}", _sentinel)
    if flat_value is not _sentinel:
        return flat_value

    if default is not _sentinel:
        return default

    return DEFAULTS.get(name)


def get_billing_period() -> timedelta:
    """Return the billable unit for time-bound resources."""
    period = get_setting("BILLING_PERIOD")
    if not isinstance(period, timedelta) or period <= timedelta(0):
        raise ValueError(f"BOOKMAN BILLING_PERIOD must be a positive timedelta, got {period!r}")
    return period


_price_backend_lock = threading.Lock()
_price_backend_instance = None


def get_price_backend():
    """
    Return the configured price backend instance.

    The price backend answers "what is the current unit price of this
    resource (or pool)?" on behalf of the catalog. Without PRICE_BACKEND
    the built-in ModelPriceBackend (reads price_q) is used.
    """
    global _price_backend_instance

    if _price_backend_instance is None:
        with _price_backend_lock:
            if _price_backend_instance is None:  # double-checked
                path = get_setting("PRICE_BACKEND")
                if path:
                    from django.utils.module_loading import import_string

                    _price_backend_instance = import_string(path)()
                else:
                    from bookman.adapters.prices import ModelPriceBackend

                    _price_backend_instance = ModelPriceBackend()

    return _price_backend_instance


def reset_price_backend() -> None:
    """Reset singleton (for tests)."""
    global _price_backend_instance
    _price_backend_instance = None

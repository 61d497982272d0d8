"""
Bookman Adapters.

Implementations of protocols for external systems.
"""

from bookman.adapters.prices import ModelPriceBackend, effective_price

__all__ = [
    "ModelPriceBackend",
    "effective_price",
]

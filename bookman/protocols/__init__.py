"""
Bookman Protocols.

Defines interfaces for external integrations.
"""

from bookman.protocols.pricing import PriceBackend

__all__ = [
    # Pricing Protocol
    "PriceBackend",
]

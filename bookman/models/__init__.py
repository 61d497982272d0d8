"""
Bookman Models.

Core models for time-windowed reservations:
- StockEntry: Append-only stock ledger line (increase, decrease, claim, return)
- Resource: Sellable unit type with its own ledger and price
- Pool: "Any one of N" interchangeable resources sold as one product
- PoolMembership: Ordered pool ↔ resource link
- Cart / CartItem: Uncommitted allocation set (drafts, never in the ledger)
"""

from bookman.models.stock import UNLIMITED, StockEntry, StockEntryKind, StockEntryStatus
from bookman.models.resource import Pool, PoolMembership, PricingStrategy, Resource, ResourceKind
from bookman.models.cart import Cart, CartItem, CartStatus

__all__ = [
    "UNLIMITED",
    "StockEntry",
    "StockEntryKind",
    "StockEntryStatus",
    "Resource",
    "ResourceKind",
    "Pool",
    "PoolMembership",
    "PricingStrategy",
    "Cart",
    "CartItem",
    "CartStatus",
]

"""
Bookman Services.

Business logic composed into the Book facade:
- stock: Increase, decrease, claim, release, sweep, availability
- pools: Quotes, dry-run allocation, availability calendar
- carts: Add, remove, set_window, checkout, cancel
"""

from bookman.services.carts import BookCart
from bookman.services.pools import BookPools
from bookman.services.stock import BookStock

__all__ = [
    "BookStock",
    "BookPools",
    "BookCart",
]

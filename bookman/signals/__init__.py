"""
Bookman Signals.

All communication with external systems happens via signals.
This ensures decoupling and allows for easy testing.

Signals:
    stock_claimed: A claim was written to a resource's ledger
    claim_released: A pending claim was released (returned or expired)
    cart_reallocated: A cart moved to a new window
    cart_checked_out: A cart was converted into claims
    cart_cancelled: A cart was abandoned, its claims must be released
"""

from django.dispatch import Signal

# Claim written
# Sent by Resource.claim()
# Args: claim (StockEntry), resource
stock_claimed = Signal()

# Claim released
# Sent by StockEntry.release()
# Args: claim, resource, reason ("released", "expired", "cancelled", ...)
claim_released = Signal()

# Cart window changed
# Sent by Cart.set_window()
# Args: cart, result (ReallocationResult)
cart_reallocated = Signal()

# Cart converted into claims
# Sent by Cart.checkout()
# Args: cart, claims (list of StockEntry)
cart_checked_out = Signal()

# Cart abandoned
# Sent by Cart.cancel()
# Args: cart, reason
cart_cancelled = Signal()

__all__ = [
    "stock_claimed",
    "claim_released",
    "cart_reallocated",
    "cart_checked_out",
    "cart_cancelled",
]

"""
Bookman Exceptions.

All bookman errors derive from BookError for consistent handling.
"""

from typing import Any


class BookError(Exception):
    """
    Base exception for all Bookman errors.

    Usage:
        raise BookError('LEDGER_IMMUTABLE', entry=42)

    Attributes:
        code: Error code (INVALID_TIMESPAN, INSUFFICIENT_STOCK, etc.)
        message: Human readable message, surfaced verbatim when given
        details: Additional context as keyword arguments
    """

    code = "BOOK_ERROR"

    def __init__(self, code: str | None = None, message: str | None = None, **details: Any):
        if code is not None:
            self.code = code
        self.message = message
        self.details = details
        super().__init__(message or (f"{self.code}: {details}" if details else self.code))

    def as_dict(self) -> dict:
        """Return error as dictionary for API responses."""
        data = {"code": self.code, **self.details}
        if self.message:
            data["message"] = self.message
        return data

    def __str__(self) -> str:
        if self.message:
            return self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"BookError({self.code}: {details_str})"
        return f"BookError({self.code})"


class InvalidTimespan(BookError):
    """Malformed, unordered or past-dated window at a booking point."""

    code = "INVALID_TIMESPAN"

    def __init__(self, message: str, **details: Any):
        super().__init__(None, message, **details)


class InsufficientStock(BookError):
    """A single-resource claim or decrease exceeds availability."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, resource: str, requested: int, available: int, **details: Any):
        super().__init__(
            None,
            f"Not enough stock for '{resource}'. Requested: {requested}, Available: {available}.",
            resource=resource,
            requested=requested,
            available=available,
            **details,
        )

    @property
    def available(self) -> int:
        return self.details["available"]


class NotEnoughStock(BookError):
    """Pool allocation ran out before the requested quantity was reached."""

    code = "NOT_ENOUGH_STOCK"

    def __init__(self, requested: int, available: int, **details: Any):
        super().__init__(
            None,
            f"Only {available} unit(s) available, but {requested} requested.",
            requested=requested,
            available=available,
            **details,
        )

    @property
    def available(self) -> int:
        return self.details["available"]


class NoPriceAvailable(BookError):
    """No member has both a price and remaining capacity."""

    code = "NO_PRICE_AVAILABLE"

    def __init__(self, target: str, **details: Any):
        super().__init__(
            None, f"'{target}' has no priced item available.", target=target, **details
        )


class NotEnoughAvailableInTimespan(BookError):
    """A cart-level window change cannot be satisfied in strict mode."""

    code = "NOT_ENOUGH_AVAILABLE_IN_TIMESPAN"

    def __init__(self, target: str, requested: int, available: int, starts_at, ends_at):
        super().__init__(
            None,
            f"Not enough '{target}' available in the requested timespan. "
            f"Requested: {requested}, Available: {available}.",
            target=target,
            requested=requested,
            available=available,
            starts_at=starts_at,
            ends_at=ends_at,
        )


class CartNotReady(BookError):
    """Cart has items missing dates or prices."""

    code = "CART_NOT_READY"

    def __init__(self, items: dict, **details: Any):
        super().__init__(None, "Cart is not ready for checkout.", items=items, **details)


class InvalidPoolConfiguration(BookError):
    """Pool cannot be sold as configured."""

    code = "INVALID_POOL_CONFIGURATION"

    def __init__(self, pool: str, reason: str, **details: Any):
        super().__init__(None, f"Pool '{pool}': {reason}", pool=pool, reason=reason, **details)


# Common error codes
# INVALID_TIMESPAN: from/until missing, unordered or in the past
# INSUFFICIENT_STOCK: Single resource cannot cover the quantity
# NOT_ENOUGH_STOCK: Pool exhausted before quantity was reached
# NO_PRICE_AVAILABLE: Capacity exists but nothing has a price
# NOT_ENOUGH_AVAILABLE_IN_TIMESPAN: Strict cart window change failed
# CART_NOT_READY: Cart items need dates or prices
# LEDGER_IMMUTABLE: Attempt to edit or delete a ledger entry

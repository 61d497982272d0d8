"""
Django Bookman - Time-windowed reservation and pool allocation.

Append-only stock ledger, greedy pool allocation and cart reallocation
for products sold over a date range.

Usage:
    from bookman import book, BookError

    # Stock
    room.increase(2)
    claim = room.claim(1, starts_at=checkin, ends_at=checkout)
    room.available_on(checkin)  # → 1
    claim.release()

    # Cart
    cart = Cart.objects.create(session_key="abc")
    book.add(cart, parking_pool, 2, starts_at=checkin, ends_at=checkout)
    result = book.set_window(cart, new_checkin, new_checkout)

    for item in result.unavailable:
        print(f"Indisponível: {item} - {item.quantity}")

    claims = book.checkout(cart)
"""

from bookman.exceptions import BookError


def __getattr__(name):
    """Lazy import to avoid AppRegistryNotReady errors."""
    if name in ("book", "Book"):
        from bookman.service import Book

        return Book
    if name == "ReallocationResult":
        from bookman.results import ReallocationResult

        return ReallocationResult
    if name == "Window":
        from bookman.timespan import Window

        return Window
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["book", "Book", "BookError", "ReallocationResult", "Window"]
__version__ = "0.1.0"

"""
Bookman Service - Thin wrapper over models.

✅ LÓGICA DE NEGÓCIO ESTÁ NOS MODELOS (SIREL principle)
Esta classe é um thin wrapper para conveniência.

Usage:
    from bookman import book, BookError

    # Stock
    book.increase(room, 2)
    claim = book.claim(room, 1, starts_at=d5, ends_at=d10, reference="order:42")
    book.available(room, d7)          # → 1
    book.release(claim)

    # Pools
    book.quote(suites, d5, d10)       # → Quote(current=..., lowest=..., highest=...)

    # Cart
    cart = book.get_cart(request.session.session_key)
    book.add(cart, suites, 2, d5, d10)
    result = book.set_window(cart, d6, d11)
    claims = book.checkout(cart)
"""

from bookman.services import BookCart, BookPools, BookStock


class Book(BookStock, BookPools, BookCart):
    """
    Serviço de reservas.

    Composed from the service mixins; every method is a classmethod.
    """


book = Book

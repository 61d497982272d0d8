"""
Cart service -- add, remove, set_window, checkout, cancel.

Thin wrappers over Cart model methods, plus cart lookup by session.
"""

import logging

from bookman.models import Cart, CartStatus

logger = logging.getLogger(__name__)


class BookCart:
    """Cart operations."""

    @classmethod
    def get_cart(cls, session_key: str, create: bool = True) -> Cart | None:
        """Active cart of a session (created on demand)."""
        cart = (
            Cart.objects.filter(session_key=session_key, status=CartStatus.ACTIVE)
            .order_by("-created_at")
            .first()
        )
        if cart is None and create:
            cart = Cart.objects.create(session_key=session_key)
            logger.info(f"Created cart {cart.uuid}", extra={"cart": str(cart.uuid)})
        return cart

    @classmethod
    def add(cls, cart: Cart, target, quantity: int = 1, starts_at=None, ends_at=None, parameters=None, now=None):
        return cart.add(
            target,
            quantity,
            starts_at=starts_at,
            ends_at=ends_at,
            parameters=parameters,
            now=now,
        )

    @classmethod
    def remove(cls, cart: Cart, target, quantity: int = 1, parameters=None):
        return cart.remove(target, quantity, parameters=parameters)

    @classmethod
    def set_window(
        cls,
        cart: Cart,
        starts_at,
        ends_at,
        validate: bool = True,
        overwrite_item_windows: bool = True,
        strict: bool = False,
        now=None,
    ):
        """Troca o período do carrinho (ver Cart.set_window)."""
        return cart.set_window(
            starts_at,
            ends_at,
            validate=validate,
            overwrite_item_windows=overwrite_item_windows,
            strict=strict,
            now=now,
        )

    @classmethod
    def checkout(cls, cart: Cart, now=None):
        claims = cart.checkout(now=now)
        cart.refresh_from_db()
        return claims

    @classmethod
    def cancel(cls, cart: Cart, reason: str = "cancelled") -> Cart:
        """Cancela o carrinho e libera reservas já emitidas."""
        cart.cancel(reason)
        cart.refresh_from_db()
        return cart

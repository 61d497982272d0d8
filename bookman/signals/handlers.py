"""
Bookman Signal Handlers.

Releases a cart's claims when the cart is cancelled.

This module is imported in apps.py to register handlers.
"""

import logging

from django.dispatch import receiver

from bookman.signals import cart_cancelled

logger = logging.getLogger(__name__)


@receiver(cart_cancelled)
def release_cart_claims(sender, cart, reason="cancelled", **kwargs):
    """
    When a cart is cancelled, give its claimed stock back.

    Carts cancelled before checkout hold no claims: nothing happens.
    """
    released = cart.release_claims(reason=reason)

    if released:
        logger.info(
            f"Released {released} claim(s) of cancelled cart {cart.uuid}",
            extra={"cart": str(cart.uuid), "released": released, "reason": reason},
        )

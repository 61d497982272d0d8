"""
Model Price Backend.

Implements PriceBackend by reading `price_q` straight from the models.
Projects with a price list (sales, validity windows) point
BOOKMAN["PRICE_BACKEND"] at their own implementation instead.
"""

import logging
from datetime import datetime

logger = logging.getLogger(__name__)


class ModelPriceBackend:
    """
    Implementação padrão do PriceBackend.

    Exemplo de uso:
        from bookman.conf import get_price_backend

        backend = get_price_backend()
        backend.resource_price(room, timezone.now())  # → 12000
    """

    def resource_price(self, resource, at: datetime) -> int | None:
        return resource.price_q

    def pool_price(self, pool, at: datetime) -> int | None:
        return pool.price_q


def effective_price(backend, resource, pool, at: datetime) -> int | None:
    """Member price, falling back to the pool's own price."""
    price = backend.resource_price(resource, at)
    if price is None and pool is not None:
        price = backend.pool_price(pool, at)
    return price

"""
Price Backend Protocol.

Defines how Bookman asks the catalog for the current unit price of a
resource or a pool. Prices are integer minor units (cents); None means
"no price", which is different from 0 (free).

Vocabulary mapping (Bookman → catalog):
    resource_price()  →  current effective price of the product
    pool_price()      →  pool's own (fallback) price
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PriceBackend(Protocol):
    """
    Interface para o Bookman consultar preços.

    Implementações:
        - ModelPriceBackend: Lê price_q dos modelos (padrão)
        - MagicMock / classes de teste: para preços dinâmicos
    """

    def resource_price(self, resource: Any, at: datetime) -> int | None:
        """
        Preço unitário atual do recurso.

        Args:
            resource: Resource
            at: Instante de referência (promoções, vigência)

        Returns:
            Preço em centavos, ou None se não houver preço
        """
        ...

    def pool_price(self, pool: Any, at: datetime) -> int | None:
        """
        Preço próprio do pool (fallback para membros sem preço).

        Returns:
            Preço em centavos, ou None
        """
        ...

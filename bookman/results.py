"""
Bookman Result Types.

Structured results for cart reallocation and pool quotes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bookman.models import CartItem
    from bookman.timespan import Window


@dataclass
class ReallocationResult:
    """
    Resultado de uma troca de período do carrinho.

    reallocated: entries re-derived (or re-priced) under the new window
    unavailable: entries that could not be satisfied and were marked so
    """

    window: Window | None
    validated: bool = True
    reallocated: list[CartItem] = field(default_factory=list)
    unavailable: list[CartItem] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.unavailable

    @property
    def has_unavailable(self) -> bool:
        return len(self.unavailable) > 0


@dataclass(frozen=True)
class Quote:
    """Preços cotados para a próxima unidade de um pool (None = esgotado)."""

    current: int | None
    lowest: int | None
    highest: int | None

    @property
    def is_available(self) -> bool:
        return self.current is not None

    def as_dict(self) -> dict:
        return {"current": self.current, "lowest": self.lowest, "highest": self.highest}

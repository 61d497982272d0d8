"""
Stock service: increase, decrease, claim, release, sweep, availability.

All methods are @classmethod so the mixin can be composed into Book
without instantiation.
"""

import logging

from bookman.models import Resource, StockEntry
from bookman.timespan import Window

logger = logging.getLogger(__name__)


class BookStock:
    """
    Single-resource ledger operations.

    Thin wrappers over Resource / StockEntry model methods.
    """

    @classmethod
    def increase(cls, resource: Resource, quantity: int = 1, note: str = "", reference: str = "") -> bool:
        """Entrada de estoque."""
        return resource.increase(quantity, note=note, reference=reference)

    @classmethod
    def decrease(
        cls,
        resource: Resource,
        quantity: int = 1,
        until=None,
        note: str = "",
        reference: str = "",
    ) -> bool:
        """Saída de estoque (temporária com `until`)."""
        return resource.decrease(quantity, until=until, note=note, reference=reference)

    @classmethod
    def claim(
        cls,
        resource: Resource,
        quantity: int = 1,
        starts_at=None,
        ends_at=None,
        note: str = "",
        reference: str = "",
        now=None,
    ) -> StockEntry | None:
        """Reserva estoque para um período."""
        return resource.claim(
            quantity,
            starts_at=starts_at,
            ends_at=ends_at,
            note=note,
            reference=reference,
            now=now,
        )

    @classmethod
    def release(cls, claim: StockEntry, reason: str = "released", now=None) -> bool:
        """Idempotent: False when the claim was already released."""
        return claim.release(now=now, reason=reason)

    @classmethod
    def release_expired(cls, now=None, resource: Resource | None = None) -> int:
        return StockEntry.release_expired(now=now, resource=resource)

    @classmethod
    def available(cls, resource: Resource, starts_at=None, ends_at=None, now=None) -> int:
        """
        Availability of a resource.

        No dates: now. Only `starts_at`: at that instant. Both: over the window.
        """
        if starts_at is None and ends_at is None:
            return resource.available_stock(now)
        if ends_at is None:
            return resource.available_on(starts_at)
        return resource.available_on_range(Window.of(starts_at, ends_at), now=now)

"""
Pool service: quotes, dry-run allocation, availability calendar.
"""

from django.utils import timezone

from bookman.allocation import (
    allocate,
    build_snapshot,
    current_price,
    group_assignments,
    highest_available_price,
    lowest_available_price,
)
from bookman.models import Cart, Pool
from bookman.results import Quote
from bookman.timespan import Window


class BookPools:
    """Read-only pool operations. Nothing here writes to the ledger or carts."""

    @classmethod
    def _context(cls, pool: Pool, starts_at, ends_at, cart: Cart | None, now):
        now = now or timezone.now()
        window = Window.of(starts_at, ends_at)
        if window is None and cart is not None:
            window = cart.window
        snapshot = build_snapshot(pool, window, now=now)
        usage = cart.drafted_usage(window) if cart is not None else {}
        return snapshot, usage

    @classmethod
    def quote(cls, pool: Pool, starts_at=None, ends_at=None, cart: Cart | None = None, now=None) -> Quote:
        """
        Preço da próxima unidade no contexto do carrinho.

        Each field is None once the pool has no priced capacity left.
        """
        snapshot, usage = cls._context(pool, starts_at, ends_at, cart, now)
        return Quote(
            current=current_price(snapshot, usage),
            lowest=lowest_available_price(snapshot, usage),
            highest=highest_available_price(snapshot, usage),
        )

    @classmethod
    def allocate(
        cls,
        pool: Pool,
        quantity: int = 1,
        starts_at=None,
        ends_at=None,
        cart: Cart | None = None,
        now=None,
    ) -> list[tuple]:
        """
        Dry run: which resources would `quantity` units get, at what price.

        Returns [(resource, unit_price_q, quantity), ...].

        Raises:
            NotEnoughStock, NoPriceAvailable
        """
        snapshot, usage = cls._context(pool, starts_at, ends_at, cart, now)
        return group_assignments(allocate(snapshot, quantity, usage))

    @classmethod
    def calendar(cls, pool: Pool, start, end, now=None) -> dict[str, int | None]:
        """Capacidade diária do pool (None = ilimitado)."""
        return pool.availability_calendar(start, end, now=now)

"""
Allocation engine.

Given a pool snapshot (every member's capacity and effective price read
once, for one window) and the quantities already drafted in the current
cart, picks the next resource to sell and at what price.

Pure functions: no ORM writes, no clock reads. Reallocation is always a
full re-derivation, so ranking greedily per unit is enough.

Usage:
    snapshot = build_snapshot(pool, window)
    assignments = allocate(snapshot, 3, drafted_usage={room_a.pk: 1})
    for resource, unit_price_q, quantity in group_assignments(assignments):
        ...
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Mapping

from django.utils import timezone

from bookman.exceptions import NoPriceAvailable, NotEnoughStock
from bookman.models.resource import PricingStrategy
from bookman.models.stock import UNLIMITED
from bookman.timespan import Window, billable_periods

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════
# DATA TYPES
# ══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Candidate:
    """Um membro do pool com preço efetivo e capacidade na janela."""

    resource: Any
    price_q: int | None
    capacity: int
    position: int = 0

    @property
    def resource_id(self):
        return self.resource.pk

    @property
    def is_priced(self) -> bool:
        return self.price_q is not None

    def remaining(self, usage: Mapping) -> int:
        if self.capacity == UNLIMITED:
            return UNLIMITED
        return max(0, self.capacity - usage.get(self.resource_id, 0))


@dataclass(frozen=True)
class PoolSnapshot:
    """
    Consistent view of a pool for one window.

    All capacities are read before any decision is made.
    """

    target: Any
    strategy: str
    window: Window | None
    candidates: tuple[Candidate, ...] = field(default_factory=tuple)

    @property
    def label(self) -> str:
        return getattr(self.target, "code", str(self.target))


@dataclass(frozen=True)
class Assignment:
    """One unit bound to a resource."""

    resource: Any
    price_q: int
    unit_price_q: int

    @property
    def resource_id(self):
        return self.resource.pk


# ══════════════════════════════════════════════════════════════
# SNAPSHOTS
# ══════════════════════════════════════════════════════════════


def build_snapshot(pool, window: Window | None = None, now=None, price_backend=None) -> PoolSnapshot:
    """
    Read every member's effective price and capacity once.

    Effective price = member price, else the pool's own price. Pool-level
    stock only applies when no member manages its own stock.
    """
    from bookman.adapters.prices import effective_price
    from bookman.conf import get_price_backend

    now = now or timezone.now()
    backend = price_backend or get_price_backend()
    members = pool.ordered_members()
    pool_blocks = pool.manages_stock and not any(m.manages_stock for m in members)

    candidates = []
    for position, member in enumerate(members):
        price = effective_price(backend, member, pool, now)
        capacity = 0 if pool_blocks else member.available_for(window, now=now)
        candidates.append(Candidate(member, price, capacity, position))

    return PoolSnapshot(
        target=pool,
        strategy=pool.strategy,
        window=window,
        candidates=tuple(candidates),
    )


def build_resource_snapshot(resource, window: Window | None = None, now=None, price_backend=None) -> PoolSnapshot:
    """Single-candidate snapshot for a bare resource."""
    from bookman.conf import get_price_backend

    now = now or timezone.now()
    backend = price_backend or get_price_backend()
    candidate = Candidate(
        resource,
        backend.resource_price(resource, now),
        resource.available_for(window, now=now),
    )
    return PoolSnapshot(
        target=resource,
        strategy=PricingStrategy.LOWEST,
        window=window,
        candidates=(candidate,),
    )


# ══════════════════════════════════════════════════════════════
# RANKING
# ══════════════════════════════════════════════════════════════


def _rank_lowest(candidates: list[Candidate]) -> list[Candidate]:
    return sorted(candidates, key=lambda c: (c.price_q, c.position))


def _rank_highest(candidates: list[Candidate]) -> list[Candidate]:
    return sorted(candidates, key=lambda c: (-c.price_q, c.position))


def _rank_average(candidates: list[Candidate]) -> list[Candidate]:
    # A single unit cannot itself average: membership order
    return sorted(candidates, key=lambda c: c.position)


RANKERS: dict[PricingStrategy, Callable[[list[Candidate]], list[Candidate]]] = {
    PricingStrategy.LOWEST: _rank_lowest,
    PricingStrategy.HIGHEST: _rank_highest,
    PricingStrategy.AVERAGE: _rank_average,
}


def ranked_candidates(snapshot: PoolSnapshot, drafted_usage: Mapping | None = None) -> list[Candidate]:
    """Priced candidates with remaining capacity, in strategy order."""
    usage = drafted_usage or {}
    available = [
        c for c in snapshot.candidates if c.is_priced and c.remaining(usage) > 0
    ]
    return RANKERS[PricingStrategy(snapshot.strategy)](available)


def unit_price_for(price_q: int, window: Window | None, time_bound: bool) -> int:
    """Price billed per unit: per period × periods for time-bound resources."""
    if time_bound and window is not None and window.is_complete:
        return price_q * billable_periods(window)
    return price_q


# ══════════════════════════════════════════════════════════════
# ALLOCATION
# ══════════════════════════════════════════════════════════════


def next_available(snapshot: PoolSnapshot, drafted_usage: Mapping | None = None) -> Assignment | None:
    """
    Next resource to sell under the snapshot's window.

    Returns None when no member has both a price and remaining capacity.
    """
    ranked = ranked_candidates(snapshot, drafted_usage)
    if not ranked:
        return None

    head = ranked[0]
    return Assignment(
        resource=head.resource,
        price_q=head.price_q,
        unit_price_q=unit_price_for(head.price_q, snapshot.window, head.resource.is_time_bound),
    )


def allocate(snapshot: PoolSnapshot, quantity: int, drafted_usage: Mapping | None = None) -> list[Assignment]:
    """
    Bind `quantity` units, one next_available() call per unit.

    Raises:
        NoPriceAvailable: capacity exists but no priced member has any
        NotEnoughStock: ran out before `quantity` (carries units available)
    """
    if quantity <= 0:
        raise ValueError("quantity must be positive")

    usage = Counter(drafted_usage or {})
    assignments: list[Assignment] = []

    while len(assignments) < quantity:
        assignment = next_available(snapshot, usage)
        if assignment is None:
            break
        assignments.append(assignment)
        usage[assignment.resource_id] += 1

    if not assignments:
        unpriced_capacity = any(
            not c.is_priced and c.remaining(usage) > 0 for c in snapshot.candidates
        )
        if unpriced_capacity:
            raise NoPriceAvailable(snapshot.label)
        raise NotEnoughStock(quantity, 0, target=snapshot.label)

    if len(assignments) < quantity:
        raise NotEnoughStock(quantity, len(assignments), target=snapshot.label)

    return assignments


def group_assignments(assignments: list[Assignment]) -> list[tuple[Any, int, int]]:
    """Collapse to (resource, unit_price_q, quantity), preserving allocation order."""
    grouped: dict[tuple, list] = {}
    for assignment in assignments:
        key = (assignment.resource_id, assignment.unit_price_q)
        if key in grouped:
            grouped[key][2] += 1
        else:
            grouped[key] = [assignment.resource, assignment.unit_price_q, 1]
    return [tuple(group) for group in grouped.values()]


# ══════════════════════════════════════════════════════════════
# QUOTES
# ══════════════════════════════════════════════════════════════


def current_price(snapshot: PoolSnapshot, drafted_usage: Mapping | None = None) -> int | None:
    """
    Quoted price of the next unit.

    AVERAGE quotes the rounded mean of every member that can still sell,
    even though each assignment is billed at its own member's price.
    """
    ranked = ranked_candidates(snapshot, drafted_usage)
    if not ranked:
        return None

    if PricingStrategy(snapshot.strategy) == PricingStrategy.AVERAGE:
        mean = Decimal(sum(c.price_q for c in ranked)) / len(ranked)
        return int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return ranked[0].price_q


def lowest_available_price(snapshot: PoolSnapshot, drafted_usage: Mapping | None = None) -> int | None:
    ranked = ranked_candidates(snapshot, drafted_usage)
    return min((c.price_q for c in ranked), default=None)


def highest_available_price(snapshot: PoolSnapshot, drafted_usage: Mapping | None = None) -> int | None:
    ranked = ranked_candidates(snapshot, drafted_usage)
    return max((c.price_q for c in ranked), default=None)


def satisfiable_quantity(snapshot: PoolSnapshot, drafted_usage: Mapping | None = None) -> int:
    """Units still sellable (priced capacity), UNLIMITED if any member is."""
    total = 0
    for candidate in ranked_candidates(snapshot, drafted_usage):
        remaining = candidate.remaining(drafted_usage or {})
        if remaining == UNLIMITED:
            return UNLIMITED
        total += remaining
    return total

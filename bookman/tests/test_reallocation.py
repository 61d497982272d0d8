"""
Tests for Cart.set_window() reallocation.

Covers:
- Full re-derivation (freed cheap resources picked up, busy ones dropped)
- Idempotence
- Mark-unavailable fallback vs strict mode
- Verbatim storage of cart-level dates
- validate=False repricing
- overwrite_item_windows
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from django.utils import timezone

from bookman.exceptions import InvalidTimespan, NotEnoughAvailableInTimespan
from bookman.models import Cart, Pool, PricingStrategy, Resource, ResourceKind
from bookman.results import ReallocationResult
from bookman.signals import cart_reallocated


# ═══════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════


@pytest.fixture
def d():
    base = timezone.now().replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=30)

    def _day(n: int):
        return base + timedelta(days=n)

    return _day


def make_room(code, price_q, stock=1):
    resource = Resource.objects.create(
        code=code, name=code.title(), kind=ResourceKind.BOOKING, price_q=price_q
    )
    resource.increase(stock)
    return resource


@pytest.fixture
def rooms(db):
    """X (cheap), Y, Z (expensive), one unit each."""
    return {
        "x": make_room("room-x", 100),
        "y": make_room("room-y", 200),
        "z": make_room("room-z", 300),
    }


@pytest.fixture
def pool(rooms):
    pool = Pool.objects.create(code="rooms", name="Quartos", strategy=PricingStrategy.LOWEST)
    pool.add_members(rooms["x"], rooms["y"], rooms["z"])
    return pool


@pytest.fixture
def cart(db):
    return Cart.objects.create(session_key="realloc")


def assignments(cart):
    return [
        (
            item.assigned_resource.code if item.assigned_resource else None,
            item.unit_price_q,
            item.quantity,
            item.is_available,
        )
        for item in cart.items.order_by("created_at", "pk")
    ]


# ═══════════════════════════════════════════════════════════════════
# Re-derivation
# ═══════════════════════════════════════════════════════════════════


class TestReallocation:
    def test_busy_cheap_resource_is_dropped(self, cart, pool, rooms, d):
        """X and Y drafted for W1; X taken elsewhere for W2 → Y and Z, not X."""
        cart.add(pool, 2, d(1), d(3))
        assert assignments(cart) == [("room-x", 200, 1, True), ("room-y", 400, 1, True)]

        rooms["x"].claim(1, starts_at=d(5), ends_at=d(7), reference="elsewhere")
        result = cart.set_window(d(5), d(7))

        assert assignments(cart) == [("room-y", 400, 1, True), ("room-z", 600, 1, True)]
        assert result.success
        assert len(result.reallocated) == 2

    def test_freed_cheap_resource_is_picked_up(self, cart, pool, rooms, d):
        rooms["x"].claim(1, starts_at=d(1), ends_at=d(3), reference="elsewhere")
        cart.add(pool, 1, d(1), d(3))
        assert assignments(cart) == [("room-y", 400, 1, True)]

        cart.set_window(d(5), d(6))

        assert assignments(cart) == [("room-x", 100, 1, True)]

    def test_idempotent(self, cart, pool, rooms, d):
        cart.add(pool, 2, d(1), d(3))
        rooms["x"].claim(1, starts_at=d(5), ends_at=d(7), reference="elsewhere")

        cart.set_window(d(5), d(7))
        first = assignments(cart)
        cart.set_window(d(5), d(7))

        assert assignments(cart) == first

    def test_same_window_again_keeps_assignments(self, cart, pool, d):
        cart.add(pool, 3, d(1), d(3))
        before = assignments(cart)

        cart.set_window(d(1), d(3))

        assert assignments(cart) == before

    def test_price_follows_duration(self, cart, pool, d):
        cart.add(pool, 1, d(1), d(2))

        cart.set_window(d(1), d(5))

        assert assignments(cart) == [("room-x", 400, 1, True)]

    def test_bare_time_bound_resource_is_repriced(self, cart, rooms, d):
        cart.add(rooms["z"], 1, d(1), d(2))

        cart.set_window(d(3), d(6))

        item = cart.items.get()
        assert (item.starts_at, item.ends_at) == (d(3), d(6))
        assert item.unit_price_q == 900

    def test_emits_cart_reallocated(self, cart, pool, d):
        cart.add(pool, 1, d(1), d(2))
        handler = MagicMock()
        cart_reallocated.connect(handler, weak=False)
        try:
            result = cart.set_window(d(3), d(4))
        finally:
            cart_reallocated.disconnect(handler)

        handler.assert_called_once()
        assert handler.call_args.kwargs["result"] is result
        assert isinstance(result, ReallocationResult)


# ═══════════════════════════════════════════════════════════════════
# Idempotence with split entries
# ═══════════════════════════════════════════════════════════════════


def labelled(cart):
    return [
        (item.parameters.get("who"), item.assigned_resource.code, item.unit_price_q, item.quantity)
        for item in cart.items.order_by("created_at", "pk")
    ]


class TestSplitEntries:
    @pytest.fixture
    def hostel(self, db):
        """X (cheap, two units), Y, Z."""
        pool = Pool.objects.create(code="hostel", name="Albergue", strategy=PricingStrategy.LOWEST)
        pool.add_members(
            make_room("bed-x", 100, stock=2),
            make_room("bed-y", 200),
            make_room("bed-z", 300),
        )
        return pool

    def test_split_entry_keeps_its_place(self, cart, hostel, d):
        cart.add(hostel, 2, d(1), d(3), parameters={"who": "a"})
        cart.add(hostel, 1, d(1), d(3), parameters={"who": "b"})
        Resource.objects.get(code="bed-x").claim(1, starts_at=d(5), ends_at=d(7))

        cart.set_window(d(5), d(7))
        first = labelled(cart)
        cart.set_window(d(5), d(7))

        assert first == [
            ("a", "bed-x", 200, 1),
            ("b", "bed-z", 600, 1),
            ("a", "bed-y", 400, 1),
        ]
        assert labelled(cart) == first

    def test_entry_split_at_add_is_stable(self, cart, pool, d):
        cart.add(pool, 2, d(1), d(3), parameters={"who": "a"})
        cart.add(pool, 1, d(1), d(3), parameters={"who": "b"})
        before = sorted(labelled(cart))

        cart.set_window(d(1), d(3))
        first = labelled(cart)
        cart.set_window(d(1), d(3))

        assert sorted(first) == before
        assert labelled(cart) == first

    def test_split_rows_fold_back_when_capacity_returns(self, cart, hostel, d):
        cart.add(hostel, 2, d(1), d(3), parameters={"who": "a"})
        claim = Resource.objects.get(code="bed-x").claim(1, starts_at=d(5), ends_at=d(7))
        cart.set_window(d(5), d(7))
        assert cart.items.count() == 2

        claim.release()
        cart.set_window(d(5), d(7))

        assert labelled(cart) == [("a", "bed-x", 200, 2)]


# ═══════════════════════════════════════════════════════════════════
# Unavailable items
# ═══════════════════════════════════════════════════════════════════


class TestUnavailable:
    @pytest.fixture
    def single(self, db):
        pool = Pool.objects.create(code="single", name="Único")
        pool.add_members(make_room("only-room", 500))
        return pool

    def test_marks_item_unavailable(self, cart, single, d):
        cart.add(single, 1, d(1), d(2))
        Resource.objects.get(code="only-room").claim(1, starts_at=d(5), ends_at=d(6))

        result = cart.set_window(d(5), d(6))

        item = cart.items.get()
        assert result.unavailable == [item]
        assert not result.success
        assert item.unit_price_q is None
        assert item.assigned_resource is None
        assert not item.is_available
        assert not item.is_ready_for_checkout()
        assert "unit_price_q" in item.readiness_issues()

    def test_unrelated_items_unaffected(self, cart, single, pool, d):
        cart.add(single, 1, d(1), d(2))
        cart.add(pool, 1, d(1), d(2))
        Resource.objects.get(code="only-room").claim(1, starts_at=d(5), ends_at=d(6))

        result = cart.set_window(d(5), d(6))

        assert len(result.unavailable) == 1
        assert assignments(cart) == [(None, None, 1, False), ("room-x", 100, 1, True)]

    def test_unavailable_item_recovers_when_window_frees(self, cart, single, d):
        cart.add(single, 1, d(1), d(2))
        Resource.objects.get(code="only-room").claim(1, starts_at=d(5), ends_at=d(6))

        cart.set_window(d(5), d(6))
        cart.set_window(d(8), d(9))

        assert assignments(cart) == [("only-room", 500, 1, True)]

    def test_strict_raises_and_rolls_back(self, cart, single, d):
        cart.add(single, 1, d(1), d(2))
        Resource.objects.get(code="only-room").claim(1, starts_at=d(5), ends_at=d(6))

        with pytest.raises(NotEnoughAvailableInTimespan) as exc:
            cart.set_window(d(5), d(6), strict=True)

        assert exc.value.details["requested"] == 1
        assert exc.value.details["available"] == 0

        cart.refresh_from_db()
        assert cart.starts_at is None
        assert assignments(cart) == [("only-room", 500, 1, True)]

    def test_strict_failure_leaves_instance_window(self, cart, single, d):
        cart.set_window(d(1), d(2))
        cart.add(single, 1)
        Resource.objects.get(code="only-room").claim(1, starts_at=d(5), ends_at=d(6))

        with pytest.raises(NotEnoughAvailableInTimespan):
            cart.set_window(d(5), d(6), strict=True)

        assert (cart.starts_at, cart.ends_at) == (d(1), d(2))


# ═══════════════════════════════════════════════════════════════════
# Cart-level storage
# ═══════════════════════════════════════════════════════════════════


class TestWindowStorage:
    def test_unordered_window_stored_verbatim(self, cart, pool, d):
        cart.add(pool, 1, d(1), d(2))

        result = cart.set_window(d(5), d(3))

        cart.refresh_from_db()
        assert (cart.starts_at, cart.ends_at) == (d(5), d(3))
        assert len(result.unavailable) == 1

    def test_strict_rejects_malformed_window(self, cart, pool, d):
        cart.add(pool, 1, d(1), d(2))

        with pytest.raises(InvalidTimespan):
            cart.set_window(d(5), d(3), strict=True)

    def test_past_window_stored_without_validation(self, cart, pool, d):
        cart.add(pool, 1, d(1), d(2))
        past = timezone.now() - timedelta(days=10)

        result = cart.set_window(past, past + timedelta(days=2), validate=False)

        cart.refresh_from_db()
        assert cart.starts_at == past
        assert not result.validated
        assert assignments(cart) == [("room-x", 200, 1, True)]

    def test_empty_cart_stores_window(self, cart, d):
        result = cart.set_window(d(1), d(2))

        cart.refresh_from_db()
        assert cart.starts_at == d(1)
        assert result.reallocated == []

    def test_without_overwrite_keeps_item_windows(self, cart, pool, d):
        cart.add(pool, 1, d(1), d(2))
        (undated,) = cart.add(pool, 1)

        result = cart.set_window(d(5), d(7), overwrite_item_windows=False)

        assert [item.pk for item in result.reallocated] == [undated.pk]
        first, second = cart.items.order_by("created_at", "pk")
        assert (first.starts_at, first.ends_at) == (d(1), d(2))
        assert (second.starts_at, second.ends_at) == (d(5), d(7))
        assert second.is_ready_for_checkout()

    def test_simple_resource_items_untouched(self, cart, d):
        towel = Resource.objects.create(code="towel", name="Toalha", price_q=300)
        towel.increase(5)
        (item,) = cart.add(towel, 1)

        result = cart.set_window(d(1), d(2))

        assert result.reallocated == []
        item.refresh_from_db()
        assert item.starts_at is None

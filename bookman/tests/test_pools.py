"""
Tests for Pool membership, capacity, calendar and configuration checks.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from bookman import book
from bookman.exceptions import InvalidPoolConfiguration
from bookman.models import UNLIMITED, Pool, PoolMembership, Resource, ResourceKind
from bookman.timespan import Window


# ═══════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════


@pytest.fixture
def d():
    base = timezone.now().replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=30)

    def _day(n: int):
        return base + timedelta(days=n)

    return _day


def make_resource(code, price_q=1000, stock=1, kind=ResourceKind.BOOKING, manages_stock=True):
    resource = Resource.objects.create(
        code=code,
        name=code.title(),
        kind=kind,
        price_q=price_q,
        manages_stock=manages_stock,
    )
    if manages_stock and stock:
        resource.increase(stock)
    return resource


@pytest.fixture
def cabins(db):
    pool = Pool.objects.create(code="cabins", name="Chalés")
    pool.add_members(make_resource("cabin-1"), make_resource("cabin-2"))
    return pool


# ═══════════════════════════════════════════════════════════════════
# Membership
# ═══════════════════════════════════════════════════════════════════


class TestMembership:
    def test_members_keep_insertion_order(self, db):
        pool = Pool.objects.create(code="ordered", name="Ordenado")
        b = make_resource("b")
        a = make_resource("a")
        pool.add_members(b)
        pool.add_members(a)

        assert [m.code for m in pool.ordered_members()] == ["b", "a"]

    def test_add_members_is_idempotent(self, cabins):
        cabins.add_members(Resource.objects.get(code="cabin-1"))

        assert PoolMembership.objects.filter(pool=cabins).count() == 2

    def test_has_time_bound_members(self, cabins, db):
        simple = Pool.objects.create(code="simple", name="Simples")
        simple.add_members(make_resource("bag", kind=ResourceKind.SIMPLE))

        assert cabins.has_time_bound_members()
        assert not simple.has_time_bound_members()


# ═══════════════════════════════════════════════════════════════════
# Capacity
# ═══════════════════════════════════════════════════════════════════


class TestCapacity:
    def test_sum_of_members(self, cabins, d):
        assert cabins.capacity() == 2
        Resource.objects.get(code="cabin-1").claim(1, starts_at=d(2), ends_at=d(4))

        assert cabins.capacity(Window(d(1), d(3))) == 1
        assert cabins.capacity(Window(d(4), d(6))) == 2
        assert cabins.is_available(Window(d(1), d(3)), quantity=1)
        assert not cabins.is_available(Window(d(1), d(3)), quantity=2)

    def test_no_members(self, db):
        assert Pool.objects.create(code="none", name="Nenhum").capacity() == 0

    def test_unmanaged_members_unlimited(self, db):
        pool = Pool.objects.create(code="virtual", name="Virtual")
        pool.add_members(make_resource("voucher", manages_stock=False))

        assert pool.capacity() == UNLIMITED
        assert pool.is_available(quantity=10_000)

    def test_pool_level_stock_blocks_unmanaged_members(self, db):
        pool = Pool.objects.create(code="blocked", name="Bloqueado", manages_stock=True)
        pool.add_members(make_resource("voucher-2", manages_stock=False))

        assert pool.capacity() == 0

    def test_member_availability(self, cabins, d):
        Resource.objects.get(code="cabin-2").claim(1, starts_at=d(1), ends_at=d(2))

        report = cabins.member_availability(Window(d(1), d(2)))

        assert [(row["code"], row["available"]) for row in report] == [
            ("cabin-1", 1),
            ("cabin-2", 0),
        ]


class TestCalendar:
    def test_daily_capacity(self, cabins, d):
        Resource.objects.get(code="cabin-1").claim(1, starts_at=d(2), ends_at=d(3))

        calendar = book.calendar(cabins, d(1), d(3))

        assert calendar == {
            d(1).date().isoformat(): 2,
            d(2).date().isoformat(): 1,
            d(3).date().isoformat(): 2,
        }

    def test_unlimited_days_are_none(self, db, d):
        pool = Pool.objects.create(code="open", name="Aberto")
        pool.add_members(make_resource("open-1", manages_stock=False))

        assert set(pool.availability_calendar(d(1), d(2)).values()) == {None}


# ═══════════════════════════════════════════════════════════════════
# Configuration checks
# ═══════════════════════════════════════════════════════════════════


class TestValidateConfiguration:
    def test_valid_pool(self, cabins):
        report = cabins.validate_configuration()

        assert report["valid"] is True
        assert report["errors"] == []

    def test_no_members_raises(self, db):
        pool = Pool.objects.create(code="lonely", name="Sozinho")

        with pytest.raises(InvalidPoolConfiguration, match="no members"):
            pool.validate_configuration()

    def test_unpriced_members_need_pool_price(self, db):
        pool = Pool.objects.create(code="unpriced", name="Sem preço")
        pool.add_members(make_resource("free-ish", price_q=None))

        with pytest.raises(InvalidPoolConfiguration) as exc:
            pool.validate_configuration()

        assert exc.value.code == "INVALID_POOL_CONFIGURATION"

        pool.price_q = 700
        pool.save()
        assert pool.validate_configuration()["valid"]

    def test_mixed_kinds_warn(self, cabins):
        cabins.add_members(make_resource("extra-bed", kind=ResourceKind.SIMPLE))

        report = cabins.validate_configuration()

        assert report["warnings"] == ["Mixed member kinds detected."]

        with pytest.raises(InvalidPoolConfiguration):
            cabins.validate_configuration(strict=True)

    def test_zero_stock_warns(self, db):
        pool = Pool.objects.create(code="empty-stock", name="Sem estoque")
        pool.add_members(make_resource("ghost", stock=0))

        report = pool.validate_configuration()

        assert report["warnings"] == ["Members with zero stock: ghost"]


class TestPoolClaims:
    def test_release_claims_across_members(self, cabins, d):
        for resource in cabins.ordered_members():
            resource.claim(1, starts_at=d(1), ends_at=d(2), reference="order:77")

        assert cabins.release_claims("order:77") == 2
        assert cabins.capacity(Window(d(1), d(2))) == 2

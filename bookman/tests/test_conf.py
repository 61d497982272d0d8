"""
Tests for settings resolution, the price backend singleton and errors.
"""

from datetime import timedelta

import pytest
from django.test import override_settings

from bookman.adapters.prices import ModelPriceBackend
from bookman.conf import (
    get_billing_period,
    get_price_backend,
    get_setting,
    reset_price_backend,
)
from bookman.exceptions import BookError, NotEnoughStock
from bookman.models import PricingStrategy
from bookman.protocols import PriceBackend


class FixedPriceBackend:
    def resource_price(self, resource, at):
        return 1

    def pool_price(self, pool, at):
        return 2


@pytest.fixture(autouse=True)
def fresh_backend():
    reset_price_backend()
    yield
    reset_price_backend()


class TestGetSetting:
    def test_default(self):
        assert get_setting("CLAIM_REFERENCE_PREFIX") == "cart"

    @override_settings(BOOKMAN={}, BOOKMAN_CLAIM_REFERENCE_PREFIX="order")
    def test_flat_setting(self):
        assert get_setting("CLAIM_REFERENCE_PREFIX") == "order"

    @override_settings(
        BOOKMAN={"CLAIM_REFERENCE_PREFIX": "dict"},
        BOOKMAN_CLAIM_REFERENCE_PREFIX="flat",
    )
    def test_dict_wins_over_flat(self):
        assert get_setting("CLAIM_REFERENCE_PREFIX") == "dict"

    @override_settings(BOOKMAN={"DEFAULT_PRICING_STRATEGY": "highest"})
    def test_default_strategy(self):
        assert PricingStrategy.default() == PricingStrategy.HIGHEST


class TestBillingPeriod:
    def test_default_is_one_day(self):
        assert get_billing_period() == timedelta(days=1)

    @override_settings(BOOKMAN={"BILLING_PERIOD": timedelta(0)})
    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            get_billing_period()


class TestPriceBackend:
    def test_default_backend(self):
        backend = get_price_backend()

        assert isinstance(backend, ModelPriceBackend)
        assert isinstance(backend, PriceBackend)
        assert get_price_backend() is backend

    @override_settings(BOOKMAN={"PRICE_BACKEND": "bookman.tests.test_conf.FixedPriceBackend"})
    def test_configured_backend(self):
        backend = get_price_backend()

        assert isinstance(backend, FixedPriceBackend)
        assert isinstance(backend, PriceBackend)


class TestErrors:
    def test_as_dict(self):
        error = BookError("LEDGER_IMMUTABLE", entry=3)

        assert error.as_dict() == {"code": "LEDGER_IMMUTABLE", "entry": 3}
        assert str(error) == "BookError(LEDGER_IMMUTABLE: entry=3)"

    def test_subclass_message_is_verbatim(self):
        error = NotEnoughStock(5, 2)

        assert str(error) == "Only 2 unit(s) available, but 5 requested."
        assert error.as_dict()["available"] == 2

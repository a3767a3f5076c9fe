"""Tests for the checkout pricing policy."""

from decimal import Decimal

from commerce.cart.pricing import PricingPolicy, money
from commerce.config import Settings, set_settings


class TestMoney:
    def test_rounds_half_up_to_cents(self):
        assert money("2.345") == Decimal("2.35")
        assert money(2.5) == Decimal("2.50")
        assert money(0) == Decimal("0.00")


class TestPricingPolicy:
    def test_flat_shipping_below_threshold(self):
        policy = PricingPolicy()
        assert policy.shipping_for(Decimal("49.99")) == Decimal("5.99")

    def test_free_shipping_at_threshold(self):
        policy = PricingPolicy()
        assert policy.shipping_for(Decimal("50.00")) == Decimal("0.00")

    def test_tax_applies_to_goods_and_shipping(self):
        policy = PricingPolicy(tax_rate=Decimal("0.20"))
        assert policy.tax_for(Decimal("20.00"), Decimal("5.99")) == Decimal("5.20")

    def test_zero_policy_adds_nothing(self):
        policy = PricingPolicy.zero("EUR")
        assert policy.shipping_for(Decimal("1.00")) == Decimal("0.00")
        assert policy.tax_for(Decimal("20.00"), Decimal("0.00")) == Decimal("0.00")

    def test_from_settings(self):
        set_settings(
            Settings(
                currency="USD",
                shipping_flat_rate=Decimal("4.00"),
                free_shipping_threshold=Decimal("100"),
                tax_rate=Decimal("0.1"),
            )
        )
        policy = PricingPolicy.from_settings()
        assert policy.currency == "USD"
        assert policy.shipping_for(Decimal("10")) == Decimal("4.00")
        assert policy.tax_for(Decimal("10"), Decimal("4.00")) == Decimal("1.40")

"""Checkout pricing policy: flat shipping with a free threshold, then tax."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from commerce.config import get_settings

CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingPolicy:
    currency: str = "EUR"
    shipping_flat_rate: Decimal = Decimal("5.99")
    free_shipping_threshold: Decimal | None = Decimal("50.00")
    tax_rate: Decimal = Decimal("0.20")

    @classmethod
    def from_settings(cls) -> "PricingPolicy":
        settings = get_settings()
        return cls(
            currency=settings.currency,
            shipping_flat_rate=settings.shipping_flat_rate,
            free_shipping_threshold=settings.free_shipping_threshold,
            tax_rate=settings.tax_rate,
        )

    @classmethod
    def zero(cls, currency: str = "EUR") -> "PricingPolicy":
        """No shipping and no tax; totals equal the sum of line totals."""
        return cls(currency=currency, shipping_flat_rate=Decimal("0"), free_shipping_threshold=None, tax_rate=Decimal("0"))

    def shipping_for(self, subtotal: Decimal) -> Decimal:
        if self.free_shipping_threshold is not None and subtotal >= self.free_shipping_threshold:
            return money(0)
        return money(self.shipping_flat_rate)

    def tax_for(self, subtotal: Decimal, shipping: Decimal) -> Decimal:
        return money((subtotal + shipping) * self.tax_rate)


_current_policy: PricingPolicy | None = None


def get_pricing_policy() -> PricingPolicy:
    global _current_policy
    if _current_policy is None:
        _current_policy = PricingPolicy.from_settings()
    return _current_policy


def set_pricing_policy(policy: PricingPolicy) -> None:
    global _current_policy
    _current_policy = policy


def reset_pricing_policy() -> None:
    global _current_policy
    _current_policy = None

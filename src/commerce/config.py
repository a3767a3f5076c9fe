"""Engine settings read from the environment.

Protean's own configuration (providers, processing mode) lives in
``domain.toml``. Everything here is commerce-specific: pricing defaults,
retry bounds, the abandonment window, the stale-claim timeout and the
webhook secret.
"""

import os
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class Settings:
    currency: str = "EUR"
    shipping_flat_rate: Decimal = Decimal("5.99")
    free_shipping_threshold: Decimal = Decimal("50.00")
    tax_rate: Decimal = Decimal("0.20")
    abandonment_minutes: int = 60
    conflict_retries: int = 5
    retry_base_delay: float = 0.01
    reservation_timeout_seconds: int = 30
    webhook_secret: str = "whsec_test"
    stock_store_url: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            currency=os.getenv("COMMERCE_CURRENCY", defaults.currency).upper(),
            shipping_flat_rate=Decimal(os.getenv("COMMERCE_SHIPPING_FLAT_RATE", str(defaults.shipping_flat_rate))),
            free_shipping_threshold=Decimal(
                os.getenv("COMMERCE_FREE_SHIPPING_THRESHOLD", str(defaults.free_shipping_threshold))
            ),
            tax_rate=Decimal(os.getenv("COMMERCE_TAX_RATE", str(defaults.tax_rate))),
            abandonment_minutes=int(os.getenv("COMMERCE_ABANDONMENT_MINUTES", defaults.abandonment_minutes)),
            conflict_retries=int(os.getenv("COMMERCE_CONFLICT_RETRIES", defaults.conflict_retries)),
            retry_base_delay=float(os.getenv("COMMERCE_RETRY_BASE_DELAY", defaults.retry_base_delay)),
            reservation_timeout_seconds=int(
                os.getenv("COMMERCE_RESERVATION_TIMEOUT_SECONDS", defaults.reservation_timeout_seconds)
            ),
            webhook_secret=os.getenv("COMMERCE_WEBHOOK_SECRET", defaults.webhook_secret),
            stock_store_url=os.getenv("COMMERCE_STOCK_STORE_URL", defaults.stock_store_url),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the active settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def set_settings(settings: Settings) -> None:
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Forget cached settings so the next read picks up the environment again."""
    global _settings
    _settings = None

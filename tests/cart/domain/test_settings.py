"""Tests for environment-driven settings."""

from decimal import Decimal

from commerce.config import Settings, get_settings, reset_settings


def test_defaults():
    settings = Settings()
    assert settings.currency == "EUR"
    assert settings.abandonment_minutes == 60
    assert settings.stock_store_url == ""


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("COMMERCE_CURRENCY", "usd")
    monkeypatch.setenv("COMMERCE_TAX_RATE", "0.07")
    monkeypatch.setenv("COMMERCE_ABANDONMENT_MINUTES", "15")
    monkeypatch.setenv("COMMERCE_WEBHOOK_SECRET", "whsec_live")
    reset_settings()

    settings = get_settings()

    assert settings.currency == "USD"
    assert settings.tax_rate == Decimal("0.07")
    assert settings.abandonment_minutes == 15
    assert settings.webhook_secret == "whsec_live"


def test_settings_are_cached_until_reset(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("COMMERCE_ABANDONMENT_MINUTES", "5")
    assert get_settings() is first

    reset_settings()
    assert get_settings().abandonment_minutes == 5

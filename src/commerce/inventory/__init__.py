"""Stock store factory.

Provides get_stock_store() / set_stock_store() to swap implementations:
- MemoryStockStore when COMMERCE_STOCK_STORE_URL is empty (tests, local runs)
- SqlStockStore for any SQLAlchemy URL
"""

from commerce.config import get_settings
from commerce.inventory.store.memory_adapter import MemoryStockStore
from commerce.inventory.store.port import StockStore
from commerce.inventory.store.sql_adapter import SqlStockStore

_current_store: StockStore | None = None


def build_stock_store(url: str | None = None) -> StockStore:
    url = get_settings().stock_store_url if url is None else url
    if not url:
        return MemoryStockStore()
    store = SqlStockStore(url)
    store.create_tables()
    return store


def get_stock_store() -> StockStore:
    """Return the current stock store, building it from settings on first use."""
    global _current_store
    if _current_store is None:
        _current_store = build_stock_store()
    return _current_store


def set_stock_store(store: StockStore) -> None:
    """Override the active stock store (useful for tests)."""
    global _current_store
    _current_store = store


def reset_stock_store() -> None:
    """Reset to the default store."""
    global _current_store
    _current_store = None

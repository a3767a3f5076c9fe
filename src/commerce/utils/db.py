"""Schema management for the SQL-backed providers and the stock store."""

from protean.domain import Domain
from sqlalchemy import create_engine

from commerce.inventory import get_stock_store
from commerce.inventory.store.sql_adapter import SqlStockStore

SQL_PROVIDERS = ("sqlite", "postgresql")


def _sql_providers(domain: Domain):
    return [p for p in domain.providers.values() if p.conn_info["provider"] in SQL_PROVIDERS]


def _load_models(domain: Domain, provider) -> None:
    # Building a repository's DAO registers its model with the provider's metadata.
    registry = domain.registry
    for records in (registry.aggregates, registry.entities, registry.projections):
        for record in records.values():
            if record.cls.meta_.provider == provider.name:
                domain.repository_for(record.cls)._dao  # noqa: B018


def _sql_stock_store() -> SqlStockStore | None:
    store = get_stock_store()
    return store if isinstance(store, SqlStockStore) else None


def setup_db(domain: Domain) -> None:
    """Create provider tables and, for a SQL stock store, the stock tables."""
    with domain.domain_context():
        for provider in _sql_providers(domain):
            _load_models(domain, provider)
            provider._metadata.create_all(create_engine(provider.conn_info["database_uri"]))

    store = _sql_stock_store()
    if store is not None:
        store.create_tables()


def drop_db(domain: Domain) -> None:
    with domain.domain_context():
        for provider in _sql_providers(domain):
            provider._metadata.drop_all(create_engine(provider.conn_info["database_uri"]))

    store = _sql_stock_store()
    if store is not None:
        store.drop_tables()

from protean.domain import Domain
from sqlalchemy import create_engine

from commerce.inventory.store.port import InventoryStore
from commerce.inventory.store.sql_adapter import SqlInventoryStore

SQL_PROVIDERS = ("sqlite", "postgresql")


def _sql_providers(domain: Domain):
    return [p for _, p in domain.providers.items() if p.conn_info["provider"] in SQL_PROVIDERS]


def setup_db(domain: Domain, store: InventoryStore | None = None):
    """Create the aggregate tables of SQL-backed providers and the inventory schema"""
    with domain.domain_context():
        for provider in _sql_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])

            for _, aggregate_record in domain.registry.aggregates.items():
                if aggregate_record.cls.meta_.provider == provider.name:
                    domain.repository_for(aggregate_record.cls)._dao  # noqa: B018

            for _, entity_record in domain.registry.entities.items():
                if entity_record.cls.meta_.provider == provider.name:
                    domain.repository_for(entity_record.cls)._dao  # noqa: B018

            provider._metadata.create_all(engine)

    if isinstance(store, SqlInventoryStore):
        store.create_schema()


def drop_db(domain: Domain, store: InventoryStore | None = None):
    """Drop everything setup_db created"""
    with domain.domain_context():
        for provider in _sql_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])
            provider._metadata.drop_all(engine)

    if isinstance(store, SqlInventoryStore):
        store.drop_schema()

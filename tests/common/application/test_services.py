import pytest

from commerce.config import Settings
from commerce.inventory.store.memory_adapter import MemoryInventoryStore
from commerce.inventory.store.port import StockKey
from commerce.inventory.store.sql_adapter import SqlInventoryStore
from commerce.notifications.log_adapter import LogNotifier
from commerce.services import build_services, build_store


class TestBuildStore:
    def test_memory(self):
        assert isinstance(build_store(Settings(inventory_store="memory")), MemoryInventoryStore)

    def test_sql_creates_schema(self, tmp_path):
        store = build_store(Settings(inventory_store="sql", database_uri=f"sqlite:///{tmp_path / 'c.db'}"))
        assert isinstance(store, SqlInventoryStore)
        with store.transaction() as tx:
            assert tx.get_stock(StockKey("store-001", "prod-1")) is None
            assert tx.mark_applied("refund:ret-1") is True

    def test_unknown_store(self):
        with pytest.raises(ValueError):
            build_store(Settings(inventory_store="redis"))

    def test_in_memory_sql_is_refused_outside_tests(self):
        with pytest.raises(ValueError):
            build_store(Settings(environment="development", inventory_store="sql", database_uri="sqlite://"))

    def test_in_memory_sql_in_tests(self):
        store = build_store(Settings(environment="test", inventory_store="sql", database_uri="sqlite://"))
        with store.transaction() as tx:
            assert tx.get_stock(StockKey("store-001", "prod-1")) is None


class TestBuildServices:
    def test_defaults(self):
        services = build_services(Settings(environment="test", reservation_ttl_minutes=5))
        assert isinstance(services.notifier, LogNotifier)
        assert services.orders is not None
        assert services.returns is not None

    def test_shares_one_ledger(self, services):
        assert services.reservations._ledger is services.ledger
        assert services.refunds._ledger is services.ledger

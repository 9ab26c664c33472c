import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture

from commerce.carrier.fake_adapter import FakeLabelPrinter
from commerce.config import Settings
from commerce.gateway.fake_adapter import FakeGateway
from commerce.inventory.store.memory_adapter import MemoryInventoryStore
from commerce.notifications.fake_adapter import RecordingNotifier
from commerce.services import build_services

TENANT = "store-001"


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config overlay before the domain is initialized."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def commerce_bed():
    from commerce.domain import commerce

    bed = DomainFixture(commerce)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(commerce_bed):
    with commerce_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
class FrozenClock:
    """A clock tests move by hand."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def store():
    return MemoryInventoryStore()


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def labels():
    return FakeLabelPrinter()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def settings():
    return Settings(environment="test")


@pytest.fixture()
def services(settings, store, gateway, labels, notifier, clock):
    return build_services(
        settings,
        store=store,
        gateway=gateway,
        labels=labels,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture()
def ledger(services):
    return services.ledger


@pytest.fixture()
def tenant_id():
    return TENANT


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------
@pytest.fixture()
def concurrently():
    """Run callables on parallel threads, each inside its own domain context.

    Returns what each call returned, or the exception it raised.
    """
    from commerce.domain import commerce

    def _call(fn):
        with commerce.domain_context():
            try:
                return fn()
            except Exception as exc:  # noqa: BLE001
                return exc

    def _run(*calls):
        with ThreadPoolExecutor(max_workers=len(calls)) as pool:
            return list(pool.map(_call, calls))

    return _run


@pytest.fixture()
def pause_after(monkeypatch):
    """Hold the first ``parties`` calls of ``owner.attribute`` until all of them have loaded.

    Racing callers then all act on the same snapshot.
    """

    def _pause(owner, attribute, parties=2):
        barrier = threading.Barrier(parties)
        load = getattr(owner, attribute)
        waiting = iter(range(parties))

        def _loaded(*args, **kwargs):
            value = load(*args, **kwargs)
            if next(waiting, None) is not None:
                barrier.wait(timeout=10)
            return value

        monkeypatch.setattr(owner, attribute, _loaded)

    return _pause

"""Explicit wiring of the fulfillment services.

Every collaborator is built here and passed in through constructors; nothing
is looked up from module-level state. Tests build their own container with
fakes, the HTTP app and the management CLI build one from settings.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from commerce.carrier.fake_adapter import FakeLabelPrinter
from commerce.carrier.port import ReturnLabelPort
from commerce.config import Settings
from commerce.gateway import build_gateway
from commerce.gateway.port import PaymentGateway
from commerce.inventory.ledger import StockLedger
from commerce.inventory.reservation import ReservationManager
from commerce.inventory.store.memory_adapter import MemoryInventoryStore
from commerce.inventory.store.port import InventoryStore
from commerce.inventory.store.sql_adapter import SqlInventoryStore
from commerce.notifications.log_adapter import LogNotifier
from commerce.notifications.port import NotifierPort
from commerce.order.lifecycle import OrderLifecycleController
from commerce.returns.policy import ReturnPolicy
from commerce.returns.refund import RefundProcessor
from commerce.returns.workflow import ReturnWorkflowController

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    store: InventoryStore
    gateway: PaymentGateway
    labels: ReturnLabelPort
    notifier: NotifierPort
    ledger: StockLedger
    reservations: ReservationManager
    orders: OrderLifecycleController
    refunds: RefundProcessor
    returns: ReturnWorkflowController


def build_store(settings: Settings) -> InventoryStore:
    if settings.inventory_store == "sql":
        store = SqlInventoryStore(settings.database_uri, single_connection=settings.environment == "test")
        store.create_schema()
        return store
    if settings.inventory_store == "memory":
        return MemoryInventoryStore()
    raise ValueError(f"Unknown inventory store: {settings.inventory_store}")


def build_services(
    settings: Settings | None = None,
    store: InventoryStore | None = None,
    gateway: PaymentGateway | None = None,
    labels: ReturnLabelPort | None = None,
    notifier: NotifierPort | None = None,
    policy: ReturnPolicy | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Services:
    settings = settings or Settings.from_env()
    store = store or build_store(settings)
    gateway = gateway or build_gateway(settings)
    labels = labels or FakeLabelPrinter()
    notifier = notifier or LogNotifier()
    policy = policy or ReturnPolicy(default_days=settings.return_window_days)

    ledger = StockLedger(store, clock=clock)
    reservations = ReservationManager(
        ledger,
        notifier=notifier,
        default_ttl=timedelta(minutes=settings.reservation_ttl_minutes) if settings.reservation_ttl_minutes else None,
        clock=clock,
    )
    refunds = RefundProcessor(ledger, gateway, notifier=notifier, clock=clock)

    logger.info(
        "Services built",
        environment=settings.environment,
        inventory_store=type(store).__name__,
        gateway=gateway.name,
    )
    return Services(
        settings=settings,
        store=store,
        gateway=gateway,
        labels=labels,
        notifier=notifier,
        ledger=ledger,
        reservations=reservations,
        orders=OrderLifecycleController(ledger, reservations, notifier=notifier, clock=clock),
        refunds=refunds,
        returns=ReturnWorkflowController(refunds, policy=policy, labels=labels, notifier=notifier, clock=clock),
    )

"""
Application Wiring for Spendly

This module ties the ledger components together over one table store:
- LedgerStore: typed CRUD
- SettlementEngine / EmiPaymentEngine: multi-step writes
- DashboardQuery / AnalyticsAggregator: read-side reports

DESIGN DECISION: Every component gets the same LedgerStore and the same
clock, so a test (or a caller replaying history) can pin "now" once.
Nothing here holds state between calls beyond the store connection.
"""

from datetime import datetime
from typing import Callable, Optional

from spendly.config import get_settings
from spendly.ledger.emi import EmiPaymentEngine
from spendly.ledger.settlement import SettlementEngine
from spendly.ledger.store import LedgerStore
from spendly.log import configure_logging, get_logger
from spendly.models.ledger import utc_now
from spendly.queries.analytics import AnalyticsAggregator
from spendly.queries.dashboard import DashboardQuery
from spendly.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsTableStore,
    InMemoryTableStore,
    TableStore,
)


class LedgerServices:
    """Every ledger component, wired over one store."""

    def __init__(
        self,
        store: TableStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        clock = clock or utc_now
        self.store = store
        self.ledger = LedgerStore(store, clock)
        self.settlements = SettlementEngine(self.ledger, clock)
        self.emis = EmiPaymentEngine(self.ledger, clock)
        self.dashboard = DashboardQuery(self.ledger)
        self.analytics = AnalyticsAggregator(self.ledger)


def create_table_store(backend: Optional[str] = None) -> TableStore:
    """
    Build the configured table store.

    Args:
        backend: "memory" or "google_sheets"; defaults to
                 SPENDLY_STORE_BACKEND.

    Raises:
        ValueError: For an unknown backend name
    """
    backend = backend or get_settings().store.backend
    if backend == "memory":
        return InMemoryTableStore()
    if backend == "google_sheets":
        return GoogleSheetsTableStore(GoogleSheetsClient())
    raise ValueError(f"Unknown store backend: {backend}")


def create_app_components(
    store: Optional[TableStore] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> LedgerServices:
    """
    Factory function to create all application components.

    Args:
        store: Table store to use. Built from settings when omitted.
        clock: Source of "now" for created_at/settled_at and
               transaction dates.

    Returns:
        LedgerServices
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)
    logger = get_logger(__name__)

    if store is None:
        store = create_table_store()

    logger.info(
        "ledger_components_created",
        store=type(store).__name__,
        environment=settings.app.app_environment,
    )
    return LedgerServices(store, clock)

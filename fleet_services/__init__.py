"""
fleet_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure billing engines
    (fleet_engines/) with database sessions, configuration and the clock.
    The calling application drives weekly billing through this package.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        fleet_services/ -> fleet_engines/, fleet_kernel/, fleet_config/  (allowed)
        fleet_engines/  -> fleet_services/                               (FORBIDDEN)
        fleet_kernel/   -> fleet_services/                               (FORBIDDEN)

Invariants enforced:
    - Layer isolation: fleet_kernel and fleet_engines never import from
      this package.
"""

from fleet_kernel.logging_config import get_logger

logger = get_logger("services")

from fleet_services._billing_types import (  # noqa: E402
    GenerationReport,
    PreviewReport,
    RunTotals,
    SkippedDriver,
)
from fleet_services._settlement_types import SettlementInfo, SettlementRequest  # noqa: E402
from fleet_services.billing_run import BillingRunOrchestrator  # noqa: E402
from fleet_services.driver_week_source import (  # noqa: E402
    AssignmentDriverWeekSource,
    DriverWeekSeat,
    DriverWeekSource,
    RosterDriverWeekSource,
    build_driver_week_source,
)
from fleet_services.fact_reader import DriverWeekFactReader  # noqa: E402
from fleet_services.km_excess_service import KmExcessService  # noqa: E402
from fleet_services.ledger_updater import LedgerUpdater  # noqa: E402
from fleet_services.settlement_service import SettlementService  # noqa: E402
from fleet_services.tariff_catalog import TariffCatalogReader  # noqa: E402

__all__ = [
    "AssignmentDriverWeekSource",
    "BillingRunOrchestrator",
    "DriverWeekFactReader",
    "DriverWeekSeat",
    "DriverWeekSource",
    "GenerationReport",
    "KmExcessService",
    "LedgerUpdater",
    "PreviewReport",
    "RosterDriverWeekSource",
    "RunTotals",
    "SettlementInfo",
    "SettlementRequest",
    "SettlementService",
    "SkippedDriver",
    "TariffCatalogReader",
    "build_driver_week_source",
]

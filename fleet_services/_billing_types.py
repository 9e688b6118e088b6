"""
fleet_services._billing_types -- Reports returned by the billing run.

Responsibility:
    Frozen result objects for a committed generation run and for a
    read-only preview.  Both carry the per-driver failures so the caller can
    show which drivers were left out and why.

Architecture position:
    Services.  These types live here because the orchestrator that builds
    them lives here; they reference engine outputs (DriverWeekCharge).
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from fleet_engines.charge_calculator import DriverWeekCharge
from fleet_kernel.db.types import ZERO
from fleet_kernel.domain.dtos import BillingPeriodInfo
from fleet_kernel.domain.values import period_code


@dataclass(frozen=True)
class SkippedDriver:
    """A driver left out of a run, with the error that excluded them."""

    driver_id: UUID
    driver_name: str
    error_code: str
    reason: str


@dataclass(frozen=True)
class RunTotals:
    driver_count: int = 0
    total_charges: Decimal = ZERO
    total_credits: Decimal = ZERO

    @property
    def total_net(self) -> Decimal:
        return self.total_charges - self.total_credits

    def add(self, charge: DriverWeekCharge) -> "RunTotals":
        return RunTotals(
            driver_count=self.driver_count + 1,
            total_charges=self.total_charges + charge.gross_charges + charge.mora_amount,
            total_credits=self.total_credits + charge.credits,
        )


@dataclass(frozen=True)
class GenerationReport:
    """Outcome of ``BillingRunOrchestrator.generate_period``."""

    run_id: UUID
    period: BillingPeriodInfo
    drivers_processed: int
    skipped: tuple[SkippedDriver, ...]
    total_charges: Decimal
    total_credits: Decimal
    total_net: Decimal
    estimated_lines: int = 0
    review_lines: int = 0
    regenerated: bool = False

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped)

    @property
    def period_code(self) -> str:
        return self.period.period_code


@dataclass(frozen=True)
class PreviewReport:
    """Outcome of ``BillingRunOrchestrator.preview_period``.  Nothing was written."""

    week_number: int
    year: int
    window_start: date
    window_end: date
    charges: tuple[DriverWeekCharge, ...]
    skipped: tuple[SkippedDriver, ...]
    totals: RunTotals

    @property
    def period_code(self) -> str:
        return period_code(self.week_number, self.year)

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped)

    def charge_for(self, driver_id: UUID) -> DriverWeekCharge | None:
        for charge in self.charges:
            if charge.driver_id == driver_id:
                return charge
        return None

"""
fleet_services.billing_run -- Weekly billing generation and preview.

Responsibility:
    ``generate_period`` runs the whole weekly cycle for one ISO week:

        1. Acquire the PROCESSING lock (own short transaction, committed).
        2. In the run transaction:
           a. freeze the tariff catalog,
           b. reverse the period's previous results when regenerating,
           c. for each driver of the week, inside a savepoint: read facts,
              claim consumables, run the charge calculator, post the line,
           d. store the totals and move the period to OPEN.
        3. On a whole-run failure, release the lock in its own transaction
           and re-raise.

    ``preview_period`` reads the same facts and runs the same calculator
    without claiming or writing anything.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Owns the transaction boundaries (``session_scope``) for a run.

Invariants enforced:
    - Preview and commit price drivers with the identical pure function
      (``calculate_driver_week``) over facts read by the same reader.
    - A driver's failure rolls back only that driver's savepoint; it is
      reported in ``GenerationReport.skipped`` and the run continues.
    - The run fails as a whole only when the lock cannot be acquired or
      the tariff catalog is unavailable.
    - Regenerating an OPEN period with unchanged facts reproduces the same
      lines, balances, guarantee accounts and consumption flags.

Failure modes:
    - PeriodLockedError: another run holds the week.
    - PeriodClosedError: the week is CLOSED; reopen it first.
    - TariffCatalogUnavailableError: no active tariff concepts.

Audit relevance:
    Every run is tagged with a run_id (stored as BillingPeriod.last_run_id)
    bound into the log context with the actor and period code.
"""

from __future__ import annotations

import time
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from fleet_config import get_active_config
from fleet_config.bridges import build_charge_rules
from fleet_config.schema import BillingParameters
from fleet_engines.charge_calculator import (
    DriverWeekCharge,
    TariffSnapshot,
    calculate_driver_week,
)
from fleet_engines.proration import iso_week_bounds, preview_window
from fleet_kernel.db.engine import session_scope
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import BillingPeriodInfo, BlockCandidate
from fleet_kernel.domain.values import period_code
from fleet_kernel.exceptions import FleetBillingError
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.billing_period import BillingPeriod
from fleet_kernel.selectors.balance_selector import BalanceSelector
from fleet_kernel.services.period_service import PeriodService, PeriodTotals, ProcessingClaim
from fleet_services._billing_types import (
    GenerationReport,
    PreviewReport,
    RunTotals,
    SkippedDriver,
)
from fleet_services.driver_week_source import (
    DriverWeekSeat,
    DriverWeekSource,
    build_driver_week_source,
)
from fleet_services.fact_reader import DriverWeekFactReader
from fleet_services.ledger_updater import LedgerUpdater
from fleet_services.tariff_catalog import TariffCatalogReader

logger = get_logger("services.billing_run")

_DRIVER_ERRORS = (FleetBillingError, SQLAlchemyError)


def _skipped(seat: DriverWeekSeat, exc: Exception) -> SkippedDriver:
    return SkippedDriver(
        driver_id=seat.driver_id,
        driver_name=seat.driver_name,
        error_code=getattr(exc, "code", type(exc).__name__),
        reason=str(exc),
    )


class BillingRunOrchestrator:
    """
    Generates and previews weekly billing periods.

    Contract:
        Receives a session factory, clock, billing parameters and a
        driver-week source by injection; each defaults to the production
        wiring (active configuration, system clock, configured source).
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        params: BillingParameters | None = None,
        source: DriverWeekSource | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._params = params or get_active_config()
        self._rules = build_charge_rules(self._params)
        self._source = source or build_driver_week_source(self._params.driver_week_source)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_period(self, week_number: int, year: int, actor_id: UUID) -> GenerationReport:
        """
        Compute and commit the week's billing lines.

        Raises:
            PeriodLockedError, PeriodClosedError, TariffCatalogUnavailableError.
        """
        run_id = uuid4()
        code = period_code(week_number, year)
        with LogContext.bind(run_id=run_id, actor_id=actor_id, period_code=code):
            t0 = time.monotonic()
            logger.info(
                "billing_run_started",
                extra={"source": self._source.name, "config_checksum": self._params.checksum},
            )

            with session_scope(self._session_factory) as session:
                claim = PeriodService(session, self._clock).begin_processing(
                    week_number, year, actor_id, run_id
                )

            try:
                with session_scope(self._session_factory) as session:
                    report = self._run(session, claim, actor_id)
            except Exception as exc:
                logger.error(
                    "billing_run_failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )
                with session_scope(self._session_factory) as session:
                    PeriodService(session, self._clock).abandon_processing(claim, actor_id)
                raise

            logger.info(
                "billing_run_completed",
                extra={
                    "drivers_processed": report.drivers_processed,
                    "drivers_skipped": len(report.skipped),
                    "total_net": str(report.total_net),
                    "regenerated": report.regenerated,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return report

    def _run(self, session: Session, claim: ProcessingClaim, actor_id: UUID) -> GenerationReport:
        period = session.get(BillingPeriod, claim.period_id)
        tariffs = TariffCatalogReader(session).snapshot(self._params.fallback_prices)
        ledger = LedgerUpdater(session, self._clock, actor_id)

        regenerated = not claim.created
        if regenerated:
            ledger.reverse_period(period)

        seats = self._source.seats_for_week(
            session, claim.week_number, claim.year, period.start_date, period.end_date
        )
        reader = DriverWeekFactReader(session)

        totals = RunTotals()
        skipped: list[SkippedDriver] = []
        estimated = review = 0
        for seat in seats:
            with LogContext.bind(driver_id=seat.driver_id):
                try:
                    with session.begin_nested():
                        facts = reader.read(
                            seat, claim.week_number, claim.year,
                            period.start_date, period.end_date,
                        )
                        facts = ledger.claim(facts, period.id)
                        charge = calculate_driver_week(facts, tariffs, self._rules)
                        ledger.post_charge(period, charge)
                except _DRIVER_ERRORS as exc:
                    logger.warning(
                        "driver_line_failed",
                        extra={
                            "driver_name": seat.driver_name,
                            "error_code": getattr(exc, "code", type(exc).__name__),
                            "error": str(exc),
                        },
                    )
                    skipped.append(_skipped(seat, exc))
                    continue

            totals = totals.add(charge)
            estimated += charge.is_estimated
            review += charge.needs_review

        info = PeriodService(session, self._clock).finish_processing(
            claim,
            PeriodTotals(
                driver_count=totals.driver_count,
                total_charges=totals.total_charges,
                total_credits=totals.total_credits,
                total_net=totals.total_net,
            ),
            actor_id,
        )
        return GenerationReport(
            run_id=claim.run_id,
            period=info,
            drivers_processed=totals.driver_count,
            skipped=tuple(skipped),
            total_charges=totals.total_charges,
            total_credits=totals.total_credits,
            total_net=totals.total_net,
            estimated_lines=estimated,
            review_lines=review,
            regenerated=regenerated,
        )

    # ------------------------------------------------------------------
    # Back-office reads
    # ------------------------------------------------------------------

    def recent_weeks(self, as_of: date | None = None) -> list[BillingPeriodInfo]:
        """The configured rolling window of recent weeks, newest first."""
        with self._session_factory() as session:
            return PeriodService(session, self._clock).list_recent_weeks(
                self._params.recent_weeks, as_of
            )

    def block_candidates(self) -> list[BlockCandidate]:
        """Drivers over the configured balance or mora-days blocking limits."""
        with self._session_factory() as session:
            return BalanceSelector(session).drivers_over_limit(
                self._params.block_balance_limit, self._params.block_mora_days
            )

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def preview_period(
        self,
        week_number: int,
        year: int,
        as_of: date | None = None,
    ) -> PreviewReport:
        """
        Price the week without writing anything.

        ``as_of`` clips the window of the week in progress to that day.
        When the week was already generated, its own results are netted
        out so the preview shows what a regeneration would produce.
        """
        week_start, week_end = iso_week_bounds(week_number, year)
        window_start, window_end = preview_window(week_start, week_end, as_of)
        code = period_code(week_number, year)

        with LogContext.bind(period_code=code), self._session_factory() as session:
            existing = PeriodService(session, self._clock).find_period(week_number, year)
            tariffs = TariffCatalogReader(session).snapshot(self._params.fallback_prices)
            seats = self._source.seats_for_week(
                session, week_number, year, window_start, window_end
            )
            reader = DriverWeekFactReader(
                session, exclude_period_id=existing.id if existing else None
            )
            charges, skipped = self._price_seats(
                reader, tariffs, seats, week_number, year, window_start, window_end
            )
            session.rollback()

        totals = RunTotals()
        for charge in charges:
            totals = totals.add(charge)

        logger.info(
            "billing_preview_completed",
            extra={
                "period_code": code,
                "drivers": len(charges),
                "drivers_skipped": len(skipped),
                "window_end": window_end.isoformat(),
            },
        )
        return PreviewReport(
            week_number=week_number,
            year=year,
            window_start=window_start,
            window_end=window_end,
            charges=tuple(charges),
            skipped=tuple(skipped),
            totals=totals,
        )

    def _price_seats(
        self,
        reader: DriverWeekFactReader,
        tariffs: TariffSnapshot,
        seats: list[DriverWeekSeat],
        week_number: int,
        year: int,
        window_start: date,
        window_end: date,
    ) -> tuple[list[DriverWeekCharge], list[SkippedDriver]]:
        charges: list[DriverWeekCharge] = []
        skipped: list[SkippedDriver] = []
        for seat in seats:
            try:
                facts = reader.read(seat, week_number, year, window_start, window_end)
                charges.append(calculate_driver_week(facts, tariffs, self._rules))
            except FleetBillingError as exc:
                logger.warning(
                    "driver_preview_failed",
                    extra={"driver_id": str(seat.driver_id), "error_code": exc.code},
                )
                skipped.append(_skipped(seat, exc))
        return charges, skipped

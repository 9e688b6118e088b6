"""
PeriodService -- billing period lifecycle and the generation lock.

Responsibility:
    Manages the weekly billing period lifecycle
    (NOT_GENERATED -> PROCESSING -> OPEN -> CLOSED, CLOSED -> OPEN,
    OPEN -> PROCESSING) and exposes the rolling calendar of recent weeks.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by BillingRunOrchestrator (fleet_services/) to acquire and
    release the PROCESSING lock around a generation run, and directly by
    the calling application for close / reopen / list.

Invariants enforced:
    - PROCESSING is only entered through ``begin_processing``: an atomic
      conditional UPDATE (status = 'open') or, for a new week, an INSERT
      guarded by the (week_number, year) unique constraint.  A second
      concurrent run therefore gets ``PeriodLockedError``.
    - A CLOSED period is never regenerated; it must be reopened first.
    - Closing stamps closed_at / closed_by_id and marks the period's lines
      CLOSED; reopening clears the stamp and marks them CALCULATED.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - PeriodNotFoundError: no stored period for the week.
    - PeriodLockedError: the period is already PROCESSING.
    - PeriodClosedError: generation requested on a CLOSED period.
    - InvalidPeriodTransitionError: close on a non-OPEN period, reopen on a
      non-CLOSED period.

Audit relevance:
    Lock acquisition, generation completion, close and reopen are logged
    with period_code and actor_id.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fleet_kernel.domain.calendar import iso_week_bounds, recent_weeks
from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.dtos import BillingPeriodInfo
from fleet_kernel.domain.values import PeriodStatus, period_code
from fleet_kernel.exceptions import (
    InvalidPeriodTransitionError,
    PeriodClosedError,
    PeriodLockedError,
    PeriodNotFoundError,
)
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.billing_line import BillingLine, BillingLineStatus
from fleet_kernel.models.billing_period import BillingPeriod
from fleet_kernel.selectors.billing_selector import to_period_info
from fleet_kernel.services.base import BaseService

logger = get_logger("services.period")

DEFAULT_RECENT_WEEKS = 12


@dataclass(frozen=True)
class ProcessingClaim:
    """Handle on a PROCESSING lock held by one generation run."""

    period_id: UUID
    week_number: int
    year: int
    run_id: UUID
    created: bool  # True when this run inserted the period row

    @property
    def period_code(self) -> str:
        return period_code(self.week_number, self.year)


@dataclass(frozen=True)
class PeriodTotals:
    driver_count: int
    total_charges: Decimal
    total_credits: Decimal
    total_net: Decimal


class PeriodService(BaseService[BillingPeriod]):
    """
    Service for the billing period lifecycle.

    Contract:
        Week-addressed operations return frozen ``BillingPeriodInfo`` DTOs.
        Lock operations return / accept a ``ProcessingClaim``.

    Guarantees:
        - ``begin_processing`` either returns a claim or raises; it never
          leaves two runs holding the same period.
        - ``list_recent_weeks`` includes weeks with no stored period as
          synthetic NOT_GENERATED entries (``id`` is None).

    Non-goals:
        - Does NOT compute or persist billing lines (BillingRunOrchestrator).
        - Does NOT commit: the orchestrator commits the lock acquisition in
          its own short transaction so concurrent runs can see it.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _get_period_orm(self, week_number: int, year: int) -> BillingPeriod | None:
        return self.session.execute(
            select(BillingPeriod).where(
                BillingPeriod.week_number == week_number,
                BillingPeriod.year == year,
            )
        ).scalar_one_or_none()

    def _get_period_for_update(self, week_number: int, year: int) -> BillingPeriod | None:
        return self.session.execute(
            select(BillingPeriod)
            .where(
                BillingPeriod.week_number == week_number,
                BillingPeriod.year == year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_period(self, week_number: int, year: int) -> BillingPeriodInfo:
        """
        Stored period for the week.

        Raises:
            PeriodNotFoundError: the week has never been generated.
        """
        period = self._get_period_orm(week_number, year)
        if period is None:
            raise PeriodNotFoundError(period_code(week_number, year))
        return to_period_info(period)

    def find_period(self, week_number: int, year: int) -> BillingPeriodInfo | None:
        period = self._get_period_orm(week_number, year)
        return to_period_info(period) if period else None

    def list_recent_weeks(
        self,
        count: int = DEFAULT_RECENT_WEEKS,
        as_of: date | None = None,
    ) -> list[BillingPeriodInfo]:
        """
        Rolling calendar of the ``count`` most recent ISO weeks, newest first.

        Weeks with a stored period carry its status and totals; the rest
        are synthetic NOT_GENERATED entries.
        """
        as_of = as_of or self._clock.today()
        weeks = recent_weeks(as_of, count)
        years = {year for _, year in weeks}
        stored = {
            (p.week_number, p.year): p
            for p in self.session.execute(
                select(BillingPeriod).where(BillingPeriod.year.in_(years))
            ).scalars()
        }

        result: list[BillingPeriodInfo] = []
        for week_number, year in weeks:
            period = stored.get((week_number, year))
            if period is not None:
                result.append(to_period_info(period))
                continue
            start, end = iso_week_bounds(week_number, year)
            result.append(
                BillingPeriodInfo(
                    id=None,
                    week_number=week_number,
                    year=year,
                    start_date=start,
                    end_date=end,
                    status=PeriodStatus.NOT_GENERATED,
                )
            )
        return result

    # ------------------------------------------------------------------
    # Generation lock
    # ------------------------------------------------------------------

    def begin_processing(
        self,
        week_number: int,
        year: int,
        actor_id: UUID,
        run_id: UUID,
    ) -> ProcessingClaim:
        """
        Atomically move the week to PROCESSING.

        Preconditions:
            - Caller commits immediately after this returns so that
              concurrent runs observe the lock.

        Raises:
            PeriodClosedError: the period is CLOSED.
            PeriodLockedError: another run holds the period.
        """
        code = period_code(week_number, year)

        # Test-and-set on an existing OPEN period
        result = self.session.execute(
            update(BillingPeriod)
            .where(
                BillingPeriod.week_number == week_number,
                BillingPeriod.year == year,
                BillingPeriod.status == PeriodStatus.OPEN.value,
            )
            .values(
                status=PeriodStatus.PROCESSING.value,
                last_run_id=run_id,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            period = self._get_period_for_update(week_number, year)
            logger.info(
                "period_processing_started",
                extra={"period_code": code, "period_created": False, "run_id": str(run_id)},
            )
            return ProcessingClaim(period.id, week_number, year, run_id, created=False)

        existing = self._get_period_for_update(week_number, year)
        if existing is not None:
            if existing.is_closed:
                logger.warning("period_generation_rejected_closed", extra={"period_code": code})
                raise PeriodClosedError(code)
            logger.warning(
                "period_generation_rejected_locked",
                extra={"period_code": code, "status": PeriodStatus(existing.status).value},
            )
            raise PeriodLockedError(code)

        # First generation of the week: the unique constraint arbitrates
        start, end = iso_week_bounds(week_number, year)
        period = BillingPeriod(
            week_number=week_number,
            year=year,
            start_date=start,
            end_date=end,
            status=PeriodStatus.PROCESSING.value,
            last_run_id=run_id,
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(period)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            logger.warning(
                "period_creation_race_lost",
                extra={"period_code": code, "run_id": str(run_id)},
            )
            raise PeriodLockedError(code) from exc

        logger.info(
            "period_processing_started",
            extra={"period_code": code, "period_created": True, "run_id": str(run_id)},
        )
        return ProcessingClaim(period.id, week_number, year, run_id, created=True)

    def finish_processing(
        self,
        claim: ProcessingClaim,
        totals: PeriodTotals,
        actor_id: UUID,
    ) -> BillingPeriodInfo:
        """PROCESSING -> OPEN with the run's totals."""
        period = self.session.get(BillingPeriod, claim.period_id, populate_existing=True)
        if period is None or not period.is_processing or period.last_run_id != claim.run_id:
            raise InvalidPeriodTransitionError(
                claim.period_code,
                PeriodStatus(period.status).value if period else PeriodStatus.NOT_GENERATED.value,
                PeriodStatus.OPEN.value,
            )

        period.status = PeriodStatus.OPEN.value
        period.driver_count = totals.driver_count
        period.total_charges = totals.total_charges
        period.total_credits = totals.total_credits
        period.total_net = totals.total_net
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_generated",
            extra={
                "period_code": claim.period_code,
                "driver_count": totals.driver_count,
                "total_charges": str(totals.total_charges),
                "total_credits": str(totals.total_credits),
                "total_net": str(totals.total_net),
            },
        )
        return to_period_info(period)

    def abandon_processing(self, claim: ProcessingClaim, actor_id: UUID) -> None:
        """
        Release a lock after a whole-run failure.

        A period created by the failed run is removed (the week returns to
        NOT_GENERATED); an existing one goes back to OPEN with its previous
        results, since the run's transaction was rolled back.
        """
        if claim.created:
            self.session.execute(
                delete(BillingPeriod).where(
                    BillingPeriod.id == claim.period_id,
                    BillingPeriod.status == PeriodStatus.PROCESSING.value,
                )
            )
        else:
            self.session.execute(
                update(BillingPeriod)
                .where(
                    BillingPeriod.id == claim.period_id,
                    BillingPeriod.status == PeriodStatus.PROCESSING.value,
                )
                .values(status=PeriodStatus.OPEN.value, updated_by_id=actor_id)
                .execution_options(synchronize_session=False)
            )
        self.session.flush()
        logger.warning(
            "period_processing_abandoned",
            extra={"period_code": claim.period_code, "period_created": claim.created},
        )

    # ------------------------------------------------------------------
    # Close / reopen
    # ------------------------------------------------------------------

    def close_period(self, week_number: int, year: int, actor_id: UUID) -> BillingPeriodInfo:
        """
        OPEN -> CLOSED.  The period's lines become immutable.

        Raises:
            PeriodNotFoundError: no stored period.
            InvalidPeriodTransitionError: period is not OPEN.
        """
        code = period_code(week_number, year)
        period = self._get_period_for_update(week_number, year)
        if period is None:
            raise PeriodNotFoundError(code)
        if not period.is_open:
            raise InvalidPeriodTransitionError(
                code, PeriodStatus(period.status).value, PeriodStatus.CLOSED.value
            )

        period.close(actor_id, self._clock.now())
        self._set_line_status(period.id, BillingLineStatus.CLOSED, actor_id)
        self.session.flush()

        logger.info("period_closed", extra={"period_code": code, "actor_id": str(actor_id)})
        return to_period_info(period)

    def reopen_period(self, week_number: int, year: int, actor_id: UUID) -> BillingPeriodInfo:
        """
        CLOSED -> OPEN.  Lines become editable and the week can be regenerated.

        Raises:
            PeriodNotFoundError: no stored period.
            InvalidPeriodTransitionError: period is not CLOSED.
        """
        code = period_code(week_number, year)
        period = self._get_period_for_update(week_number, year)
        if period is None:
            raise PeriodNotFoundError(code)
        if not period.is_closed:
            raise InvalidPeriodTransitionError(
                code, PeriodStatus(period.status).value, PeriodStatus.OPEN.value
            )

        period.reopen(actor_id)
        self._set_line_status(period.id, BillingLineStatus.CALCULATED, actor_id)
        self.session.flush()

        logger.info("period_reopened", extra={"period_code": code, "actor_id": str(actor_id)})
        return to_period_info(period)

    def _set_line_status(
        self, period_id: UUID, status: BillingLineStatus, actor_id: UUID
    ) -> None:
        self.session.execute(
            update(BillingLine)
            .where(BillingLine.period_id == period_id)
            .values(status=status.value, updated_by_id=actor_id)
            .execution_options(synchronize_session="fetch")
        )

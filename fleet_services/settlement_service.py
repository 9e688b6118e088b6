"""
fleet_services.settlement_service -- Termination settlements.

Responsibility:
    Liquidates a departing driver: bills the partial week from Monday to the
    cutoff date with the regular charge calculator and nets the guarantee
    deposit against the result.  Approval deactivates the driver and
    finishes their assignments.

Architecture position:
    Services -- composes the fact reader, the tariff catalog reader and the
    pure settlement engine.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - Creating a settlement consumes nothing: km records, tickets,
      penalties and installments stay available.
    - When the cutoff week was already generated, its own results are
      netted out, so Monday..cutoff is billed once.
    - 0 <= guarantee_refund <= guarantee_total_paid.
    - APPROVED is terminal.  Approved settlements cannot be cancelled,
      deleted or approved again.
    - A driver has at most one APPROVED settlement.

Failure modes:
    - DriverNotFoundError: unknown driver.
    - InvalidAssignmentError: no assignment covers the settlement window.
    - SettlementNotFoundError / SettlementAlreadyApprovedError /
      InvalidSettlementTransitionError: lifecycle violations.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from fleet_config.bridges import build_charge_rules
from fleet_config.schema import BillingParameters
from fleet_engines.settlement import SettlementCalculation, calculate_settlement
from fleet_kernel.domain.calendar import iso_week_of, monday_of
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.exceptions import (
    DriverNotFoundError,
    InvalidAssignmentError,
    InvalidSettlementTransitionError,
    SettlementAlreadyApprovedError,
    SettlementNotFoundError,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.driver import Assignment, AssignmentStatus, Driver, DriverStatus
from fleet_kernel.models.settlement import DriverTerminationSettlement, SettlementStatus
from fleet_kernel.selectors.billing_selector import BillingSelector
from fleet_services._settlement_types import SettlementInfo, SettlementRequest
from fleet_services.driver_week_source import AssignmentDriverWeekSource
from fleet_services.fact_reader import DriverWeekFactReader
from fleet_services.tariff_catalog import TariffCatalogReader

logger = get_logger("services.settlement")


def _to_info(s: DriverTerminationSettlement) -> SettlementInfo:
    return SettlementInfo(
        id=s.id,
        driver_id=s.driver_id,
        driver_name=s.driver_name,
        vehicle_plate=s.vehicle_plate,
        modality=s.modality,
        settlement_date=s.settlement_date,
        week_start=s.week_start,
        cutoff_date=s.cutoff_date,
        days_billed=s.days_billed,
        rent_amount=s.rent_amount,
        guarantee_amount=s.guarantee_amount,
        toll_amount=s.toll_amount,
        km_excess_amount=s.km_excess_amount,
        penalty_amount=s.penalty_amount,
        fractional_amount=s.fractional_amount,
        credits=s.credits,
        gross_charges=s.gross_charges,
        prior_balance=s.prior_balance,
        mora_days=s.mora_days,
        mora_amount=s.mora_amount,
        total_due=s.total_due,
        guarantee_total_paid=s.guarantee_total_paid,
        guarantee_installments_paid=s.guarantee_installments_paid,
        guarantee_refund=s.guarantee_refund,
        status=SettlementStatus(s.status).value,
        reason=s.reason,
        is_estimated=s.is_estimated,
        needs_review=s.needs_review,
        approved_by_id=s.approved_by_id,
        approved_at=s.approved_at,
    )


class SettlementService:
    """
    Creates and moves termination settlements through their lifecycle.

    Contract:
        CALCULATED -> APPROVED (terminal), CALCULATED -> CANCELLED.
        CALCULATED and CANCELLED settlements may be deleted.
    """

    def __init__(
        self,
        session: Session,
        params: BillingParameters,
        clock: Clock | None = None,
    ):
        self.session = session
        self._params = params
        self._rules = build_charge_rules(params)
        self._clock = clock or SystemClock()

    def _get(self, settlement_id: UUID) -> DriverTerminationSettlement:
        settlement = self.session.get(DriverTerminationSettlement, settlement_id)
        if settlement is None:
            raise SettlementNotFoundError(str(settlement_id))
        return settlement

    def get_settlement(self, settlement_id: UUID) -> SettlementInfo:
        return _to_info(self._get(settlement_id))

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def calculate(self, request: SettlementRequest) -> SettlementCalculation:
        """Price the settlement without persisting it."""
        driver = self.session.get(Driver, request.driver_id)
        if driver is None:
            raise DriverNotFoundError(str(request.driver_id))

        cutoff = request.cutoff_date
        week_start = monday_of(cutoff)
        week_number, year = iso_week_of(cutoff)

        seats = AssignmentDriverWeekSource().seats_for_week(
            self.session, week_number, year, week_start, cutoff
        )
        seat = next((s for s in seats if s.driver_id == request.driver_id), None)
        if seat is None:
            raise InvalidAssignmentError(
                str(request.driver_id),
                f"no assignment covers {week_start} to {cutoff}",
            )

        # A generated cutoff week is superseded by the settlement
        billed = BillingSelector(self.session).get_period(week_number, year)
        reader = DriverWeekFactReader(
            self.session, exclude_period_id=billed.id if billed else None
        )
        facts = reader.read(seat, week_number, year, week_start, cutoff)
        tariffs = TariffCatalogReader(self.session).snapshot(self._params.fallback_prices)
        return calculate_settlement(facts, tariffs, self._rules, cutoff)

    def create_settlement(self, request: SettlementRequest, actor_id: UUID) -> SettlementInfo:
        """
        Compute and store a CALCULATED settlement.

        Raises:
            SettlementAlreadyApprovedError: the driver was already liquidated.
        """
        with LogContext.bind(driver_id=request.driver_id, actor_id=actor_id):
            approved = self.session.execute(
                select(DriverTerminationSettlement.id).where(
                    DriverTerminationSettlement.driver_id == request.driver_id,
                    DriverTerminationSettlement.status == SettlementStatus.APPROVED.value,
                )
            ).scalar_one_or_none()
            if approved is not None:
                raise SettlementAlreadyApprovedError(str(approved))

            result = self.calculate(request)
            charge = result.charge
            settlement = DriverTerminationSettlement(
                driver_id=charge.driver_id,
                driver_name=charge.driver_name,
                vehicle_plate=charge.vehicle_plate,
                modality=charge.modality.value,
                settlement_date=request.settlement_date or self._clock.today(),
                week_start=result.week_start,
                cutoff_date=result.cutoff_date,
                days_billed=charge.days_billed,
                rent_amount=charge.rent_amount,
                guarantee_amount=charge.guarantee_amount,
                toll_amount=charge.toll_amount,
                km_excess_amount=charge.km_excess_amount,
                penalty_amount=charge.penalty_amount,
                fractional_amount=charge.fractional_amount,
                credits=charge.credits,
                gross_charges=charge.gross_charges,
                prior_balance=charge.prior_balance,
                mora_days=charge.mora_days,
                mora_amount=charge.mora_amount,
                total_due=charge.total_due,
                guarantee_total_paid=result.guarantee_amount_paid,
                guarantee_installments_paid=result.guarantee_installments_paid,
                guarantee_refund=result.guarantee_refund,
                status=SettlementStatus.CALCULATED.value,
                reason=request.reason,
                notes=request.notes,
                is_estimated=charge.is_estimated,
                needs_review=charge.needs_review,
                created_by_id=actor_id,
            )
            self.session.add(settlement)
            self.session.flush()

            logger.info(
                "settlement_created",
                extra={
                    "settlement_id": str(settlement.id),
                    "cutoff_date": result.cutoff_date.isoformat(),
                    "total_due": str(charge.total_due),
                    "guarantee_refund": str(result.guarantee_refund),
                },
            )
            return _to_info(settlement)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def approve_settlement(self, settlement_id: UUID, actor_id: UUID) -> SettlementInfo:
        """
        Approve irreversibly: the driver becomes inactive and their active
        assignments finish on the cutoff date.
        """
        settlement = self._get(settlement_id)
        if settlement.status == SettlementStatus.APPROVED:
            raise SettlementAlreadyApprovedError(str(settlement_id))
        if settlement.status != SettlementStatus.CALCULATED:
            raise InvalidSettlementTransitionError(
                str(settlement_id),
                SettlementStatus(settlement.status).value,
                SettlementStatus.APPROVED.value,
            )

        cutoff = settlement.cutoff_date
        settlement.status = SettlementStatus.APPROVED.value
        settlement.approved_by_id = actor_id
        settlement.approved_at = self._clock.now()
        settlement.updated_by_id = actor_id

        driver = self.session.get(Driver, settlement.driver_id)
        driver.status = DriverStatus.INACTIVE.value
        driver.termination_date = cutoff
        driver.termination_reason = settlement.reason
        driver.updated_by_id = actor_id

        finished = self.session.execute(
            update(Assignment)
            .where(
                Assignment.driver_id == settlement.driver_id,
                Assignment.status == AssignmentStatus.ACTIVE.value,
                or_(Assignment.end_date.is_(None), Assignment.end_date > cutoff),
            )
            .values(
                status=AssignmentStatus.FINISHED.value,
                end_date=cutoff,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        self.session.flush()

        logger.info(
            "settlement_approved",
            extra={
                "settlement_id": str(settlement_id),
                "driver_id": str(settlement.driver_id),
                "assignments_finished": finished,
            },
        )
        return _to_info(settlement)

    def cancel_settlement(self, settlement_id: UUID, actor_id: UUID) -> SettlementInfo:
        settlement = self._get(settlement_id)
        if settlement.status == SettlementStatus.APPROVED:
            raise SettlementAlreadyApprovedError(str(settlement_id))
        if settlement.status != SettlementStatus.CALCULATED:
            raise InvalidSettlementTransitionError(
                str(settlement_id),
                SettlementStatus(settlement.status).value,
                SettlementStatus.CANCELLED.value,
            )
        settlement.status = SettlementStatus.CANCELLED.value
        settlement.updated_by_id = actor_id
        self.session.flush()

        logger.info("settlement_cancelled", extra={"settlement_id": str(settlement_id)})
        return _to_info(settlement)

    def delete_settlement(self, settlement_id: UUID) -> None:
        settlement = self._get(settlement_id)
        if settlement.status == SettlementStatus.APPROVED:
            raise SettlementAlreadyApprovedError(str(settlement_id))
        self.session.delete(settlement)
        self.session.flush()

        logger.info("settlement_deleted", extra={"settlement_id": str(settlement_id)})

"""
fleet_services.fact_reader -- Assemble DriverWeekFacts from the database.

Responsibility:
    Reads everything the charge calculator needs for one driver-week and
    freezes it into a ``DriverWeekFacts``.  Generation, preview and
    settlement all read facts through here, which is what makes a preview
    agree with the run that later commits it.

Eligibility:
    km excess      unapplied records for weeks up to the billed week
    tickets        APPROVED tickets
    penalties      unapplied penalties dated inside the window
    fractional     unapplied installments scheduled up to the billed week
    tolls          tolls dated inside the window (tolls are not consumed)

Previewing an already generated period:
    With ``exclude_period_id`` set, the reader answers as if that period's
    own results were not committed: its movements are netted out of the
    prior balance, its guarantee installment is taken back, and records it
    consumed count as still available.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from fleet_engines.charge_calculator import (
    DriverWeekFacts,
    FractionalItem,
    KmExcessItem,
    PenaltyItem,
    TicketCreditItem,
    TollItem,
)
from fleet_engines.guarantee import GuaranteeState, is_complete
from fleet_kernel.db.types import ZERO
from fleet_kernel.models.balance import DriverBalance
from fleet_kernel.models.charges import FractionalCharge, FractionalInstallment, Penalty, TollCharge
from fleet_kernel.models.guarantee import GuaranteeAccount, GuaranteePayment, GuaranteeStatus
from fleet_kernel.models.km_excess import KmExcessRecord
from fleet_kernel.models.ticket import TicketCredit, TicketStatus
from fleet_kernel.selectors.balance_selector import BalanceSelector
from fleet_services.driver_week_source import DriverWeekSeat


def _week_at_or_before(model, week_number: int, year: int):
    return or_(
        model.year < year,
        and_(model.year == year, model.week_number <= week_number),
    )


def _available(model, exclude_period_id: UUID | None):
    if exclude_period_id is None:
        return model.applied.is_(False)
    return or_(model.applied.is_(False), model.applied_period_id == exclude_period_id)


class DriverWeekFactReader:
    def __init__(self, session: Session, exclude_period_id: UUID | None = None):
        self.session = session
        self._exclude_period_id = exclude_period_id
        self._period_net: dict[UUID, Decimal] | None = None

    def read(
        self,
        seat: DriverWeekSeat,
        week_number: int,
        year: int,
        window_start: date,
        window_end: date,
    ) -> DriverWeekFacts:
        driver_id = seat.driver_id
        prior_balance, mora_days = self._balance(driver_id)
        return DriverWeekFacts(
            driver_id=driver_id,
            driver_name=seat.driver_name,
            vehicle_plate=seat.vehicle_plate,
            modality=seat.modality,
            window_start=window_start,
            window_end=window_end,
            assignment_start=seat.assignment_start,
            assignment_end=seat.assignment_end,
            prior_balance=prior_balance,
            mora_days=mora_days,
            guarantee=self._guarantee(driver_id),
            km_excess=self._km_excess(driver_id, week_number, year),
            tickets=self._tickets(driver_id),
            tolls=self._tolls(driver_id, window_start, window_end),
            penalties=self._penalties(driver_id, window_start, window_end),
            fractional=self._fractional(driver_id, week_number, year),
        )

    # ------------------------------------------------------------------

    def _balance(self, driver_id: UUID) -> tuple[Decimal, int]:
        head = self.session.execute(
            select(DriverBalance).where(DriverBalance.driver_id == driver_id)
        ).scalar_one_or_none()
        if head is None:
            return ZERO, 0
        balance = head.current_balance
        if self._exclude_period_id is not None:
            if self._period_net is None:
                self._period_net = BalanceSelector(self.session).period_net_by_driver(
                    self._exclude_period_id
                )
            balance = balance - self._period_net.get(driver_id, ZERO)
        return balance, head.mora_days

    def _guarantee(self, driver_id: UUID) -> GuaranteeState | None:
        account = self.session.execute(
            select(GuaranteeAccount).where(GuaranteeAccount.driver_id == driver_id)
        ).scalar_one_or_none()
        if account is None:
            return None

        state = GuaranteeState(
            total_installments=account.total_installments,
            quota_amount=account.quota_amount,
            installments_paid=account.installments_paid,
            amount_paid=account.amount_paid,
            completed=account.status == GuaranteeStatus.COMPLETED,
        )
        if self._exclude_period_id is None:
            return state

        payment = self.session.execute(
            select(GuaranteePayment).where(
                GuaranteePayment.guarantee_account_id == account.id,
                GuaranteePayment.period_id == self._exclude_period_id,
            )
        ).scalar_one_or_none()
        if payment is None:
            return state
        installments = state.installments_paid - 1
        paid = state.amount_paid - payment.amount
        return replace(
            state,
            installments_paid=installments,
            amount_paid=paid,
            completed=is_complete(paid, installments, state),
        )

    def _km_excess(self, driver_id: UUID, week_number: int, year: int) -> tuple[KmExcessItem, ...]:
        rows = self.session.execute(
            select(KmExcessRecord)
            .where(
                KmExcessRecord.driver_id == driver_id,
                _week_at_or_before(KmExcessRecord, week_number, year),
                _available(KmExcessRecord, self._exclude_period_id),
            )
            .order_by(KmExcessRecord.year, KmExcessRecord.week_number, KmExcessRecord.created_at)
        ).scalars()
        return tuple(
            KmExcessItem(
                record_id=r.id,
                total_amount=r.total_amount,
                base_amount=r.base_amount,
                tax_amount=r.tax_amount,
                vat_percentage=r.vat_percentage,
                km_over=r.km_over,
                bracket=r.bracket,
                is_estimated=r.is_estimated,
            )
            for r in rows
        )

    def _tickets(self, driver_id: UUID) -> tuple[TicketCreditItem, ...]:
        eligible = TicketCredit.status == TicketStatus.APPROVED.value
        if self._exclude_period_id is not None:
            eligible = or_(
                eligible,
                and_(
                    TicketCredit.status == TicketStatus.APPLIED.value,
                    TicketCredit.applied_period_id == self._exclude_period_id,
                ),
            )
        rows = self.session.execute(
            select(TicketCredit)
            .where(TicketCredit.driver_id == driver_id, eligible)
            .order_by(TicketCredit.requested_at, TicketCredit.created_at)
        ).scalars()
        return tuple(
            TicketCreditItem(ticket_id=t.id, amount=t.amount, description=t.description)
            for t in rows
        )

    def _tolls(self, driver_id: UUID, start: date, end: date) -> tuple[TollItem, ...]:
        rows = self.session.execute(
            select(TollCharge)
            .where(
                TollCharge.driver_id == driver_id,
                TollCharge.occurred_on >= start,
                TollCharge.occurred_on <= end,
            )
            .order_by(TollCharge.occurred_on, TollCharge.created_at)
        ).scalars()
        return tuple(
            TollItem(toll_id=t.id, amount=t.amount, occurred_on=t.occurred_on) for t in rows
        )

    def _penalties(self, driver_id: UUID, start: date, end: date) -> tuple[PenaltyItem, ...]:
        rows = self.session.execute(
            select(Penalty)
            .where(
                Penalty.driver_id == driver_id,
                Penalty.occurred_on >= start,
                Penalty.occurred_on <= end,
                _available(Penalty, self._exclude_period_id),
            )
            .order_by(Penalty.occurred_on, Penalty.created_at)
        ).scalars()
        return tuple(
            PenaltyItem(
                penalty_id=p.id,
                amount=p.amount,
                detail=p.detail,
                occurred_on=p.occurred_on,
            )
            for p in rows
        )

    def _fractional(
        self, driver_id: UUID, week_number: int, year: int
    ) -> tuple[FractionalItem, ...]:
        rows = self.session.execute(
            select(FractionalInstallment, FractionalCharge)
            .join(FractionalCharge, FractionalCharge.id == FractionalInstallment.charge_id)
            .where(
                FractionalInstallment.driver_id == driver_id,
                _week_at_or_before(FractionalInstallment, week_number, year),
                _available(FractionalInstallment, self._exclude_period_id),
            )
            .order_by(
                FractionalInstallment.year,
                FractionalInstallment.week_number,
                FractionalInstallment.installment_number,
            )
        ).all()
        return tuple(
            FractionalItem(
                installment_id=installment.id,
                amount=installment.amount,
                installment_number=installment.installment_number,
                installment_count=charge.installment_count,
                description=charge.description,
            )
            for installment, charge in rows
        )

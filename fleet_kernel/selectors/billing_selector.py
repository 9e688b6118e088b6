"""
BillingSelector -- read access to billing periods and their lines.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from fleet_kernel.domain.dtos import (
    BillingDetailInfo,
    BillingLineInfo,
    BillingPeriodInfo,
)
from fleet_kernel.domain.values import PeriodStatus
from fleet_kernel.models.billing_line import BillingLine
from fleet_kernel.models.billing_period import BillingPeriod
from fleet_kernel.selectors.base import BaseSelector


class BillingSelector(BaseSelector[BillingPeriod]):
    def get_period(self, week_number: int, year: int) -> BillingPeriodInfo | None:
        row = self.session.execute(
            select(BillingPeriod).where(
                BillingPeriod.week_number == week_number,
                BillingPeriod.year == year,
            )
        ).scalar_one_or_none()
        return to_period_info(row) if row is not None else None

    def periods_for_weeks(
        self, weeks: list[tuple[int, int]]
    ) -> dict[tuple[int, int], BillingPeriodInfo]:
        years = {year for _, year in weeks}
        rows = self.session.execute(
            select(BillingPeriod).where(BillingPeriod.year.in_(years))
        ).scalars()
        wanted = set(weeks)
        return {
            (row.week_number, row.year): to_period_info(row)
            for row in rows
            if (row.week_number, row.year) in wanted
        }

    def lines_for_period(self, period_id: UUID) -> list[BillingLineInfo]:
        rows = self.session.execute(
            select(BillingLine)
            .where(BillingLine.period_id == period_id)
            .options(selectinload(BillingLine.details))
            .order_by(BillingLine.driver_name)
        ).scalars()
        return [to_line_info(row) for row in rows]

    def line_for_driver(self, period_id: UUID, driver_id: UUID) -> BillingLineInfo | None:
        row = self.session.execute(
            select(BillingLine)
            .where(BillingLine.period_id == period_id, BillingLine.driver_id == driver_id)
            .options(selectinload(BillingLine.details))
        ).scalar_one_or_none()
        return to_line_info(row) if row is not None else None


def to_period_info(period: BillingPeriod) -> BillingPeriodInfo:
    return BillingPeriodInfo(
        id=period.id,
        week_number=period.week_number,
        year=period.year,
        start_date=period.start_date,
        end_date=period.end_date,
        status=PeriodStatus(period.status),
        driver_count=period.driver_count,
        total_charges=period.total_charges,
        total_credits=period.total_credits,
        total_net=period.total_net,
        closed_at=period.closed_at,
        closed_by_id=period.closed_by_id,
    )


def to_line_info(line: BillingLine) -> BillingLineInfo:
    return BillingLineInfo(
        id=line.id,
        period_id=line.period_id,
        driver_id=line.driver_id,
        driver_name=line.driver_name,
        vehicle_plate=line.vehicle_plate,
        modality=line.modality,
        days_billed=line.days_billed,
        rent_amount=line.rent_amount,
        guarantee_amount=line.guarantee_amount,
        km_excess_amount=line.km_excess_amount,
        toll_amount=line.toll_amount,
        penalty_amount=line.penalty_amount,
        fractional_amount=line.fractional_amount,
        gross_charges=line.gross_charges,
        credits=line.credits,
        net_charges=line.net_charges,
        prior_balance=line.prior_balance,
        mora_days=line.mora_days,
        mora_amount=line.mora_amount,
        total_due=line.total_due,
        status=line.status,
        is_estimated=line.is_estimated,
        needs_review=line.needs_review,
        details=tuple(
            BillingDetailInfo(
                concept_code=d.concept_code,
                description=d.description,
                quantity=d.quantity,
                unit_price=d.unit_price,
                total=d.total,
                is_credit=d.is_credit,
                source_ref_id=d.source_ref_id,
                source_ref_type=d.source_ref_type,
            )
            for d in line.details
        ),
    )

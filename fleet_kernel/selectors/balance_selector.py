"""
BalanceSelector -- driver balance heads, movement sums and block candidates.

Balance heads are cached totals; the movement history is the source of
truth.  ``movement_sum`` recomputes a driver's balance from history so
``BalanceService.verify_balance`` can detect drift.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, or_, select

from fleet_kernel.domain.dtos import BlockCandidate, DriverBalanceInfo
from fleet_kernel.models.balance import BalanceMovement, DriverBalance, MovementType
from fleet_kernel.models.driver import Driver, DriverStatus
from fleet_kernel.selectors.base import BaseSelector

_SIGNED_AMOUNT = case(
    (BalanceMovement.movement_type == MovementType.CHARGE.value, BalanceMovement.amount),
    else_=-BalanceMovement.amount,
)


class BalanceSelector(BaseSelector[DriverBalance]):
    def get_balance(self, driver_id: UUID) -> DriverBalanceInfo | None:
        row = self.session.execute(
            select(DriverBalance).where(DriverBalance.driver_id == driver_id)
        ).scalar_one_or_none()
        if row is None:
            return None
        return to_balance_info(row)

    def movement_sum(self, driver_id: UUID) -> Decimal:
        """Signed sum of every movement of the driver (charges positive)."""
        total = self.session.execute(
            select(func.coalesce(func.sum(_SIGNED_AMOUNT), 0))
            .where(BalanceMovement.driver_id == driver_id)
        ).scalar_one()
        return Decimal(total)

    def period_net_by_driver(self, period_id: UUID) -> dict[UUID, Decimal]:
        """Signed movement total per driver for one billing period."""
        rows = self.session.execute(
            select(BalanceMovement.driver_id, func.sum(_SIGNED_AMOUNT))
            .where(BalanceMovement.period_id == period_id)
            .group_by(BalanceMovement.driver_id)
        ).all()
        return {driver_id: Decimal(total) for driver_id, total in rows}

    def movements(self, driver_id: UUID) -> list[BalanceMovement]:
        """Movement history, oldest first.  Read-only use."""
        return list(self.session.execute(
            select(BalanceMovement)
            .where(BalanceMovement.driver_id == driver_id)
            .order_by(BalanceMovement.occurred_at, BalanceMovement.created_at)
        ).scalars())

    def drivers_over_limit(
        self,
        balance_limit: Decimal,
        mora_days_limit: int,
    ) -> list[BlockCandidate]:
        """Active drivers owing more than ``balance_limit`` or in arrears
        for at least ``mora_days_limit`` days, largest debt first."""
        rows = self.session.execute(
            select(DriverBalance, Driver.full_name)
            .join(Driver, Driver.id == DriverBalance.driver_id)
            .where(Driver.status == DriverStatus.ACTIVE.value)
            .where(
                or_(
                    DriverBalance.current_balance > balance_limit,
                    DriverBalance.mora_days >= mora_days_limit,
                )
            )
            .order_by(DriverBalance.current_balance.desc())
        ).all()
        return [
            BlockCandidate(
                driver_id=balance.driver_id,
                driver_name=name,
                current_balance=balance.current_balance,
                mora_days=balance.mora_days,
                over_balance_limit=balance.current_balance > balance_limit,
                over_mora_days=balance.mora_days >= mora_days_limit,
            )
            for balance, name in rows
        ]


def to_balance_info(row: DriverBalance) -> DriverBalanceInfo:
    return DriverBalanceInfo(
        driver_id=row.driver_id,
        current_balance=row.current_balance,
        mora_days=row.mora_days,
        accrued_mora_amount=row.accrued_mora_amount,
        last_updated=row.last_updated,
    )

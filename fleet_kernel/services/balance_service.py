"""
BalanceService -- driver balance heads and the movement history behind them.

Responsibility:
    Appends BalanceMovements and keeps the DriverBalance head in step with
    them.  Every change to ``current_balance`` goes through
    ``record_movement``; nothing else writes the head.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by the ledger updater (fleet_services/) when a billing line is
    committed or a period is reversed for regeneration, and by the calling
    application for manual adjustments and mora-day updates.

Invariants enforced:
    - Movement amounts are strictly positive; direction is the type.
    - ``current_balance`` equals the signed sum of movements
      (charge +, credit -).  ``verify_balance`` re-derives it.
    - Flush-only.

Failure modes:
    - ValueError: non-positive movement amount, negative mora days.
    - DriverNotFoundError: unknown driver.
    - BalanceMismatchError: head and history disagree.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from fleet_kernel.db.types import ZERO
from fleet_kernel.domain.dtos import DriverBalanceInfo
from fleet_kernel.exceptions import BalanceMismatchError, DriverNotFoundError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.balance import BalanceMovement, DriverBalance, MovementType
from fleet_kernel.models.driver import Driver
from fleet_kernel.selectors.balance_selector import BalanceSelector, to_balance_info
from fleet_kernel.services.base import BaseService

logger = get_logger("services.balance")


class BalanceService(BaseService[DriverBalance]):
    """
    Service owning driver balance heads.

    Contract:
        Callers state the change (type and positive amount, or a signed
        delta); the service appends the movement and moves the head.
    """

    def _get_head(self, driver_id: UUID) -> DriverBalance | None:
        return self.session.execute(
            select(DriverBalance)
            .where(DriverBalance.driver_id == driver_id)
            .with_for_update()
        ).scalar_one_or_none()

    def get_or_create(self, driver_id: UUID, actor_id: UUID) -> DriverBalance:
        """Balance head of the driver, created at zero on first use."""
        head = self._get_head(driver_id)
        if head is not None:
            return head
        if self.session.get(Driver, driver_id) is None:
            raise DriverNotFoundError(str(driver_id))
        head = DriverBalance(
            driver_id=driver_id,
            current_balance=ZERO,
            mora_days=0,
            accrued_mora_amount=ZERO,
            created_by_id=actor_id,
        )
        self.session.add(head)
        self.session.flush()
        return head

    def get_balance(self, driver_id: UUID) -> DriverBalanceInfo:
        """Balance of the driver; a driver with no history has a zero balance."""
        info = BalanceSelector(self.session).get_balance(driver_id)
        if info is not None:
            return info
        if self.session.get(Driver, driver_id) is None:
            raise DriverNotFoundError(str(driver_id))
        return DriverBalanceInfo(
            driver_id=driver_id,
            current_balance=ZERO,
            mora_days=0,
            accrued_mora_amount=ZERO,
            last_updated=None,
        )

    def record_movement(
        self,
        driver_id: UUID,
        movement_type: MovementType,
        amount: Decimal,
        concept: str,
        actor_id: UUID,
        reference: str | None = None,
        week_number: int | None = None,
        year: int | None = None,
        period_id: UUID | None = None,
        occurred_at: datetime | None = None,
    ) -> DriverBalanceInfo:
        """
        Append one movement and apply it to the head.

        Raises:
            ValueError: amount is not strictly positive.
        """
        if amount <= ZERO:
            raise ValueError(f"Movement amount must be positive, got {amount}")

        movement_type = MovementType(movement_type)
        head = self.get_or_create(driver_id, actor_id)
        now = occurred_at or self._clock.now()

        movement = BalanceMovement(
            driver_id=driver_id,
            movement_type=movement_type.value,
            amount=amount,
            concept=concept,
            reference=reference,
            week_number=week_number,
            year=year,
            period_id=period_id,
            occurred_at=now,
            created_by_id=actor_id,
        )
        self.session.add(movement)

        signed = amount if movement_type == MovementType.CHARGE else -amount
        head.current_balance = head.current_balance + signed
        head.last_updated = now
        head.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "balance_movement_recorded",
            extra={
                "driver_id": str(driver_id),
                "movement_type": movement_type.value,
                "amount": str(amount),
                "concept": concept,
                "balance_after": str(head.current_balance),
            },
        )
        return to_balance_info(head)

    def apply_delta(
        self,
        driver_id: UUID,
        delta: Decimal,
        concept: str,
        actor_id: UUID,
        **movement_fields,
    ) -> DriverBalanceInfo | None:
        """
        Move the head by a signed delta: a charge when positive, a credit
        when negative.  A zero delta records nothing and returns None.
        """
        if delta == ZERO:
            return None
        movement_type = MovementType.CHARGE if delta > ZERO else MovementType.CREDIT
        return self.record_movement(
            driver_id, movement_type, abs(delta), concept, actor_id, **movement_fields
        )

    def adjust_accrued_mora(self, driver_id: UUID, delta: Decimal, actor_id: UUID) -> None:
        """Add (or with a negative delta, remove) mora from the running accrual."""
        if delta == ZERO:
            return
        head = self.get_or_create(driver_id, actor_id)
        head.accrued_mora_amount = head.accrued_mora_amount + delta
        head.updated_by_id = actor_id
        self.session.flush()

    def set_mora_days(self, driver_id: UUID, mora_days: int, actor_id: UUID) -> DriverBalanceInfo:
        """
        Record how many days the driver has been in arrears.

        Billing reads this value; it never resets it.  The payments side
        owns the count.
        """
        if mora_days < 0:
            raise ValueError(f"mora_days must be >= 0, got {mora_days}")
        head = self.get_or_create(driver_id, actor_id)
        head.mora_days = mora_days
        head.last_updated = self._clock.now()
        head.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "mora_days_updated",
            extra={"driver_id": str(driver_id), "mora_days": mora_days},
        )
        return to_balance_info(head)

    def verify_balance(self, driver_id: UUID) -> Decimal:
        """
        Check the head against the movement history.

        Returns:
            The verified balance.

        Raises:
            BalanceMismatchError: stored head differs from the movement sum.
        """
        selector = BalanceSelector(self.session)
        computed = selector.movement_sum(driver_id)
        info = selector.get_balance(driver_id)
        stored = info.current_balance if info is not None else ZERO
        if stored != computed:
            logger.error(
                "balance_mismatch_detected",
                extra={
                    "driver_id": str(driver_id),
                    "stored": str(stored),
                    "computed": str(computed),
                },
            )
            raise BalanceMismatchError(str(driver_id), str(stored), str(computed))
        return stored

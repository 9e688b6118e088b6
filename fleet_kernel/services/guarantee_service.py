"""
GuaranteeService -- persistence of guarantee-deposit accounts.

Responsibility:
    Opens a driver's guarantee account on the first billable committed week,
    records each committed installment as a GuaranteePayment, and rolls a
    period's installments back when that period is regenerated.

Architecture position:
    Kernel > Services -- imperative shell.
    The installment amount and completion are decided by the pure tracker
    in fleet_engines/guarantee.py; this service only persists the outcome.

Invariants enforced:
    - One account per driver.
    - One payment per (account, period).
    - ``amount_paid`` after a rollback equals its value before the period
      was committed, so a regeneration starts from the same state.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from fleet_kernel.domain.dtos import GuaranteeInfo
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.guarantee import GuaranteeAccount, GuaranteePayment, GuaranteeStatus
from fleet_kernel.services.base import BaseService

logger = get_logger("services.guarantee")


def _to_info(account: GuaranteeAccount) -> GuaranteeInfo:
    return GuaranteeInfo(
        driver_id=account.driver_id,
        modality=account.modality,
        total_installments=account.total_installments,
        quota_amount=account.quota_amount,
        installments_paid=account.installments_paid,
        amount_paid=account.amount_paid,
        status=account.status,
    )


class GuaranteeService(BaseService[GuaranteeAccount]):
    def _get_account(self, driver_id: UUID) -> GuaranteeAccount | None:
        return self.session.execute(
            select(GuaranteeAccount)
            .where(GuaranteeAccount.driver_id == driver_id)
            .with_for_update()
        ).scalar_one_or_none()

    def get_account(self, driver_id: UUID) -> GuaranteeInfo | None:
        account = self._get_account(driver_id)
        return _to_info(account) if account else None

    def record_installment(
        self,
        driver_id: UUID,
        period_id: UUID,
        modality: str,
        total_installments: int,
        quota_amount: Decimal,
        amount: Decimal,
        completes_account: bool,
        paid_on: date,
        actor_id: UUID,
    ) -> GuaranteeInfo:
        """
        Persist one committed installment.

        ``total_installments`` and ``quota_amount`` only matter when the
        account does not exist yet; an existing account keeps the terms it
        was opened with.
        """
        account = self._get_account(driver_id)
        if account is None:
            account = GuaranteeAccount(
                driver_id=driver_id,
                modality=modality,
                total_installments=total_installments,
                quota_amount=quota_amount,
                installments_paid=0,
                amount_paid=Decimal("0"),
                status=GuaranteeStatus.IN_PROGRESS.value,
                started_on=paid_on,
                created_by_id=actor_id,
            )
            self.session.add(account)
            self.session.flush()
            logger.info(
                "guarantee_account_opened",
                extra={
                    "driver_id": str(driver_id),
                    "total_installments": total_installments,
                    "quota_amount": str(quota_amount),
                },
            )

        account.installments_paid += 1
        account.amount_paid = account.amount_paid + amount
        account.updated_by_id = actor_id
        if completes_account:
            account.status = GuaranteeStatus.COMPLETED.value
            account.completed_on = paid_on

        self.session.add(
            GuaranteePayment(
                guarantee_account_id=account.id,
                driver_id=driver_id,
                period_id=period_id,
                installment_number=account.installments_paid,
                amount=amount,
                paid_on=paid_on,
                created_by_id=actor_id,
            )
        )
        self.session.flush()

        if completes_account:
            logger.info(
                "guarantee_account_completed",
                extra={
                    "driver_id": str(driver_id),
                    "amount_paid": str(account.amount_paid),
                    "installments_paid": account.installments_paid,
                },
            )
        return _to_info(account)

    def payment_for_period(self, driver_id: UUID, period_id: UUID) -> GuaranteePayment | None:
        return self.session.execute(
            select(GuaranteePayment).where(
                GuaranteePayment.driver_id == driver_id,
                GuaranteePayment.period_id == period_id,
            )
        ).scalar_one_or_none()

    def rollback_period(self, period_id: UUID, actor_id: UUID) -> int:
        """
        Undo every installment a period committed.

        Returns:
            Number of payments removed.
        """
        payments = list(
            self.session.execute(
                select(GuaranteePayment).where(GuaranteePayment.period_id == period_id)
            ).scalars()
        )
        for payment in payments:
            account = self.session.get(GuaranteeAccount, payment.guarantee_account_id)
            account.installments_paid -= 1
            account.amount_paid = account.amount_paid - payment.amount
            account.updated_by_id = actor_id
            still_complete = (
                account.amount_paid >= account.target_amount
                or account.installments_paid >= account.total_installments
            )
            if account.status == GuaranteeStatus.COMPLETED and not still_complete:
                account.status = GuaranteeStatus.IN_PROGRESS.value
                account.completed_on = None
            self.session.delete(payment)
        self.session.flush()

        if payments:
            logger.info(
                "guarantee_period_rolled_back",
                extra={"period_id": str(period_id), "payments": len(payments)},
            )
        return len(payments)

"""
ConsumptionService -- exclusive consumption of billable source records.

Responsibility:
    Km-excess records, ticket credits, penalties and fractional installments
    are each billed by at most one billing line.  A generation run claims a
    record with a conditional UPDATE (``... WHERE applied = false``) and
    bills it only when exactly one row changed.  A record someone else
    already claimed is skipped without error.

    Regenerating a period first releases everything the period claimed.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the ledger updater.

Invariants enforced:
    - Claims are check-and-flip in a single statement; there is no
      read-then-write window for a concurrent run to slip into.
    - Release only touches records applied to the given period.
"""

from uuid import UUID

from sqlalchemy import and_, update

from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.charges import FractionalInstallment, Penalty
from fleet_kernel.models.km_excess import KmExcessRecord
from fleet_kernel.models.ticket import TicketCredit, TicketStatus
from fleet_kernel.services.base import BaseService

logger = get_logger("services.consumption")

_FLAG_MODELS = (KmExcessRecord, Penalty, FractionalInstallment)


class ConsumptionService(BaseService[KmExcessRecord]):
    def _claim_flagged(self, model, record_id: UUID, period_id: UUID, actor_id: UUID) -> bool:
        result = self.session.execute(
            update(model)
            .where(and_(model.id == record_id, model.applied.is_(False)))
            .values(
                applied=True,
                applied_period_id=period_id,
                applied_at=self._clock.now(),
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        return self._claimed(result.rowcount, model.__tablename__, record_id)

    def _claimed(self, rowcount: int, kind: str, record_id: UUID) -> bool:
        if rowcount == 1:
            return True
        logger.info(
            "consumption_claim_skipped",
            extra={"record_type": kind, "record_id": str(record_id)},
        )
        return False

    def claim_km_excess(self, record_id: UUID, period_id: UUID, actor_id: UUID) -> bool:
        return self._claim_flagged(KmExcessRecord, record_id, period_id, actor_id)

    def claim_penalty(self, penalty_id: UUID, period_id: UUID, actor_id: UUID) -> bool:
        return self._claim_flagged(Penalty, penalty_id, period_id, actor_id)

    def claim_fractional(self, installment_id: UUID, period_id: UUID, actor_id: UUID) -> bool:
        return self._claim_flagged(FractionalInstallment, installment_id, period_id, actor_id)

    def claim_ticket(self, ticket_id: UUID, period_id: UUID, actor_id: UUID) -> bool:
        """APPROVED -> APPLIED.  False when the ticket is no longer approved."""
        result = self.session.execute(
            update(TicketCredit)
            .where(
                and_(
                    TicketCredit.id == ticket_id,
                    TicketCredit.status == TicketStatus.APPROVED.value,
                )
            )
            .values(
                status=TicketStatus.APPLIED.value,
                applied_period_id=period_id,
                applied_at=self._clock.now(),
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        return self._claimed(result.rowcount, TicketCredit.__tablename__, ticket_id)

    def release_period(self, period_id: UUID, actor_id: UUID) -> int:
        """
        Un-apply everything consumed by a period.

        Returns:
            Total number of records released.
        """
        released = 0
        for model in _FLAG_MODELS:
            result = self.session.execute(
                update(model)
                .where(model.applied_period_id == period_id)
                .values(
                    applied=False,
                    applied_period_id=None,
                    applied_at=None,
                    updated_by_id=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            released += result.rowcount

        result = self.session.execute(
            update(TicketCredit)
            .where(
                and_(
                    TicketCredit.applied_period_id == period_id,
                    TicketCredit.status == TicketStatus.APPLIED.value,
                )
            )
            .values(
                status=TicketStatus.APPROVED.value,
                applied_period_id=None,
                applied_at=None,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        released += result.rowcount

        if released:
            logger.info(
                "period_consumption_released",
                extra={"period_id": str(period_id), "records": released},
            )
        return released

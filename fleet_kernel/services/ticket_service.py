"""
TicketService -- driver ticket credit workflow.

Lifecycle: PENDING -> APPROVED -> APPLIED, PENDING/APPROVED -> REJECTED.
Only APPROVED tickets are offered to billing; a generation run flips them
to APPLIED when it claims them (ConsumptionService).
"""

from decimal import Decimal
from uuid import UUID

from fleet_kernel.domain.dtos import TicketInfo
from fleet_kernel.exceptions import (
    DriverNotFoundError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
)
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.driver import Driver
from fleet_kernel.models.ticket import TicketCredit, TicketStatus
from fleet_kernel.services.base import BaseService

logger = get_logger("services.ticket")


def _to_info(ticket: TicketCredit) -> TicketInfo:
    return TicketInfo(
        id=ticket.id,
        driver_id=ticket.driver_id,
        ticket_type=ticket.ticket_type,
        description=ticket.description,
        amount=ticket.amount,
        status=TicketStatus(ticket.status).value,
        rejection_reason=ticket.rejection_reason,
        applied_period_id=ticket.applied_period_id,
    )


class TicketService(BaseService[TicketCredit]):
    def _get(self, ticket_id: UUID) -> TicketCredit:
        ticket = self.session.get(TicketCredit, ticket_id)
        if ticket is None:
            raise TicketNotFoundError(str(ticket_id))
        return ticket

    def get_ticket(self, ticket_id: UUID) -> TicketInfo:
        return _to_info(self._get(ticket_id))

    def create_ticket(
        self,
        driver_id: UUID,
        ticket_type: str,
        description: str,
        amount: Decimal,
        actor_id: UUID,
    ) -> TicketInfo:
        """Register a receipt the driver wants reimbursed.  Starts PENDING."""
        if amount <= 0:
            raise ValueError(f"Ticket amount must be positive, got {amount}")
        if self.session.get(Driver, driver_id) is None:
            raise DriverNotFoundError(str(driver_id))

        ticket = TicketCredit(
            driver_id=driver_id,
            ticket_type=ticket_type,
            description=description,
            amount=amount,
            status=TicketStatus.PENDING.value,
            requested_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(ticket)
        self.session.flush()

        logger.info(
            "ticket_created",
            extra={"ticket_id": str(ticket.id), "driver_id": str(driver_id), "amount": str(amount)},
        )
        return _to_info(ticket)

    def approve_ticket(self, ticket_id: UUID, actor_id: UUID) -> TicketInfo:
        ticket = self._get(ticket_id)
        if ticket.status != TicketStatus.PENDING:
            raise InvalidTicketTransitionError(
                str(ticket_id), TicketStatus(ticket.status).value, TicketStatus.APPROVED.value
            )
        ticket.status = TicketStatus.APPROVED.value
        ticket.approved_at = self._clock.now()
        ticket.updated_by_id = actor_id
        self.session.flush()

        logger.info("ticket_approved", extra={"ticket_id": str(ticket_id)})
        return _to_info(ticket)

    def reject_ticket(self, ticket_id: UUID, reason: str, actor_id: UUID) -> TicketInfo:
        """Reject a pending or approved ticket.  Applied tickets are final."""
        ticket = self._get(ticket_id)
        if ticket.status not in (TicketStatus.PENDING, TicketStatus.APPROVED):
            raise InvalidTicketTransitionError(
                str(ticket_id), TicketStatus(ticket.status).value, TicketStatus.REJECTED.value
            )
        ticket.status = TicketStatus.REJECTED.value
        ticket.rejection_reason = reason
        ticket.updated_by_id = actor_id
        self.session.flush()

        logger.info("ticket_rejected", extra={"ticket_id": str(ticket_id), "reason": reason})
        return _to_info(ticket)

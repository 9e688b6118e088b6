"""
fleet_services.ledger_updater -- Persist billing results and their side effects.

Responsibility:
    Within a generation run's transaction:

    reverse_period  Undo a period's previous results before it is
                    regenerated: a reversing balance movement per driver,
                    old mora taken out of the accrual, guarantee
                    installments rolled back, consumed records released,
                    lines and details deleted.
    claim           Flip the applied flag of every consumable in a driver's
                    facts; records another run already claimed are dropped
                    from the facts.
    post_charge     Insert the line and its details, advance the guarantee
                    account, and move the balance head by net + mora.

Architecture position:
    Services -- composes kernel services (BalanceService, GuaranteeService,
    ConsumptionService).  Never commits: the orchestrator owns the
    transaction and a savepoint per driver.

Invariants enforced:
    - After ``post_charge`` the driver's balance head equals the line's
      ``total_due`` when the head was the line's ``prior_balance``.
    - Reversal followed by an identical regeneration leaves balances,
      guarantee accounts and consumption flags exactly as they were.
"""

from dataclasses import replace
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_engines.charge_calculator import DriverWeekCharge, DriverWeekFacts
from fleet_kernel.db.types import ZERO, as_ratio
from fleet_kernel.domain.clock import Clock
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.billing_line import BillingLine, BillingLineDetail, BillingLineStatus
from fleet_kernel.models.billing_period import BillingPeriod
from fleet_kernel.selectors.balance_selector import BalanceSelector
from fleet_kernel.services.balance_service import BalanceService
from fleet_kernel.services.consumption_service import ConsumptionService
from fleet_kernel.services.guarantee_service import GuaranteeService

logger = get_logger("services.ledger_updater")


class LedgerUpdater:
    def __init__(self, session: Session, clock: Clock, actor_id: UUID):
        self.session = session
        self._clock = clock
        self._actor_id = actor_id
        self._balances = BalanceService(session, clock)
        self._guarantees = GuaranteeService(session, clock)
        self._consumption = ConsumptionService(session, clock)

    # ------------------------------------------------------------------
    # Reversal
    # ------------------------------------------------------------------

    def reverse_period(self, period: BillingPeriod) -> int:
        """
        Remove a period's previous results.

        Returns:
            Number of lines deleted.
        """
        code = period.period_code
        net_by_driver = BalanceSelector(self.session).period_net_by_driver(period.id)
        for driver_id, net in net_by_driver.items():
            self._balances.apply_delta(
                driver_id,
                -net,
                f"Reversal of {code}",
                self._actor_id,
                reference="regeneration",
                week_number=period.week_number,
                year=period.year,
                period_id=period.id,
            )

        lines = list(
            self.session.execute(
                select(BillingLine).where(BillingLine.period_id == period.id)
            ).scalars()
        )
        for line in lines:
            self._balances.adjust_accrued_mora(line.driver_id, -line.mora_amount, self._actor_id)

        self._guarantees.rollback_period(period.id, self._actor_id)
        released = self._consumption.release_period(period.id, self._actor_id)

        for line in lines:
            self.session.delete(line)
        self.session.flush()

        logger.info(
            "period_results_reversed",
            extra={
                "period_code": code,
                "lines_deleted": len(lines),
                "drivers_reversed": len(net_by_driver),
                "records_released": released,
            },
        )
        return len(lines)

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    def claim(self, facts: DriverWeekFacts, period_id: UUID) -> DriverWeekFacts:
        """Facts restricted to the consumables this run managed to claim."""
        actor = self._actor_id
        c = self._consumption
        return replace(
            facts,
            km_excess=tuple(
                i for i in facts.km_excess if c.claim_km_excess(i.record_id, period_id, actor)
            ),
            tickets=tuple(
                i for i in facts.tickets if c.claim_ticket(i.ticket_id, period_id, actor)
            ),
            penalties=tuple(
                i for i in facts.penalties if c.claim_penalty(i.penalty_id, period_id, actor)
            ),
            fractional=tuple(
                i for i in facts.fractional
                if c.claim_fractional(i.installment_id, period_id, actor)
            ),
        )

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post_charge(self, period: BillingPeriod, charge: DriverWeekCharge) -> BillingLine:
        actor = self._actor_id
        guarantee = charge.guarantee_charge

        line = BillingLine(
            period_id=period.id,
            driver_id=charge.driver_id,
            driver_name=charge.driver_name,
            vehicle_plate=charge.vehicle_plate,
            modality=charge.modality.value,
            days_billed=charge.days_billed,
            prorated_factor=as_ratio(
                Decimal(charge.prorated_factor.numerator)
                / Decimal(charge.prorated_factor.denominator)
            ),
            rent_amount=charge.rent_amount,
            guarantee_amount=charge.guarantee_amount,
            guarantee_installment=guarantee.installment_number,
            km_excess_amount=charge.km_excess_amount,
            toll_amount=charge.toll_amount,
            penalty_amount=charge.penalty_amount,
            fractional_amount=charge.fractional_amount,
            gross_charges=charge.gross_charges,
            credits=charge.credits,
            net_charges=charge.net_charges,
            prior_balance=charge.prior_balance,
            mora_days=charge.mora_days,
            mora_amount=charge.mora_amount,
            total_due=charge.total_due,
            status=BillingLineStatus.CALCULATED.value,
            is_estimated=charge.is_estimated,
            needs_review=charge.needs_review,
            review_notes="\n".join(charge.review_notes) or None,
            created_by_id=actor,
        )
        line.details = [
            BillingLineDetail(
                position=position,
                concept_code=item.concept_code,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=item.subtotal,
                vat_percentage=as_ratio(item.vat_percentage),
                vat_amount=item.vat_amount,
                total=item.total,
                is_credit=item.is_credit,
                source_ref_id=item.source_ref_id,
                source_ref_type=item.source_ref_type,
                created_by_id=actor,
            )
            for position, item in enumerate(charge.lines, start=1)
        ]
        self.session.add(line)
        self.session.flush()

        if guarantee.amount > ZERO and guarantee.installment_number is not None:
            state = charge.guarantee_state
            self._guarantees.record_installment(
                driver_id=charge.driver_id,
                period_id=period.id,
                modality=charge.modality.value,
                total_installments=state.total_installments,
                quota_amount=state.quota_amount,
                amount=guarantee.amount,
                completes_account=guarantee.completes_account,
                paid_on=period.end_date,
                actor_id=actor,
            )

        self._balances.apply_delta(
            charge.driver_id,
            charge.balance_delta,
            f"Weekly billing {period.period_code}",
            actor,
            reference=str(line.id),
            week_number=period.week_number,
            year=period.year,
            period_id=period.id,
        )
        self._balances.adjust_accrued_mora(charge.driver_id, charge.mora_amount, actor)

        logger.debug(
            "billing_line_posted",
            extra={
                "driver_id": str(charge.driver_id),
                "total_due": str(charge.total_due),
                "details": len(charge.lines),
            },
        )
        return line

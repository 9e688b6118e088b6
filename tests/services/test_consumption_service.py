"""
ConsumptionService unit tests.

Each billable source record is claimed by at most one period: the first
claim flips it, every later claim is a silent no-op.  Releasing a period
makes its records available again.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fleet_kernel.models.charges import FractionalInstallment, Penalty
from fleet_kernel.models.km_excess import KmExcessRecord
from fleet_kernel.models.ticket import TicketCredit
from fleet_kernel.services.consumption_service import ConsumptionService


@pytest.fixture
def consumption(session, deterministic_clock):
    return ConsumptionService(session, deterministic_clock)


@pytest.fixture
def open_period(period_service, test_actor_id):
    """Factory: hold a week in PROCESSING and return its period id."""

    def _open_period(week_number: int = 7, year: int = 2026):
        return period_service.begin_processing(week_number, year, test_actor_id, uuid4()).period_id

    return _open_period


class TestClaims:
    def test_km_excess_claimed_once(
        self, session, consumption, open_period, tariff_catalog, create_driver, record_km,
        test_actor_id,
    ):
        record = record_km(create_driver(), 1900)
        first, second = open_period(7), open_period(8)

        assert consumption.claim_km_excess(record.id, first, test_actor_id) is True
        assert consumption.claim_km_excess(record.id, second, test_actor_id) is False

        session.expire_all()
        stored = session.get(KmExcessRecord, record.id)
        assert stored.applied is True
        assert stored.applied_period_id == first
        assert stored.applied_at is not None

    def test_only_approved_tickets_can_be_claimed(
        self, consumption, open_period, create_ticket, create_driver, test_actor_id,
    ):
        driver = create_driver()
        approved = create_ticket(driver, Decimal("10000"))
        pending = create_ticket(driver, Decimal("5000"), approved=False)
        period_id = open_period()

        assert consumption.claim_ticket(approved.id, period_id, test_actor_id) is True
        assert consumption.claim_ticket(approved.id, period_id, test_actor_id) is False
        assert consumption.claim_ticket(pending.id, period_id, test_actor_id) is False

    def test_penalty_and_fractional_claimed_once(
        self, consumption, open_period, create_driver, create_penalty, create_fractional,
        test_actor_id,
    ):
        driver = create_driver()
        penalty = create_penalty(driver, date(2026, 2, 11), Decimal("25000"))
        installment = create_fractional(driver, [(7, 2026), (8, 2026)], Decimal("15000"))[0]
        period_id = open_period()

        assert consumption.claim_penalty(penalty.id, period_id, test_actor_id) is True
        assert consumption.claim_penalty(penalty.id, period_id, test_actor_id) is False
        assert consumption.claim_fractional(installment.id, period_id, test_actor_id) is True
        assert consumption.claim_fractional(installment.id, period_id, test_actor_id) is False

    def test_skipped_claim_is_logged(
        self, consumption, open_period, create_driver, create_penalty, captured_logs,
        test_actor_id,
    ):
        penalty = create_penalty(create_driver(), date(2026, 2, 11), Decimal("25000"))
        period_id = open_period()
        consumption.claim_penalty(penalty.id, period_id, test_actor_id)
        consumption.claim_penalty(penalty.id, period_id, test_actor_id)

        skipped = [r for r in captured_logs() if r["message"] == "consumption_claim_skipped"]
        assert len(skipped) == 1
        assert skipped[0]["record_type"] == Penalty.__tablename__


class TestReleasePeriod:
    def test_release_restores_availability(
        self, session, consumption, open_period, tariff_catalog, create_driver, record_km,
        create_ticket, create_penalty, create_fractional, test_actor_id,
    ):
        driver = create_driver()
        km = record_km(driver, 1850)
        ticket = create_ticket(driver, Decimal("10000"))
        penalty = create_penalty(driver, date(2026, 2, 12), Decimal("20000"))
        installment = create_fractional(driver, [(7, 2026)], Decimal("15000"))[0]
        period_id = open_period()

        consumption.claim_km_excess(km.id, period_id, test_actor_id)
        consumption.claim_ticket(ticket.id, period_id, test_actor_id)
        consumption.claim_penalty(penalty.id, period_id, test_actor_id)
        consumption.claim_fractional(installment.id, period_id, test_actor_id)

        assert consumption.release_period(period_id, test_actor_id) == 4

        session.expire_all()
        assert session.get(KmExcessRecord, km.id).applied is False
        assert session.get(Penalty, penalty.id).applied_period_id is None
        assert session.get(FractionalInstallment, installment.id).applied is False
        released_ticket = session.get(TicketCredit, ticket.id)
        assert released_ticket.status == "approved"
        assert released_ticket.applied_period_id is None

    def test_release_leaves_other_periods_alone(
        self, session, consumption, open_period, create_driver, create_penalty, test_actor_id,
    ):
        driver = create_driver()
        mine = create_penalty(driver, date(2026, 2, 11), Decimal("1000"))
        theirs = create_penalty(driver, date(2026, 2, 18), Decimal("2000"))
        week_7, week_8 = open_period(7), open_period(8)
        consumption.claim_penalty(mine.id, week_7, test_actor_id)
        consumption.claim_penalty(theirs.id, week_8, test_actor_id)

        assert consumption.release_period(week_7, test_actor_id) == 1

        session.expire_all()
        assert session.get(Penalty, mine.id).applied is False
        assert session.get(Penalty, theirs.id).applied is True

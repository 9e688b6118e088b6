"""
GuaranteeService unit tests.

Verifies:
- The account opens on the first recorded installment with the given terms
- Each installment advances the counters and leaves a payment row
- Rolling a period back restores the account exactly, completion included
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

QUOTA = Decimal("80000")


@pytest.fixture
def period_ids(period_service, test_actor_id):
    """Two held periods: weeks 7 and 8 of 2026."""
    return (
        period_service.begin_processing(7, 2026, test_actor_id, uuid4()).period_id,
        period_service.begin_processing(8, 2026, test_actor_id, uuid4()).period_id,
    )


def _record(service, driver, period_id, amount, actor_id, completes=False, total=20):
    return service.record_installment(
        driver_id=driver.id,
        period_id=period_id,
        modality="fixed_fee",
        total_installments=total,
        quota_amount=QUOTA,
        amount=amount,
        completes_account=completes,
        paid_on=date(2026, 2, 15),
        actor_id=actor_id,
    )


class TestRecordInstallment:
    def test_first_installment_opens_account(
        self, guarantee_service, create_driver, period_ids, test_actor_id
    ):
        driver = create_driver()
        assert guarantee_service.get_account(driver.id) is None

        info = _record(guarantee_service, driver, period_ids[0], QUOTA, test_actor_id)

        assert info.total_installments == 20
        assert info.quota_amount == QUOTA
        assert info.installments_paid == 1
        assert info.amount_paid == QUOTA
        assert info.status == "in_progress"

    def test_installments_accumulate_with_payment_rows(
        self, guarantee_service, create_driver, period_ids, test_actor_id
    ):
        driver = create_driver()
        _record(guarantee_service, driver, period_ids[0], QUOTA, test_actor_id)
        info = _record(guarantee_service, driver, period_ids[1], Decimal("45714"), test_actor_id)

        assert info.installments_paid == 2
        assert info.amount_paid == Decimal("125714")
        payment = guarantee_service.payment_for_period(driver.id, period_ids[1])
        assert payment.installment_number == 2
        assert payment.amount == Decimal("45714")

    def test_existing_account_keeps_its_terms(
        self, guarantee_service, create_driver, create_guarantee, period_ids, test_actor_id
    ):
        driver = create_driver()
        create_guarantee(driver, installments_paid=3, amount_paid=Decimal("240000"))

        info = _record(guarantee_service, driver, period_ids[0], QUOTA, test_actor_id, total=14)
        assert info.total_installments == 20
        assert info.installments_paid == 4

    def test_completing_installment(
        self, guarantee_service, create_driver, create_guarantee, period_ids, test_actor_id
    ):
        driver = create_driver()
        create_guarantee(driver, installments_paid=19, amount_paid=Decimal("1550000"))

        info = _record(
            guarantee_service, driver, period_ids[0], Decimal("50000"), test_actor_id,
            completes=True,
        )
        assert info.status == "completed"
        assert info.amount_paid == Decimal("1600000")


class TestRollbackPeriod:
    def test_rollback_restores_counters(
        self, guarantee_service, create_driver, period_ids, test_actor_id
    ):
        driver = create_driver()
        _record(guarantee_service, driver, period_ids[0], QUOTA, test_actor_id)
        _record(guarantee_service, driver, period_ids[1], QUOTA, test_actor_id)

        assert guarantee_service.rollback_period(period_ids[1], test_actor_id) == 1

        info = guarantee_service.get_account(driver.id)
        assert info.installments_paid == 1
        assert info.amount_paid == QUOTA
        assert guarantee_service.payment_for_period(driver.id, period_ids[1]) is None

    def test_rollback_reopens_completed_account(
        self, guarantee_service, create_driver, create_guarantee, period_ids, test_actor_id
    ):
        driver = create_driver()
        create_guarantee(driver, installments_paid=19, amount_paid=Decimal("1550000"))
        _record(
            guarantee_service, driver, period_ids[0], Decimal("50000"), test_actor_id,
            completes=True,
        )

        guarantee_service.rollback_period(period_ids[0], test_actor_id)

        info = guarantee_service.get_account(driver.id)
        assert info.status == "in_progress"
        assert info.installments_paid == 19
        assert info.amount_paid == Decimal("1550000")

    def test_rollback_of_untouched_period(self, guarantee_service, period_ids, test_actor_id):
        assert guarantee_service.rollback_period(period_ids[0], test_actor_id) == 0

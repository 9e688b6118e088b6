"""
BalanceService unit tests.

Tests cover:
- Movements move the head: charges up, credits down
- Zero-history drivers read as a zero balance
- Mora days are recorded, never derived
- verify_balance detects a head that drifted from its movements
- Block candidates over the balance or arrears thresholds
"""

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from fleet_kernel.exceptions import BalanceMismatchError, DriverNotFoundError
from fleet_kernel.models.balance import BalanceMovement, DriverBalance, MovementType
from fleet_kernel.models.driver import DriverStatus
from fleet_kernel.selectors.balance_selector import BalanceSelector
from fleet_services.billing_run import BillingRunOrchestrator


# =========================================================================
# Movements
# =========================================================================


class TestRecordMovement:
    def test_charge_then_credit(self, balance_service, create_driver, test_actor_id):
        driver = create_driver()

        after_charge = balance_service.record_movement(
            driver.id, MovementType.CHARGE, Decimal("100000"), "Opening balance", test_actor_id
        )
        assert after_charge.current_balance == Decimal("100000")

        after_credit = balance_service.record_movement(
            driver.id, MovementType.CREDIT, Decimal("30000"), "Cash payment", test_actor_id
        )
        assert after_credit.current_balance == Decimal("70000")

    def test_movements_are_appended(
        self, session, balance_service, create_driver, deterministic_clock, test_actor_id
    ):
        driver = create_driver()
        balance_service.record_movement(
            driver.id, MovementType.CHARGE, Decimal("5000"), "Damage", test_actor_id,
            reference="INC-12", week_number=7, year=2026,
        )
        deterministic_clock.advance(60)
        balance_service.record_movement(
            driver.id, MovementType.CREDIT, Decimal("2000"), "Refund", test_actor_id
        )

        movements = BalanceSelector(session).movements(driver.id)
        assert [m.movement_type for m in movements] == ["charge", "credit"]
        assert movements[0].reference == "INC-12"
        assert movements[0].week_number == 7
        assert [m.signed_amount for m in movements] == [Decimal("5000"), Decimal("-2000")]

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    def test_non_positive_amount_rejected(self, balance_service, create_driver, test_actor_id, amount):
        driver = create_driver()
        with pytest.raises(ValueError):
            balance_service.record_movement(
                driver.id, MovementType.CHARGE, amount, "bad", test_actor_id
            )

    def test_unknown_driver_rejected(self, balance_service, test_actor_id):
        with pytest.raises(DriverNotFoundError):
            balance_service.record_movement(
                uuid4(), MovementType.CHARGE, Decimal("10"), "x", test_actor_id
            )


class TestApplyDelta:
    def test_zero_delta_records_nothing(self, session, balance_service, create_driver, test_actor_id):
        driver = create_driver()
        assert balance_service.apply_delta(driver.id, Decimal("0"), "noop", test_actor_id) is None
        movements = session.execute(
            select(BalanceMovement).where(BalanceMovement.driver_id == driver.id)
        ).scalars().all()
        assert movements == []

    def test_negative_delta_is_a_credit(self, balance_service, create_driver, test_actor_id):
        driver = create_driver()
        info = balance_service.apply_delta(driver.id, Decimal("-45000"), "Adjustment", test_actor_id)
        assert info.current_balance == Decimal("-45000")


# =========================================================================
# Reads
# =========================================================================


class TestGetBalance:
    def test_driver_without_history_has_zero_balance(self, balance_service, create_driver):
        driver = create_driver()
        info = balance_service.get_balance(driver.id)
        assert info.current_balance == Decimal("0")
        assert info.mora_days == 0
        assert info.last_updated is None

    def test_unknown_driver(self, balance_service):
        with pytest.raises(DriverNotFoundError):
            balance_service.get_balance(uuid4())


class TestMoraDays:
    def test_set_mora_days(self, balance_service, create_driver, test_actor_id):
        driver = create_driver()
        info = balance_service.set_mora_days(driver.id, 5, test_actor_id)
        assert info.mora_days == 5
        assert balance_service.get_balance(driver.id).mora_days == 5

    def test_negative_mora_days_rejected(self, balance_service, create_driver, test_actor_id):
        driver = create_driver()
        with pytest.raises(ValueError):
            balance_service.set_mora_days(driver.id, -1, test_actor_id)

    def test_accrued_mora_adjustment(self, balance_service, create_driver, test_actor_id):
        driver = create_driver()
        balance_service.adjust_accrued_mora(driver.id, Decimal("7000"), test_actor_id)
        balance_service.adjust_accrued_mora(driver.id, Decimal("-2000"), test_actor_id)
        assert balance_service.get_balance(driver.id).accrued_mora_amount == Decimal("5000")


# =========================================================================
# Verification
# =========================================================================


class TestVerifyBalance:
    def test_head_matches_movements(self, balance_service, create_driver, test_actor_id):
        driver = create_driver()
        balance_service.record_movement(
            driver.id, MovementType.CHARGE, Decimal("120000"), "Week", test_actor_id
        )
        balance_service.record_movement(
            driver.id, MovementType.CREDIT, Decimal("20000"), "Payment", test_actor_id
        )
        assert balance_service.verify_balance(driver.id) == Decimal("100000")

    def test_drifted_head_detected(self, session, balance_service, create_driver, test_actor_id):
        driver = create_driver()
        balance_service.record_movement(
            driver.id, MovementType.CHARGE, Decimal("50000"), "Week", test_actor_id
        )
        head = session.execute(
            select(DriverBalance).where(DriverBalance.driver_id == driver.id)
        ).scalar_one()
        head.current_balance = Decimal("99999")
        session.flush()

        with pytest.raises(BalanceMismatchError) as exc_info:
            balance_service.verify_balance(driver.id)
        assert exc_info.value.code == "BALANCE_MISMATCH"
        assert exc_info.value.driver_id == str(driver.id)


# =========================================================================
# Block candidates
# =========================================================================


class TestBlockCandidates:
    def test_drivers_over_limits(self, session, create_driver, set_balance, billing_params):
        debtor = create_driver("Bruno Diaz")
        late = create_driver("Carla Rios")
        fine = create_driver("Dario Paz")
        gone = create_driver("Elsa Vidal", status=DriverStatus.INACTIVE)
        set_balance(debtor, Decimal("650000"))
        set_balance(late, Decimal("40000"), mora_days=9)
        set_balance(fine, Decimal("40000"), mora_days=2)
        set_balance(gone, Decimal("900000"), mora_days=30)

        candidates = BalanceSelector(session).drivers_over_limit(
            billing_params.block_balance_limit, billing_params.block_mora_days
        )

        assert [c.driver_name for c in candidates] == ["Bruno Diaz", "Carla Rios"]
        assert candidates[0].over_balance_limit is True
        assert candidates[0].over_mora_days is False
        assert candidates[1].over_balance_limit is False
        assert candidates[1].over_mora_days is True

    def test_orchestrator_uses_configured_limits(
        self, session, session_factory, deterministic_clock, billing_params, create_driver,
        set_balance,
    ):
        debtor = create_driver("Bruno Diaz")
        create_driver("Carla Rios")
        set_balance(debtor, Decimal("150000"), mora_days=1)
        session.commit()

        strict = BillingRunOrchestrator(
            session_factory,
            clock=deterministic_clock,
            params=replace(billing_params, block_balance_limit=Decimal("100000")),
        )

        assert [c.driver_id for c in strict.block_candidates()] == [debtor.id]
        default = BillingRunOrchestrator(
            session_factory, clock=deterministic_clock, params=billing_params
        )
        assert default.block_candidates() == []

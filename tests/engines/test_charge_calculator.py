"""
Tests for the weekly driver charge calculator
(fleet_engines/charge_calculator.py).

Covers the reference scenarios:
- A: fixed-fee driver, full week, no extras -> rent + guarantee quota
- B: start on day 4 -> 4 days billed, rent prorated 4/7
- C: prior balance 100,000 with 7 mora days -> 7,000 mora in total_due
- D: last guarantee installment completes the account without exceeding it
plus credits, tolls, penalties, fractional dues and the fallback paths.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fleet_engines.charge_calculator import (
    ChargeRules,
    DriverWeekFacts,
    FractionalItem,
    KmExcessItem,
    PenaltyItem,
    TariffSnapshot,
    TicketCreditItem,
    TollItem,
    calculate_driver_week,
)
from fleet_engines.guarantee import GuaranteeState
from fleet_kernel.domain.values import Modality
from fleet_kernel.exceptions import ChargeInvariantError, InvalidAssignmentError

WEEK_START = date(2026, 2, 9)
WEEK_END = date(2026, 2, 15)

TARIFFS = TariffSnapshot(
    prices={
        "P001": Decimal("360000"),
        "P002": Decimal("300000"),
        "P003": Decimal("80000"),
    },
)
RULES = ChargeRules()


def _facts(**overrides) -> DriverWeekFacts:
    values = dict(
        driver_id=uuid4(),
        driver_name="Ana Torres",
        vehicle_plate="AB123CD",
        modality=Modality.FIXED_FEE,
        window_start=WEEK_START,
        window_end=WEEK_END,
    )
    values.update(overrides)
    return DriverWeekFacts(**values)


def _codes(charge) -> list[str]:
    return [line.concept_code for line in charge.lines]


# ---------------------------------------------------------------------------
# Reference scenarios
# ---------------------------------------------------------------------------


class TestReferenceScenarios:
    def test_scenario_a_full_week_fixed_fee(self):
        charge = calculate_driver_week(_facts(), TARIFFS, RULES)

        assert charge.days_billed == 7
        assert charge.rent_amount == Decimal("360000")
        assert charge.guarantee_amount == Decimal("80000")
        assert charge.gross_charges == Decimal("440000")
        assert charge.credits == Decimal("0")
        assert charge.mora_amount == Decimal("0")
        assert charge.total_due == Decimal("440000")
        assert _codes(charge) == ["P001", "P003"]
        assert charge.is_estimated is False
        assert charge.needs_review is False

    def test_scenario_b_start_on_day_four(self):
        charge = calculate_driver_week(
            _facts(assignment_start=date(2026, 2, 12)), TARIFFS, RULES
        )

        assert charge.days_billed == 4
        assert charge.rent_amount == Decimal("205714")
        assert charge.guarantee_amount == Decimal("45714")
        assert charge.total_due == Decimal("251428")
        rent_line = charge.lines[0]
        assert rent_line.quantity == Decimal("4")
        assert "4/7" in rent_line.description

    def test_scenario_c_mora_on_prior_balance(self):
        charge = calculate_driver_week(
            _facts(prior_balance=Decimal("100000"), mora_days=7), TARIFFS, RULES
        )

        assert charge.mora_amount == Decimal("7000")
        assert charge.total_due == Decimal("440000") + Decimal("100000") + Decimal("7000")
        assert charge.balance_delta == Decimal("447000")
        assert "P009" in _codes(charge)

    def test_scenario_d_last_installment_completes_account(self):
        state = GuaranteeState(
            total_installments=20,
            quota_amount=Decimal("80000"),
            installments_paid=19,
            amount_paid=Decimal("1550000"),
        )
        charge = calculate_driver_week(_facts(guarantee=state), TARIFFS, RULES)

        assert charge.guarantee_amount == Decimal("50000")
        assert charge.guarantee_charge.completes_account is True
        assert charge.guarantee_charge.installment_number == 20
        assert state.amount_paid + charge.guarantee_amount == state.target_amount


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


class TestAggregation:
    def test_ticket_credit_reduces_net(self):
        ticket_id = uuid4()
        charge = calculate_driver_week(
            _facts(tickets=(TicketCreditItem(ticket_id, Decimal("50000"), "Fuel receipt"),)),
            TARIFFS,
            RULES,
        )
        assert charge.credits == Decimal("50000")
        assert charge.net_charges == Decimal("390000")
        assert charge.total_due == Decimal("390000")
        credit = charge.lines[-1]
        assert credit.is_credit is True
        assert credit.source_ref_id == ticket_id
        assert credit.source_ref_type == "ticket"

    def test_tolls_aggregate_into_one_line(self):
        tolls = (
            TollItem(uuid4(), Decimal("3000"), date(2026, 2, 10)),
            TollItem(uuid4(), Decimal("4500"), date(2026, 2, 13)),
        )
        charge = calculate_driver_week(_facts(tolls=tolls), TARIFFS, RULES)
        assert charge.toll_amount == Decimal("7500")
        toll_lines = [line for line in charge.lines if line.concept_code == "P005"]
        assert len(toll_lines) == 1
        assert toll_lines[0].quantity == Decimal("2")
        assert toll_lines[0].total == Decimal("7500")

    def test_km_penalty_and_fractional_are_charges(self):
        km_id = uuid4()
        facts = _facts(
            km_excess=(
                KmExcessItem(
                    record_id=km_id,
                    total_amount=Decimal("108900"),
                    base_amount=Decimal("90000"),
                    tax_amount=Decimal("18900"),
                    vat_percentage=Decimal("0.21"),
                    km_over=100,
                    bracket="100-150 km",
                ),
            ),
            penalties=(PenaltyItem(uuid4(), Decimal("25000"), "Late return", date(2026, 2, 11)),),
            fractional=(FractionalItem(uuid4(), Decimal("15000"), 2, 4, "Windshield repair"),),
        )
        charge = calculate_driver_week(facts, TARIFFS, RULES)

        assert charge.km_excess_amount == Decimal("108900")
        assert charge.penalty_amount == Decimal("25000")
        assert charge.fractional_amount == Decimal("15000")
        assert charge.gross_charges == Decimal("440000") + Decimal("148900")

        km_line = next(line for line in charge.lines if line.concept_code == "P006")
        assert km_line.subtotal == Decimal("90000")
        assert km_line.vat_amount == Decimal("18900")
        assert km_line.total == Decimal("108900")
        assert km_line.source_ref_id == km_id

        fractional_line = next(line for line in charge.lines if line.concept_code == "P010")
        assert fractional_line.description == "Windshield repair 2/4"

    def test_identities_hold(self):
        charge = calculate_driver_week(
            _facts(
                prior_balance=Decimal("35000"),
                mora_days=3,
                tickets=(TicketCreditItem(uuid4(), Decimal("12000"), "Oil change"),),
                tolls=(TollItem(uuid4(), Decimal("2500"), date(2026, 2, 9)),),
            ),
            TARIFFS,
            RULES,
        )
        assert charge.gross_charges == (
            charge.rent_amount + charge.guarantee_amount + charge.km_excess_amount
            + charge.toll_amount + charge.penalty_amount + charge.fractional_amount
        )
        assert charge.net_charges == charge.gross_charges - charge.credits
        assert charge.total_due == charge.net_charges + charge.prior_balance + charge.mora_amount

    def test_credit_balance_accrues_no_mora(self):
        charge = calculate_driver_week(
            _facts(prior_balance=Decimal("-60000"), mora_days=7), TARIFFS, RULES
        )
        assert charge.mora_amount == Decimal("0")
        assert charge.total_due == Decimal("380000")

    def test_same_facts_same_result(self):
        facts = _facts(prior_balance=Decimal("20000"), mora_days=2)
        assert calculate_driver_week(facts, TARIFFS, RULES) == calculate_driver_week(
            facts, TARIFFS, RULES
        )


# ---------------------------------------------------------------------------
# Guarantee lines
# ---------------------------------------------------------------------------


class TestGuaranteeLines:
    def test_completed_account_emits_zero_annotated_line(self):
        state = GuaranteeState(
            total_installments=20,
            quota_amount=Decimal("80000"),
            installments_paid=20,
            amount_paid=Decimal("1600000"),
            completed=True,
        )
        charge = calculate_driver_week(_facts(guarantee=state), TARIFFS, RULES)

        assert charge.guarantee_amount == Decimal("0")
        line = next(line for line in charge.lines if line.concept_code == "P003")
        assert line.total == Decimal("0")
        assert "completed" in line.description

    def test_new_account_uses_modality_installments(self):
        charge = calculate_driver_week(
            _facts(modality=Modality.SHIFT_BASED), TARIFFS, RULES
        )
        assert charge.guarantee_state.total_installments == 14
        assert charge.rent_amount == Decimal("300000")


# ---------------------------------------------------------------------------
# Edge cases and fallbacks
# ---------------------------------------------------------------------------


class TestEdgeCases:
    def test_zero_days_bills_nothing_for_rent_or_guarantee(self):
        charge = calculate_driver_week(
            _facts(assignment_end=date(2026, 2, 1)), TARIFFS, RULES
        )
        assert charge.days_billed == 0
        assert charge.rent_amount == Decimal("0")
        assert charge.guarantee_amount == Decimal("0")
        assert charge.lines == ()

    def test_missing_modality_billed_at_lower_cost(self):
        charge = calculate_driver_week(_facts(modality=None), TARIFFS, RULES)
        assert charge.modality == Modality.SHIFT_BASED
        assert charge.rent_amount == Decimal("300000")
        assert charge.needs_review is True
        assert charge.review_notes

    def test_fallback_tariff_marks_estimated(self):
        tariffs = TariffSnapshot(prices=TARIFFS.prices, estimated_codes=frozenset({"P001"}))
        charge = calculate_driver_week(_facts(), tariffs, RULES)
        assert charge.is_estimated is True

    def test_estimated_km_record_marks_estimated(self):
        item = KmExcessItem(
            record_id=uuid4(),
            total_amount=Decimal("152460"),
            base_amount=Decimal("126000"),
            tax_amount=Decimal("26460"),
            vat_percentage=Decimal("0.21"),
            km_over=300,
            bracket="150-200 km",
            is_estimated=True,
        )
        charge = calculate_driver_week(_facts(km_excess=(item,)), TARIFFS, RULES)
        assert charge.is_estimated is True

    def test_negative_ticket_rejected(self):
        facts = _facts(tickets=(TicketCreditItem(uuid4(), Decimal("-1"), "bad"),))
        with pytest.raises(ChargeInvariantError) as exc_info:
            calculate_driver_week(facts, TARIFFS, RULES)
        assert exc_info.value.field == "ticket_credit"

    def test_negative_tariff_rejected(self):
        tariffs = TariffSnapshot(prices={**TARIFFS.prices, "P001": Decimal("-10")})
        with pytest.raises(ChargeInvariantError):
            calculate_driver_week(_facts(), tariffs, RULES)

    def test_negative_mora_days_rejected(self):
        with pytest.raises(ChargeInvariantError):
            calculate_driver_week(_facts(mora_days=-1), TARIFFS, RULES)

    def test_inverted_assignment_rejected(self):
        facts = _facts(
            assignment_start=date(2026, 2, 13),
            assignment_end=date(2026, 2, 10),
        )
        with pytest.raises(InvalidAssignmentError):
            calculate_driver_week(facts, TARIFFS, RULES)

    def test_catalog_description_used_for_lines(self):
        tariffs = TariffSnapshot(
            prices=TARIFFS.prices,
            descriptions={"P001": "Alquiler semanal"},
        )
        charge = calculate_driver_week(_facts(), tariffs, RULES)
        assert charge.lines[0].description.startswith("Alquiler semanal")

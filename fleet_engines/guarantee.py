"""
Guarantee installment tracker.

Pure functions with deterministic behavior. No I/O.

Each driver accumulates a refundable deposit in weekly installments.  The
number of installments is fixed by modality and the target is
``total_installments * quota``.  A week's installment is the quota prorated
by days billed, capped so the account never exceeds its target.  The
account completes when the target is reached or every installment has been
paid, whichever comes first.

Usage:
    state = open_guarantee(total_installments=20, quota=Decimal("80000"))
    charge = plan_installment(state, days=7)
    state = apply_installment(state, charge.amount)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal

from fleet_kernel.db.types import DEFAULT_MONEY_PLACES, ZERO, round_money
from fleet_engines.proration import DAYS_PER_WEEK, prorate


@dataclass(frozen=True)
class GuaranteeState:
    """Snapshot of a guarantee account."""

    total_installments: int
    quota_amount: Decimal
    installments_paid: int = 0
    amount_paid: Decimal = ZERO
    completed: bool = False

    def __post_init__(self) -> None:
        if self.total_installments <= 0:
            raise ValueError("total_installments must be positive")
        if self.quota_amount < 0:
            raise ValueError("quota_amount cannot be negative")

    @property
    def target_amount(self) -> Decimal:
        return self.quota_amount * self.total_installments

    @property
    def remaining(self) -> Decimal:
        return max(ZERO, self.target_amount - self.amount_paid)


@dataclass(frozen=True)
class GuaranteeCharge:
    """This week's installment plan."""

    amount: Decimal
    installment_number: int | None
    account_completed: bool  # already complete before this week
    completes_account: bool  # this installment completes it


def open_guarantee(total_installments: int, quota: Decimal) -> GuaranteeState:
    return GuaranteeState(total_installments=total_installments, quota_amount=quota)


def is_complete(amount_paid: Decimal, installments_paid: int, state: GuaranteeState) -> bool:
    return amount_paid >= state.target_amount or installments_paid >= state.total_installments


def plan_installment(
    state: GuaranteeState,
    days: int,
    days_per_week: int = DAYS_PER_WEEK,
    places: int = DEFAULT_MONEY_PLACES,
) -> GuaranteeCharge:
    """
    Installment for a week with ``days`` billed days.

    Postconditions:
        - A completed account is charged zero.
        - A week with zero days is charged zero and does not advance.
        - amount <= target - amount_paid.
    """
    if state.completed:
        return GuaranteeCharge(
            amount=round_money(ZERO, places),
            installment_number=None,
            account_completed=True,
            completes_account=False,
        )
    if days <= 0:
        return GuaranteeCharge(
            amount=round_money(ZERO, places),
            installment_number=None,
            account_completed=False,
            completes_account=False,
        )

    amount = min(prorate(state.quota_amount, days, days_per_week, places), state.remaining)
    installment_number = state.installments_paid + 1
    completes = is_complete(state.amount_paid + amount, installment_number, state)
    return GuaranteeCharge(
        amount=amount,
        installment_number=installment_number,
        account_completed=False,
        completes_account=completes,
    )


def apply_installment(state: GuaranteeState, amount: Decimal) -> GuaranteeState:
    """State after committing an installment of ``amount``."""
    installments = state.installments_paid + 1
    paid = state.amount_paid + amount
    return replace(
        state,
        installments_paid=installments,
        amount_paid=paid,
        completed=is_complete(paid, installments, state),
    )

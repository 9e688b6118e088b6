"""
Pytest fixtures for the fleet billing test suite.

Provides:
- A file-backed SQLite database per test (real commits, so orchestrators
  that open their own transactions see the data the test wrote)
- Kernel service fixtures over a flush-only session
- Fact factories: drivers, assignments, tariffs, balances, km records,
  tickets, tolls, penalties, fractional dues, roster entries

Isolation:
    Every test gets a fresh database file under ``tmp_path``.  Tests that
    call ``BillingRunOrchestrator`` go through the ``generate`` / ``preview``
    helpers, which commit the test session first and expire it afterwards
    so assertions read what the run committed.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import event
from sqlalchemy.orm import Session

from fleet_config import DEFAULT_CONFIG_PATH, get_active_config
from fleet_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from fleet_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from fleet_kernel.domain.clock import DeterministicClock
from fleet_kernel.domain.values import Modality
from fleet_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fleet_kernel.models.balance import MovementType
from fleet_kernel.models.charges import (
    FractionalCharge,
    FractionalInstallment,
    Penalty,
    TollCharge,
)
from fleet_kernel.models.driver import (
    Assignment,
    AssignmentStatus,
    Driver,
    DriverStatus,
    WeeklyRosterEntry,
)
from fleet_kernel.models.guarantee import GuaranteeAccount, GuaranteeStatus
from fleet_kernel.models.tariff import TariffConcept, TariffKind
from fleet_kernel.services.balance_service import BalanceService
from fleet_kernel.services.guarantee_service import GuaranteeService
from fleet_kernel.services.period_service import PeriodService
from fleet_kernel.services.ticket_service import TicketService
from fleet_services.billing_run import BillingRunOrchestrator
from fleet_services.km_excess_service import KmExcessService
from fleet_services.settlement_service import SettlementService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# ISO week 7 of 2026: Monday 9 February to Sunday 15 February
WEEK = 7
YEAR = 2026
WEEK_START = date(2026, 2, 9)
WEEK_END = date(2026, 2, 15)

FIXED_FEE_RENT = Decimal("360000")
SHIFT_RENT = Decimal("300000")
GUARANTEE_QUOTA = Decimal("80000")

STANDARD_TARIFFS = (
    ("P001", "Weekly rent (fixed fee)", FIXED_FEE_RENT, TariffKind.RENT),
    ("P002", "Weekly rent (shift)", SHIFT_RENT, TariffKind.RENT),
    ("P003", "Guarantee installment", GUARANTEE_QUOTA, TariffKind.CHARGE),
    ("P004", "Ticket credit", Decimal("0"), TariffKind.CREDIT),
    ("P005", "Tolls", Decimal("0"), TariffKind.CHARGE),
    ("P006", "Km excess", Decimal("0"), TariffKind.PENALTY),
    ("P007", "Penalty", Decimal("0"), TariffKind.PENALTY),
    ("P009", "Late payment interest", Decimal("0"), TariffKind.INCOME),
    ("P010", "Fractional due", Decimal("0"), TariffKind.CHARGE),
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fleet_billing logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, generate):
            generate()
            logs = captured_logs()
            assert any(r["message"] == "billing_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fleet_billing")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Fresh SQLite database file with every table created."""
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'fleet_billing.db'}")

    # Readers must not block the orchestrator's writer transactions
    @event.listens_for(engine, "connect")
    def _wal(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    create_tables()
    register_immutability_listeners()
    yield engine
    unregister_immutability_listeners()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """Session for arranging data and asserting.  Services on it only flush."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


# Clock fixtures


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing (Wednesday of week 8, 2026)."""
    return DeterministicClock()


# Configuration


@pytest.fixture
def billing_params():
    """The packaged default billing parameters."""
    return get_active_config(DEFAULT_CONFIG_PATH)


# Service fixtures


@pytest.fixture
def period_service(session, deterministic_clock) -> PeriodService:
    return PeriodService(session, deterministic_clock)


@pytest.fixture
def balance_service(session, deterministic_clock) -> BalanceService:
    return BalanceService(session, deterministic_clock)


@pytest.fixture
def guarantee_service(session, deterministic_clock) -> GuaranteeService:
    return GuaranteeService(session, deterministic_clock)


@pytest.fixture
def ticket_service(session, deterministic_clock) -> TicketService:
    return TicketService(session, deterministic_clock)


@pytest.fixture
def km_excess_service(session, billing_params) -> KmExcessService:
    return KmExcessService(session, billing_params)


@pytest.fixture
def settlement_service(session, billing_params, deterministic_clock) -> SettlementService:
    return SettlementService(session, billing_params, deterministic_clock)


@pytest.fixture
def orchestrator(session_factory, deterministic_clock, billing_params) -> BillingRunOrchestrator:
    return BillingRunOrchestrator(
        session_factory, clock=deterministic_clock, params=billing_params
    )


@pytest.fixture
def generate(session, orchestrator, test_actor_id):
    """Commit the arranged data, run a generation, and expire the test session."""

    def _generate(week_number: int = WEEK, year: int = YEAR, actor_id: UUID | None = None):
        session.commit()
        try:
            return orchestrator.generate_period(week_number, year, actor_id or test_actor_id)
        finally:
            session.expire_all()

    return _generate


@pytest.fixture
def preview(session, orchestrator):
    """Commit the arranged data and run a preview."""

    def _preview(week_number: int = WEEK, year: int = YEAR, as_of: date | None = None):
        session.commit()
        try:
            return orchestrator.preview_period(week_number, year, as_of=as_of)
        finally:
            session.expire_all()

    return _preview


# =============================================================================
# Fact factories
# =============================================================================


@pytest.fixture
def tariff_catalog(session, test_actor_id):
    """The standard active tariff catalog."""
    concepts = []
    for order, (code, description, price, kind) in enumerate(STANDARD_TARIFFS):
        concept = TariffConcept(
            code=code,
            description=description,
            base_price=price,
            vat_percentage=Decimal("0"),
            final_price=price,
            kind=kind.value,
            sort_order=order,
            created_by_id=test_actor_id,
        )
        session.add(concept)
        concepts.append(concept)
    session.flush()
    return concepts


@pytest.fixture
def create_driver(session, test_actor_id):
    """Factory fixture to create drivers."""

    def _create_driver(
        full_name: str = "Ana Torres",
        status: DriverStatus = DriverStatus.ACTIVE,
    ) -> Driver:
        driver = Driver(
            full_name=full_name,
            national_id=uuid4().hex[:12],
            status=status.value,
            created_by_id=test_actor_id,
        )
        session.add(driver)
        session.flush()
        return driver

    return _create_driver


@pytest.fixture
def create_assignment(session, test_actor_id):
    """Factory fixture to assign a vehicle to a driver."""

    def _create_assignment(
        driver: Driver,
        modality: Modality | None = Modality.FIXED_FEE,
        start_date: date | None = None,
        end_date: date | None = None,
        vehicle_plate: str = "AB123CD",
        status: AssignmentStatus = AssignmentStatus.ACTIVE,
    ) -> Assignment:
        assignment = Assignment(
            driver_id=driver.id,
            vehicle_plate=vehicle_plate,
            modality=modality.value if modality else None,
            start_date=start_date,
            end_date=end_date,
            status=status.value,
            created_by_id=test_actor_id,
        )
        session.add(assignment)
        session.flush()
        return assignment

    return _create_assignment


@pytest.fixture
def active_driver(create_driver, create_assignment):
    """Factory: a driver with an open-ended assignment covering every week."""

    def _active_driver(
        full_name: str = "Ana Torres",
        modality: Modality | None = Modality.FIXED_FEE,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Driver:
        driver = create_driver(full_name)
        create_assignment(driver, modality, start_date, end_date)
        return driver

    return _active_driver


@pytest.fixture
def set_balance(balance_service, test_actor_id):
    """Factory fixture: open a driver's balance with a movement and mora days."""

    def _set_balance(driver: Driver, amount: Decimal, mora_days: int = 0):
        if amount > 0:
            balance_service.record_movement(
                driver.id, MovementType.CHARGE, amount, "Opening balance", test_actor_id
            )
        elif amount < 0:
            balance_service.record_movement(
                driver.id, MovementType.CREDIT, -amount, "Opening balance", test_actor_id
            )
        return balance_service.set_mora_days(driver.id, mora_days, test_actor_id)

    return _set_balance


@pytest.fixture
def create_guarantee(session, test_actor_id):
    """Factory fixture for a guarantee account with installments already paid."""

    def _create_guarantee(
        driver: Driver,
        installments_paid: int,
        amount_paid: Decimal,
        total_installments: int = 20,
        quota_amount: Decimal = GUARANTEE_QUOTA,
        modality: Modality = Modality.FIXED_FEE,
        completed: bool = False,
    ) -> GuaranteeAccount:
        account = GuaranteeAccount(
            driver_id=driver.id,
            modality=modality.value,
            total_installments=total_installments,
            quota_amount=quota_amount,
            installments_paid=installments_paid,
            amount_paid=amount_paid,
            status=(
                GuaranteeStatus.COMPLETED.value if completed
                else GuaranteeStatus.IN_PROGRESS.value
            ),
            started_on=date(2025, 10, 6),
            created_by_id=test_actor_id,
        )
        session.add(account)
        session.flush()
        return account

    return _create_guarantee


@pytest.fixture
def record_km(km_excess_service, test_actor_id):
    """Factory fixture: price a weekly km reading."""

    def _record_km(
        driver: Driver,
        km_traveled: int,
        week_number: int = WEEK,
        year: int = YEAR,
        modality: Modality = Modality.FIXED_FEE,
    ):
        return km_excess_service.record_weekly_km(
            driver.id, week_number, year, km_traveled, modality, test_actor_id
        )

    return _record_km


@pytest.fixture
def create_ticket(ticket_service, test_actor_id):
    """Factory fixture: a ticket credit, approved unless told otherwise."""

    def _create_ticket(
        driver: Driver,
        amount: Decimal,
        approved: bool = True,
        description: str = "Fuel receipt",
    ):
        ticket = ticket_service.create_ticket(
            driver.id, "fuel", description, amount, test_actor_id
        )
        if approved:
            ticket = ticket_service.approve_ticket(ticket.id, test_actor_id)
        return ticket

    return _create_ticket


@pytest.fixture
def create_toll(session, test_actor_id):
    def _create_toll(driver: Driver, occurred_on: date, amount: Decimal) -> TollCharge:
        toll = TollCharge(
            driver_id=driver.id,
            occurred_on=occurred_on,
            amount=amount,
            created_by_id=test_actor_id,
        )
        session.add(toll)
        session.flush()
        return toll

    return _create_toll


@pytest.fixture
def create_penalty(session, test_actor_id):
    def _create_penalty(
        driver: Driver,
        occurred_on: date,
        amount: Decimal,
        detail: str = "Late vehicle return",
    ) -> Penalty:
        penalty = Penalty(
            driver_id=driver.id,
            occurred_on=occurred_on,
            amount=amount,
            detail=detail,
            created_by_id=test_actor_id,
        )
        session.add(penalty)
        session.flush()
        return penalty

    return _create_penalty


@pytest.fixture
def create_fractional(session, test_actor_id):
    """Factory fixture: a fractional charge with one installment per listed week."""

    def _create_fractional(
        driver: Driver,
        weeks: list[tuple[int, int]],
        amount: Decimal,
        description: str = "Windshield repair",
    ) -> list[FractionalInstallment]:
        charge = FractionalCharge(
            driver_id=driver.id,
            description=description,
            total_amount=amount * len(weeks),
            installment_count=len(weeks),
            created_by_id=test_actor_id,
        )
        session.add(charge)
        session.flush()
        installments = [
            FractionalInstallment(
                charge_id=charge.id,
                driver_id=driver.id,
                installment_number=number,
                amount=amount,
                week_number=week_number,
                year=year,
                created_by_id=test_actor_id,
            )
            for number, (week_number, year) in enumerate(weeks, start=1)
        ]
        session.add_all(installments)
        session.flush()
        return installments

    return _create_fractional


@pytest.fixture
def create_roster_entry(session, test_actor_id):
    def _create_roster_entry(
        driver: Driver,
        week_number: int = WEEK,
        year: int = YEAR,
        modality: Modality | None = Modality.SHIFT_BASED,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> WeeklyRosterEntry:
        entry = WeeklyRosterEntry(
            week_number=week_number,
            year=year,
            driver_id=driver.id,
            vehicle_plate="RS456TU",
            modality=modality.value if modality else None,
            start_date=start_date,
            end_date=end_date,
            created_by_id=test_actor_id,
        )
        session.add(entry)
        session.flush()
        return entry

    return _create_roster_entry

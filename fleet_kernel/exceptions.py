"""
Typed Exception Hierarchy for the Fleet Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A weekly billing run touches every active driver.  Callers need to tell a
locked period from a closed one, and a per-driver data problem from a
catalog outage, without parsing message strings.  Every error therefore:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (week, driver id, amounts)

Example:
    try:
        orchestrator.generate_period(week=7, year=2026, actor_id=actor)
    except PeriodLockedError as e:
        notify(f"{e.period_code} is being processed by another run")
    except PeriodClosedError as e:
        notify(f"Reopen {e.period_code} before regenerating it")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FleetBillingError (base)
    |
    +-- PeriodError
    |   +-- PeriodNotFoundError
    |   +-- PeriodLockedError
    |   +-- PeriodClosedError
    |   +-- InvalidPeriodTransitionError
    |   +-- ClosedPeriodModificationError
    |
    +-- ConfigurationError
    |   +-- TariffCatalogUnavailableError
    |   +-- KmTierConfigurationError
    |
    +-- ChargeError
    |   +-- InvalidAssignmentError
    |   +-- ChargeInvariantError
    |
    +-- DriverNotFoundError
    |
    +-- KmExcessError
    |   +-- KmExcessNotFoundError
    |   +-- KmExcessAlreadyAppliedError
    |
    +-- TicketError
    |   +-- TicketNotFoundError
    |   +-- InvalidTicketTransitionError
    |
    +-- SettlementError
    |   +-- SettlementNotFoundError
    |   +-- SettlementAlreadyApprovedError
    |   +-- InvalidSettlementTransitionError
    |
    +-- BalanceError
        +-- BalanceMismatchError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|-----------------------------------
Period        | PERIOD_NOT_FOUND              | No billing period for week/year
              | PERIOD_LOCKED                 | Another run holds PROCESSING
              | PERIOD_CLOSED                 | Generation requested on CLOSED
              | INVALID_PERIOD_TRANSITION     | Close/reopen from wrong status
              | CLOSED_PERIOD_MODIFICATION    | Closed billing line edited
--------------|-------------------------------|-----------------------------------
Configuration | TARIFF_CATALOG_UNAVAILABLE    | No active tariff concepts at all
              | KM_TIER_CONFIGURATION         | Overlapping / unordered km bands
--------------|-------------------------------|-----------------------------------
Charge        | INVALID_ASSIGNMENT            | Assignment end before start
              | CHARGE_INVARIANT_VIOLATION    | Negative amount in driver facts
--------------|-------------------------------|-----------------------------------
Driver        | DRIVER_NOT_FOUND              | Unknown driver id
--------------|-------------------------------|-----------------------------------
Km excess     | KM_EXCESS_NOT_FOUND           | Unknown record id
              | KM_EXCESS_ALREADY_APPLIED     | Edit/delete of a billed record
--------------|-------------------------------|-----------------------------------
Ticket        | TICKET_NOT_FOUND              | Unknown ticket id
              | INVALID_TICKET_TRANSITION     | Approve/reject from wrong status
--------------|-------------------------------|-----------------------------------
Settlement    | SETTLEMENT_NOT_FOUND          | Unknown settlement id
              | SETTLEMENT_ALREADY_APPROVED   | Mutating an approved settlement
              | INVALID_SETTLEMENT_TRANSITION | Approving a cancelled settlement
--------------|-------------------------------|-----------------------------------
Balance       | BALANCE_MISMATCH              | Stored balance != movement sum

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Per-driver errors (ChargeError, DriverNotFoundError) never abort a run;
   the orchestrator records them in the GenerationReport and moves on.

2. PeriodLockedError is not retried automatically.  The caller decides
   whether to wait for the running generation.

3. ConfigurationError aborts the whole run and the period is returned
   to OPEN.
"""


class FleetBillingError(Exception):
    """
    Base exception for all fleet billing errors.

    All subclasses have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "FLEET_BILLING_ERROR"


# Period lifecycle


class PeriodError(FleetBillingError):
    """Base exception for billing period errors."""

    code: str = "PERIOD_ERROR"


class PeriodNotFoundError(PeriodError):
    """No billing period exists for the given week."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(f"Billing period not found: {period_code}")


class PeriodLockedError(PeriodError):
    """Another generation run currently holds the period in PROCESSING."""

    code: str = "PERIOD_LOCKED"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(
            f"Billing period {period_code} is being processed by another run"
        )


class PeriodClosedError(PeriodError):
    """Generation was requested on a CLOSED period."""

    code: str = "PERIOD_CLOSED"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(
            f"Billing period {period_code} is closed; reopen it before regenerating"
        )


class InvalidPeriodTransitionError(PeriodError):
    """Requested lifecycle transition is not allowed from the current status."""

    code: str = "INVALID_PERIOD_TRANSITION"

    def __init__(self, period_code: str, from_status: str, to_status: str):
        self.period_code = period_code
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Billing period {period_code} cannot move from "
            f"{from_status} to {to_status}"
        )


class ClosedPeriodModificationError(PeriodError):
    """A billing line of a CLOSED period was modified or deleted."""

    code: str = "CLOSED_PERIOD_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, operation: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {entity_type} {entity_id}: its period is closed"
        )


# Configuration


class ConfigurationError(FleetBillingError):
    """Base exception for configuration problems that abort a run."""

    code: str = "CONFIGURATION_ERROR"


class TariffCatalogUnavailableError(ConfigurationError):
    """The tariff catalog has no active concepts."""

    code: str = "TARIFF_CATALOG_UNAVAILABLE"

    def __init__(self) -> None:
        super().__init__("Tariff catalog has no active concepts")


class KmTierConfigurationError(ConfigurationError):
    """Kilometer tier table is empty, unordered or overlapping."""

    code: str = "KM_TIER_CONFIGURATION"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid km tier configuration: {reason}")


# Per-driver charge errors


class ChargeError(FleetBillingError):
    """Base exception for errors isolated to one driver's charge."""

    code: str = "CHARGE_ERROR"


class InvalidAssignmentError(ChargeError):
    """Assignment dates are inconsistent or no assignment covers the window."""

    code: str = "INVALID_ASSIGNMENT"

    def __init__(self, driver_id: str, reason: str):
        self.driver_id = driver_id
        self.reason = reason
        super().__init__(f"Invalid assignment for driver {driver_id}: {reason}")


class ChargeInvariantError(ChargeError):
    """A computed or supplied amount violated a non-negativity rule."""

    code: str = "CHARGE_INVARIANT_VIOLATION"

    def __init__(self, driver_id: str, field: str, value: str):
        self.driver_id = driver_id
        self.field = field
        self.value = value
        super().__init__(
            f"Negative {field} ({value}) for driver {driver_id}"
        )


class DriverNotFoundError(FleetBillingError):
    """Driver id does not exist."""

    code: str = "DRIVER_NOT_FOUND"

    def __init__(self, driver_id: str):
        self.driver_id = driver_id
        super().__init__(f"Driver not found: {driver_id}")


# Km excess


class KmExcessError(FleetBillingError):
    """Base exception for km-excess record errors."""

    code: str = "KM_EXCESS_ERROR"


class KmExcessNotFoundError(KmExcessError):
    """Km-excess record id does not exist."""

    code: str = "KM_EXCESS_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Km excess record not found: {record_id}")


class KmExcessAlreadyAppliedError(KmExcessError):
    """Km-excess record was billed and can no longer change."""

    code: str = "KM_EXCESS_ALREADY_APPLIED"

    def __init__(self, record_id: str, applied_period_id: str | None):
        self.record_id = record_id
        self.applied_period_id = applied_period_id
        super().__init__(
            f"Km excess record {record_id} was applied to period "
            f"{applied_period_id} and is immutable"
        )


# Tickets


class TicketError(FleetBillingError):
    """Base exception for ticket credit errors."""

    code: str = "TICKET_ERROR"


class TicketNotFoundError(TicketError):
    """Ticket id does not exist."""

    code: str = "TICKET_NOT_FOUND"

    def __init__(self, ticket_id: str):
        self.ticket_id = ticket_id
        super().__init__(f"Ticket not found: {ticket_id}")


class InvalidTicketTransitionError(TicketError):
    """Ticket cannot move to the requested status."""

    code: str = "INVALID_TICKET_TRANSITION"

    def __init__(self, ticket_id: str, from_status: str, to_status: str):
        self.ticket_id = ticket_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Ticket {ticket_id} cannot move from {from_status} to {to_status}"
        )


# Settlements


class SettlementError(FleetBillingError):
    """Base exception for termination settlement errors."""

    code: str = "SETTLEMENT_ERROR"


class SettlementNotFoundError(SettlementError):
    """Settlement id does not exist."""

    code: str = "SETTLEMENT_NOT_FOUND"

    def __init__(self, settlement_id: str):
        self.settlement_id = settlement_id
        super().__init__(f"Settlement not found: {settlement_id}")


class SettlementAlreadyApprovedError(SettlementError):
    """Approved settlements are terminal."""

    code: str = "SETTLEMENT_ALREADY_APPROVED"

    def __init__(self, settlement_id: str):
        self.settlement_id = settlement_id
        super().__init__(f"Settlement {settlement_id} is already approved")


class InvalidSettlementTransitionError(SettlementError):
    """Settlement cannot move to the requested status."""

    code: str = "INVALID_SETTLEMENT_TRANSITION"

    def __init__(self, settlement_id: str, from_status: str, to_status: str):
        self.settlement_id = settlement_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Settlement {settlement_id} cannot move from "
            f"{from_status} to {to_status}"
        )


# Balances


class BalanceError(FleetBillingError):
    """Base exception for driver balance errors."""

    code: str = "BALANCE_ERROR"


class BalanceMismatchError(BalanceError):
    """Stored balance head disagrees with the movement history."""

    code: str = "BALANCE_MISMATCH"

    def __init__(self, driver_id: str, stored: str, computed: str):
        self.driver_id = driver_id
        self.stored = stored
        self.computed = computed
        super().__init__(
            f"Balance mismatch for driver {driver_id}: "
            f"stored {stored}, movements sum to {computed}"
        )

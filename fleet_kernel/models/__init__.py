"""ORM models for the fleet billing kernel."""

from fleet_kernel.models.balance import BalanceMovement, DriverBalance, MovementType
from fleet_kernel.models.billing_line import (
    BillingLine,
    BillingLineDetail,
    BillingLineStatus,
)
from fleet_kernel.models.billing_period import BillingPeriod, PeriodStatus
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
from fleet_kernel.models.guarantee import (
    GuaranteeAccount,
    GuaranteePayment,
    GuaranteeStatus,
)
from fleet_kernel.models.km_excess import KmExcessRecord
from fleet_kernel.models.settlement import (
    DriverTerminationSettlement,
    SettlementStatus,
)
from fleet_kernel.models.tariff import TariffConcept, TariffKind
from fleet_kernel.models.ticket import TicketCredit, TicketStatus

__all__ = [
    "Assignment",
    "AssignmentStatus",
    "BalanceMovement",
    "BillingLine",
    "BillingLineDetail",
    "BillingLineStatus",
    "BillingPeriod",
    "Driver",
    "DriverBalance",
    "DriverStatus",
    "DriverTerminationSettlement",
    "FractionalCharge",
    "FractionalInstallment",
    "GuaranteeAccount",
    "GuaranteePayment",
    "GuaranteeStatus",
    "KmExcessRecord",
    "MovementType",
    "Penalty",
    "PeriodStatus",
    "SettlementStatus",
    "TariffConcept",
    "TariffKind",
    "TicketCredit",
    "TicketStatus",
    "TollCharge",
    "WeeklyRosterEntry",
]

"""
ORM-level immutability for billing lines of closed periods.

===============================================================================
WHAT IS PROTECTED
===============================================================================

Entity             | When Immutable                 | Allowed changes
-------------------|--------------------------------|----------------------------
BillingLine        | status = closed                | status, updated_at/_by_id
BillingLineDetail  | parent line status = closed    | none

Closing a period flips its lines to ``closed``; reopening flips them back to
``calculated``.  Those status transitions are the only writes allowed on a
closed line.  Anything else raises ClosedPeriodModificationError before the
SQL reaches the database.

Bulk UPDATE/DELETE statements bypass mapper events.  The generation run only
issues them against periods it holds in PROCESSING, which a closed period can
never be.

Usage:
    from fleet_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup
"""

from sqlalchemy import event, inspect

from fleet_kernel.exceptions import ClosedPeriodModificationError
from fleet_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_ALLOWED_ON_CLOSED = frozenset({"status", "updated_at", "updated_by_id"})


def _original_status(target) -> str:
    history = inspect(target).attrs.status.history
    if history.deleted:
        return history.deleted[0]
    return target.status


def _blocked(entity_type: str, entity_id: str, operation: str) -> ClosedPeriodModificationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ClosedPeriodModificationError(entity_type, entity_id, operation)


def _check_billing_line_update(mapper, connection, target):
    from fleet_kernel.models.billing_line import BillingLineStatus

    if _original_status(target) != BillingLineStatus.CLOSED:
        return

    changed = {
        attr.key
        for attr in inspect(target).attrs
        if attr.history.has_changes()
    }
    if changed - _ALLOWED_ON_CLOSED:
        raise _blocked("BillingLine", str(target.id), "update")


def _check_billing_line_delete(mapper, connection, target):
    from fleet_kernel.models.billing_line import BillingLineStatus

    if _original_status(target) == BillingLineStatus.CLOSED:
        raise _blocked("BillingLine", str(target.id), "delete")


def _check_detail_write(mapper, connection, target):
    from fleet_kernel.models.billing_line import BillingLineStatus

    line = target.line
    if line is not None and line.status == BillingLineStatus.CLOSED:
        raise _blocked("BillingLineDetail", str(target.id), "modify")


_LISTENERS = (
    ("BillingLine", "before_update", _check_billing_line_update),
    ("BillingLine", "before_delete", _check_billing_line_delete),
    ("BillingLineDetail", "before_update", _check_detail_write),
    ("BillingLineDetail", "before_delete", _check_detail_write),
)


def _targets():
    from fleet_kernel.models.billing_line import BillingLine, BillingLineDetail

    return {"BillingLine": BillingLine, "BillingLineDetail": BillingLineDetail}


def register_immutability_listeners() -> None:
    """Register the listeners (safe to call more than once)."""
    targets = _targets()
    for name, identifier, fn in _LISTENERS:
        if not event.contains(targets[name], identifier, fn):
            event.listen(targets[name], identifier, fn)


def unregister_immutability_listeners() -> None:
    """Remove the listeners.  Only for tests that need to bypass them."""
    targets = _targets()
    for name, identifier, fn in _LISTENERS:
        if event.contains(targets[name], identifier, fn):
            event.remove(targets[name], identifier, fn)

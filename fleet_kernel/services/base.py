"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract.  Every concrete
    service receives a SQLAlchemy ``Session`` and persists through
    ``session.flush()``, never ``session.commit()``.

Invariants enforced:
    Transaction boundaries belong to the caller (an orchestrator using
    ``session_scope`` or a test).  A billing run's many service calls
    therefore commit or roll back together.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from fleet_kernel.db.base import Base
from fleet_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never commits or rolls back the session.

    Non-goals:
        - Query-only reads belong in ``fleet_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

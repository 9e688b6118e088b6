"""
Module: fleet_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Selectors return frozen DTOs or plain values, not ORM instances
      (fact readers return engine input dataclasses).
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from fleet_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Accepts a Session from the caller, performs read-only queries and
        returns DTOs.  The caller owns the session and its transaction.
    """

    def __init__(self, session: Session):
        self.session = session

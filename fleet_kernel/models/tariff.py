"""
Module: fleet_kernel.models.tariff
Responsibility: The tariff concept catalog (rent prices, guarantee quota,
    and the codes used to label every billing detail).
Architecture position: Kernel > Models.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase


class TariffKind(str, Enum):
    RENT = "rent"
    CHARGE = "charge"
    CREDIT = "credit"
    PENALTY = "penalty"
    INCOME = "income"


class TariffConcept(TrackedBase):
    """
    A priced concept.  ``final_price`` is VAT-inclusive and is the amount
    billed for a full week where the concept is a weekly price.
    """

    __tablename__ = "tariff_concepts"

    __table_args__ = (UniqueConstraint("code", name="uq_tariff_concept_code"),)

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    vat_percentage: Mapped[Decimal] = mapped_column(
        Numeric(9, 6), nullable=False, default=Decimal("0")
    )
    final_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    kind: Mapped[TariffKind] = mapped_column(String(20), nullable=False)

    applies_fixed_fee: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    applies_shift: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<TariffConcept {self.code} {self.final_price}>"

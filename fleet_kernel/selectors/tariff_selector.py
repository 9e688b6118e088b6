"""
TariffSelector -- read access to the tariff concept catalog.
"""

from sqlalchemy import select

from fleet_kernel.domain.dtos import TariffConceptInfo
from fleet_kernel.models.tariff import TariffConcept
from fleet_kernel.selectors.base import BaseSelector


class TariffSelector(BaseSelector[TariffConcept]):
    def active_concepts(self) -> list[TariffConceptInfo]:
        """All active concepts in catalog order."""
        rows = self.session.execute(
            select(TariffConcept)
            .where(TariffConcept.is_active.is_(True))
            .order_by(TariffConcept.sort_order, TariffConcept.code)
        ).scalars()
        return [
            TariffConceptInfo(
                code=row.code,
                description=row.description,
                final_price=row.final_price,
                vat_percentage=row.vat_percentage,
                kind=row.kind,
            )
            for row in rows
        ]

"""
fleet_services.tariff_catalog -- Tariff snapshot for one run.

The catalog is read once at the start of a run (or preview, or settlement)
and frozen into a ``TariffSnapshot``, so every driver of the run is priced
from the same prices even if the catalog is edited mid-run.

A concept missing from the catalog is priced from the configured fallback
and marked estimated.  An empty catalog is a whole-run failure.
"""

from decimal import Decimal
from typing import Mapping

from sqlalchemy.orm import Session

from fleet_engines.charge_calculator import TariffSnapshot
from fleet_kernel.exceptions import TariffCatalogUnavailableError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.selectors.tariff_selector import TariffSelector

logger = get_logger("services.tariff_catalog")


class TariffCatalogReader:
    def __init__(self, session: Session):
        self._selector = TariffSelector(session)

    def snapshot(self, fallback_prices: Mapping[str, Decimal]) -> TariffSnapshot:
        """
        Freeze the active catalog.

        Raises:
            TariffCatalogUnavailableError: no active concepts at all.
        """
        concepts = self._selector.active_concepts()
        if not concepts:
            logger.error("tariff_catalog_unavailable")
            raise TariffCatalogUnavailableError()

        prices = {c.code: c.final_price for c in concepts}
        descriptions = {c.code: c.description for c in concepts}

        estimated: set[str] = set()
        for code, price in fallback_prices.items():
            if code not in prices:
                prices[code] = price
                estimated.add(code)
                logger.warning(
                    "tariff_concept_fallback",
                    extra={"concept_code": code, "fallback_price": str(price)},
                )

        return TariffSnapshot(
            prices=prices,
            descriptions=descriptions,
            estimated_codes=frozenset(estimated),
        )

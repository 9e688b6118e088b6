"""
fleet_services.km_excess_service -- Record and price weekly kilometers.

Responsibility:
    Turns a driver's weekly kilometer reading into a priced KmExcessRecord
    with the configured bands, base allowance and VAT.  Records wait
    unapplied until a generation run claims them.

Invariants enforced:
    - One record per driver-week.  Recording again replaces the unapplied
      record of that week.
    - An applied record is immutable: update and delete raise
      ``KmExcessAlreadyAppliedError``.
    - Readings at or below the base allowance produce no record.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_config.bridges import build_km_tiers
from fleet_config.schema import BillingParameters
from fleet_engines.km_excess import KmExcessQuote, price_km_excess
from fleet_kernel.domain.dtos import KmExcessInfo
from fleet_kernel.domain.values import RENT_CONCEPT_BY_MODALITY, Modality
from fleet_kernel.exceptions import KmExcessAlreadyAppliedError, KmExcessNotFoundError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.km_excess import KmExcessRecord
from fleet_services.tariff_catalog import TariffCatalogReader

logger = get_logger("services.km_excess")


def _to_info(record: KmExcessRecord) -> KmExcessInfo:
    return KmExcessInfo(
        id=record.id,
        driver_id=record.driver_id,
        week_number=record.week_number,
        year=record.year,
        km_traveled=record.km_traveled,
        km_over=record.km_over,
        bracket=record.bracket,
        percentage=record.percentage,
        base_amount=record.base_amount,
        tax_amount=record.tax_amount,
        total_amount=record.total_amount,
        is_estimated=record.is_estimated,
        applied=record.applied,
    )


def _apply_quote(record: KmExcessRecord, quote: KmExcessQuote) -> None:
    record.km_traveled = quote.km_traveled
    record.km_base = quote.km_base
    record.km_over = quote.km_over
    record.bracket = quote.tier.display
    record.percentage = quote.percentage
    record.rent_base = quote.rent_base
    record.base_amount = quote.base_amount
    record.vat_percentage = quote.vat_rate
    record.tax_amount = quote.tax_amount
    record.total_amount = quote.total_amount
    record.is_estimated = quote.is_estimated


class KmExcessService:
    """
    Service over KmExcessRecord.  Flush-only, like the kernel services.
    """

    def __init__(
        self,
        session: Session,
        params: BillingParameters,
    ):
        self.session = session
        self._params = params
        self._tiers = build_km_tiers(params)

    def _get(self, record_id: UUID) -> KmExcessRecord:
        record = self.session.get(KmExcessRecord, record_id)
        if record is None:
            raise KmExcessNotFoundError(str(record_id))
        return record

    def _ensure_mutable(self, record: KmExcessRecord) -> None:
        if record.applied:
            raise KmExcessAlreadyAppliedError(
                str(record.id),
                str(record.applied_period_id) if record.applied_period_id else None,
            )

    def _quote(self, km_traveled: int, modality: Modality) -> KmExcessQuote | None:
        tariffs = TariffCatalogReader(self.session).snapshot(self._params.fallback_prices)
        weekly_rent = tariffs.price(RENT_CONCEPT_BY_MODALITY[Modality(modality)].value)
        return price_km_excess(
            km_traveled,
            self._params.km_base,
            weekly_rent,
            self._tiers,
            self._params.km_vat_rate,
            self._params.money_places,
        )

    def get_record(self, record_id: UUID) -> KmExcessInfo:
        return _to_info(self._get(record_id))

    def record_weekly_km(
        self,
        driver_id: UUID,
        week_number: int,
        year: int,
        km_traveled: int,
        modality: Modality,
        actor_id: UUID,
        vehicle_plate: str | None = None,
    ) -> KmExcessInfo | None:
        """
        Price a week's reading.

        Returns:
            The record, or None when the reading is within the allowance.

        Raises:
            KmExcessAlreadyAppliedError: the week's record was already billed.
        """
        existing = self.session.execute(
            select(KmExcessRecord).where(
                KmExcessRecord.driver_id == driver_id,
                KmExcessRecord.week_number == week_number,
                KmExcessRecord.year == year,
            )
        ).scalar_one_or_none()
        if existing is not None:
            self._ensure_mutable(existing)

        quote = self._quote(km_traveled, modality)
        if quote is None:
            if existing is not None:
                self.session.delete(existing)
                self.session.flush()
            logger.info(
                "km_within_allowance",
                extra={"driver_id": str(driver_id), "km_traveled": km_traveled},
            )
            return None

        record = existing or KmExcessRecord(
            driver_id=driver_id,
            week_number=week_number,
            year=year,
            created_by_id=actor_id,
        )
        record.vehicle_plate = vehicle_plate or record.vehicle_plate
        _apply_quote(record, quote)
        record.updated_by_id = actor_id
        self.session.add(record)
        self.session.flush()

        logger.info(
            "km_excess_recorded",
            extra={
                "driver_id": str(driver_id),
                "km_over": quote.km_over,
                "bracket": quote.tier.display,
                "total_amount": str(quote.total_amount),
                "is_estimated": quote.is_estimated,
            },
        )
        return _to_info(record)

    def update_record(
        self,
        record_id: UUID,
        km_traveled: int,
        modality: Modality,
        actor_id: UUID,
    ) -> KmExcessInfo | None:
        """Re-price an unapplied record.  A reading within the allowance deletes it."""
        record = self._get(record_id)
        self._ensure_mutable(record)
        return self.record_weekly_km(
            record.driver_id,
            record.week_number,
            record.year,
            km_traveled,
            modality,
            actor_id,
            vehicle_plate=record.vehicle_plate,
        )

    def delete_record(self, record_id: UUID) -> None:
        record = self._get(record_id)
        self._ensure_mutable(record)
        self.session.delete(record)
        self.session.flush()
        logger.info("km_excess_deleted", extra={"record_id": str(record_id)})

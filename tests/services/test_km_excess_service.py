"""
KmExcessService unit tests.

Verifies:
- A weekly reading above the allowance is priced against the rent of the
  driver's modality, with VAT on top
- One record per driver-week: recording again re-prices it
- Applied records are immutable
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from fleet_kernel.domain.values import Modality
from fleet_kernel.exceptions import (
    KmExcessAlreadyAppliedError,
    KmExcessNotFoundError,
    TariffCatalogUnavailableError,
)
from fleet_kernel.models.km_excess import KmExcessRecord
from fleet_kernel.services.consumption_service import ConsumptionService


class TestRecordWeeklyKm:
    def test_fixed_fee_reading_priced(
        self, km_excess_service, tariff_catalog, create_driver, test_actor_id
    ):
        driver = create_driver()
        info = km_excess_service.record_weekly_km(
            driver.id, 7, 2026, 1900, Modality.FIXED_FEE, test_actor_id, vehicle_plate="AB123CD"
        )

        assert info.km_traveled == 1900
        assert info.km_over == 100
        assert info.bracket == "100-150 km"
        assert info.percentage == Decimal("0.25")
        assert info.base_amount == Decimal("90000")
        assert info.tax_amount == Decimal("18900")
        assert info.total_amount == Decimal("108900")
        assert info.is_estimated is False
        assert info.applied is False

    def test_shift_reading_uses_shift_rent(
        self, km_excess_service, tariff_catalog, create_driver, test_actor_id
    ):
        driver = create_driver()
        info = km_excess_service.record_weekly_km(
            driver.id, 7, 2026, 1900, Modality.SHIFT_BASED, test_actor_id
        )
        # 300000 * 0.25 = 75000; VAT 15750
        assert info.base_amount == Decimal("75000")
        assert info.total_amount == Decimal("90750")

    def test_beyond_last_band_is_estimated(
        self, km_excess_service, tariff_catalog, create_driver, test_actor_id
    ):
        driver = create_driver()
        info = km_excess_service.record_weekly_km(
            driver.id, 7, 2026, 2100, Modality.FIXED_FEE, test_actor_id
        )
        assert info.is_estimated is True
        assert info.bracket == "150-200 km"
        assert info.total_amount == Decimal("152460")

    def test_within_allowance_creates_nothing(
        self, session, km_excess_service, tariff_catalog, create_driver, test_actor_id
    ):
        driver = create_driver()
        assert km_excess_service.record_weekly_km(
            driver.id, 7, 2026, 1800, Modality.FIXED_FEE, test_actor_id
        ) is None
        assert session.execute(select(KmExcessRecord)).scalars().all() == []

    def test_recording_again_replaces_week_record(
        self, session, km_excess_service, tariff_catalog, create_driver, test_actor_id
    ):
        driver = create_driver()
        first = km_excess_service.record_weekly_km(
            driver.id, 7, 2026, 1850, Modality.FIXED_FEE, test_actor_id
        )
        second = km_excess_service.record_weekly_km(
            driver.id, 7, 2026, 1900, Modality.FIXED_FEE, test_actor_id
        )
        assert second.id == first.id
        assert second.km_over == 100
        assert len(session.execute(select(KmExcessRecord)).scalars().all()) == 1

    def test_reading_back_within_allowance_deletes_record(
        self, km_excess_service, tariff_catalog, create_driver, test_actor_id
    ):
        driver = create_driver()
        record = km_excess_service.record_weekly_km(
            driver.id, 7, 2026, 1850, Modality.FIXED_FEE, test_actor_id
        )
        assert km_excess_service.record_weekly_km(
            driver.id, 7, 2026, 1790, Modality.FIXED_FEE, test_actor_id
        ) is None
        with pytest.raises(KmExcessNotFoundError):
            km_excess_service.get_record(record.id)

    def test_empty_catalog_is_unavailable(self, km_excess_service, create_driver, test_actor_id):
        driver = create_driver()
        with pytest.raises(TariffCatalogUnavailableError):
            km_excess_service.record_weekly_km(
                driver.id, 7, 2026, 1900, Modality.FIXED_FEE, test_actor_id
            )


class TestRecordMutation:
    def test_update_reprices(self, km_excess_service, tariff_catalog, create_driver, test_actor_id):
        driver = create_driver()
        record = km_excess_service.record_weekly_km(
            driver.id, 7, 2026, 1850, Modality.FIXED_FEE, test_actor_id
        )
        updated = km_excess_service.update_record(
            record.id, 1960, Modality.FIXED_FEE, test_actor_id
        )
        assert updated.km_over == 160
        assert updated.bracket == "150-200 km"

    def test_delete(self, km_excess_service, tariff_catalog, create_driver, test_actor_id):
        driver = create_driver()
        record = km_excess_service.record_weekly_km(
            driver.id, 7, 2026, 1850, Modality.FIXED_FEE, test_actor_id
        )
        km_excess_service.delete_record(record.id)
        with pytest.raises(KmExcessNotFoundError):
            km_excess_service.get_record(record.id)

    def test_applied_record_is_immutable(
        self,
        session,
        km_excess_service,
        period_service,
        deterministic_clock,
        tariff_catalog,
        create_driver,
        test_actor_id,
    ):
        driver = create_driver()
        record = km_excess_service.record_weekly_km(
            driver.id, 7, 2026, 1900, Modality.FIXED_FEE, test_actor_id
        )
        claim = period_service.begin_processing(7, 2026, test_actor_id, uuid4())
        ConsumptionService(session, deterministic_clock).claim_km_excess(
            record.id, claim.period_id, test_actor_id
        )
        session.expire_all()

        with pytest.raises(KmExcessAlreadyAppliedError) as exc_info:
            km_excess_service.update_record(record.id, 2000, Modality.FIXED_FEE, test_actor_id)
        assert exc_info.value.applied_period_id == str(claim.period_id)
        with pytest.raises(KmExcessAlreadyAppliedError):
            km_excess_service.delete_record(record.id)
        with pytest.raises(KmExcessAlreadyAppliedError):
            km_excess_service.record_weekly_km(
                driver.id, 7, 2026, 1950, Modality.FIXED_FEE, test_actor_id
            )

"""
Billing configuration tests.

Covers loading the packaged YAML document, validation of every tunable,
the checksum that ties a run to its parameters, and the bridges into the
engines.
"""

import copy
from decimal import Decimal

import pytest
import yaml

from fleet_config import CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH, get_active_config
from fleet_config.bridges import build_charge_rules, build_km_tiers
from fleet_config.loader import (
    compute_checksum,
    load_billing_parameters,
    load_yaml_file,
    parse_billing_parameters,
)
from fleet_kernel.exceptions import KmTierConfigurationError


@pytest.fixture
def raw_config():
    """The default document as a mutable dict."""
    return load_yaml_file(DEFAULT_CONFIG_PATH)


# =============================================================================
# Loading
# =============================================================================


class TestDefaultDocument:
    def test_default_values(self, billing_params):
        assert billing_params.config_id == "fleet-billing-default"
        assert billing_params.money_places == 0
        assert billing_params.days_per_week == 7
        assert billing_params.fallback_prices == {
            "P001": Decimal("360000"),
            "P002": Decimal("300000"),
            "P003": Decimal("80000"),
        }
        assert billing_params.guarantee_installments == {"fixed_fee": 20, "shift_based": 14}
        assert billing_params.mora_daily_rate == Decimal("0.01")
        assert billing_params.mora_max_days == 7
        assert billing_params.km_base == 1800
        assert billing_params.km_vat_rate == Decimal("0.21")
        assert billing_params.driver_week_source == "assignments"
        assert billing_params.recent_weeks == 12
        assert billing_params.block_balance_limit == Decimal("500000")
        assert billing_params.block_mora_days == 7

    def test_km_tiers(self, billing_params):
        tiers = billing_params.km_tiers
        assert [(t.min_km, t.max_km) for t in tiers] == [(1, 50), (50, 100), (100, 150), (150, 200)]
        assert [t.percentage for t in tiers] == [
            Decimal("0.15"), Decimal("0.20"), Decimal("0.25"), Decimal("0.35"),
        ]
        assert tiers[2].label == "100-150 km"

    def test_money_is_never_float(self, billing_params):
        assert isinstance(billing_params.mora_daily_rate, Decimal)
        assert all(isinstance(p, Decimal) for p in billing_params.fallback_prices.values())

    def test_environment_variable_selects_document(self, tmp_path, monkeypatch, raw_config):
        raw_config["config_id"] = "fleet-billing-roster"
        raw_config["billing"]["driver_week_source"] = "roster"
        path = tmp_path / "billing.yaml"
        path.write_text(yaml.safe_dump(raw_config))
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        params = get_active_config()

        assert params.config_id == "fleet-billing-roster"
        assert params.driver_week_source == "roster"

    def test_explicit_path_wins_over_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "missing.yaml"))
        assert get_active_config(DEFAULT_CONFIG_PATH).config_id == "fleet-billing-default"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_billing_parameters(tmp_path / "missing.yaml")

    def test_load_is_logged(self, captured_logs):
        params = get_active_config(DEFAULT_CONFIG_PATH)

        loaded = [r for r in captured_logs() if r["message"] == "fleet_config_loaded"]
        assert loaded[0]["checksum"] == params.checksum
        assert loaded[0]["config_version"] == 1


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    @pytest.mark.parametrize("section", ["money", "billing", "mora", "km_excess", "blocking"])
    def test_missing_section(self, raw_config, section):
        del raw_config[section]
        with pytest.raises(KeyError):
            parse_billing_parameters(raw_config)

    def test_missing_key(self, raw_config):
        del raw_config["mora"]["daily_rate"]
        with pytest.raises(KeyError):
            parse_billing_parameters(raw_config)

    @pytest.mark.parametrize(
        "path, value",
        [
            (("money", "decimal_places"), -1),
            (("billing", "days_per_week"), 0),
            (("mora", "daily_rate"), "-0.01"),
            (("mora", "max_days"), -1),
            (("km_excess", "base_km"), -5),
            (("billing", "driver_week_source"), "spreadsheet"),
            (("guarantee", "installments"), {"fixed_fee": 0, "shift_based": 14}),
        ],
    )
    def test_out_of_range(self, raw_config, path, value):
        section, key = path
        raw_config[section][key] = value
        with pytest.raises(ValueError):
            parse_billing_parameters(raw_config)

    def test_negative_fallback_price(self, raw_config):
        raw_config["fallback_prices"]["P001"] = "-1"
        with pytest.raises(ValueError, match="P001"):
            parse_billing_parameters(raw_config)

    def test_unparseable_decimal(self, raw_config):
        raw_config["km_excess"]["vat_rate"] = "twenty one"
        with pytest.raises(ValueError, match="vat_rate"):
            parse_billing_parameters(raw_config)

    def test_boolean_is_not_a_number(self, raw_config):
        raw_config["mora"]["daily_rate"] = True
        with pytest.raises(ValueError):
            parse_billing_parameters(raw_config)


# =============================================================================
# Checksum
# =============================================================================


class TestChecksum:
    def test_deterministic(self, raw_config):
        assert compute_checksum(raw_config) == compute_checksum(copy.deepcopy(raw_config))

    def test_changes_with_content(self, raw_config):
        changed = copy.deepcopy(raw_config)
        changed["mora"]["max_days"] = 10
        assert compute_checksum(changed) != compute_checksum(raw_config)

    def test_not_part_of_equality(self, raw_config):
        first = parse_billing_parameters(raw_config)
        raw_config["config_note"] = "annotated copy"
        second = parse_billing_parameters(raw_config)

        assert first.checksum != second.checksum
        assert first == second


# =============================================================================
# Bridges
# =============================================================================


class TestBridges:
    def test_charge_rules(self, billing_params):
        rules = build_charge_rules(billing_params)
        assert rules.days_per_week == 7
        assert rules.money_places == 0
        assert rules.mora_daily_rate == Decimal("0.01")
        assert rules.mora_max_days == 7
        assert rules.guarantee_installments == {"fixed_fee": 20, "shift_based": 14}

    def test_km_tiers(self, billing_params):
        tiers = build_km_tiers(billing_params)
        assert len(tiers) == 4
        assert tiers[0].percentage == Decimal("0.15")

    def test_overlapping_tiers_rejected(self, raw_config):
        raw_config["km_excess"]["tiers"][1]["min_km"] = 40
        params = parse_billing_parameters(raw_config)
        with pytest.raises(KmTierConfigurationError):
            build_km_tiers(params)

    def test_empty_tiers_rejected(self, raw_config):
        raw_config["km_excess"]["tiers"] = []
        params = parse_billing_parameters(raw_config)
        with pytest.raises(KmTierConfigurationError):
            build_km_tiers(params)

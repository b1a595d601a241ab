"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from moneta.config import (
    ArchiveSettings,
    MetricsSettings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)


class TestSettings:
    """Tests for the settings classes."""

    def test_defaults(self):
        settings = get_settings()

        assert settings.scheduler.run_on_business_switch is True
        assert settings.archive.lookback_years == 3
        assert settings.metrics.tax_reserve_rate == 0.30
        assert settings.storage.backend == "memory"

    def test_fixed_cost_categories_list(self):
        settings = MetricsSettings(fixed_cost_categories=" Hosting , ,Software/SaaS")
        assert settings.fixed_cost_categories_list == ["Hosting", "Software/SaaS"]

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("MONETA_ARCHIVE_LOOKBACK_YEARS", "5")
        assert get_settings().archive.lookback_years == 5

    def test_lookback_bounds(self):
        with pytest.raises(ValidationError):
            ArchiveSettings(lookback_years=0)

    def test_unknown_backend(self):
        with pytest.raises(ValidationError):
            StorageSettings(backend="gist")

    def test_data_dir_must_not_be_a_file(self, tmp_path):
        target = tmp_path / "ledger.json"
        target.write_text("{}", encoding="utf-8")

        with pytest.raises(ValidationError):
            StorageSettings(data_dir=str(target))

    def test_validate_all_settings_reports_failures(self, monkeypatch):
        monkeypatch.setenv("MONETA_METRICS_TAX_RESERVE_RATE", "1.5")

        results = validate_all_settings()

        assert results["scheduler"] is True
        assert results["metrics"] is False
        assert "metrics_error" in results

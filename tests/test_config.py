"""
Tests for configuration loading.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from budget_ledger.config import LedgerSettings, get_settings, validate_all_settings


class TestLedgerSettings:
    """Tests for LEDGER_ environment settings."""

    def test_defaults(self, monkeypatch, tmp_path):
        """Test the out-of-the-box configuration."""
        monkeypatch.chdir(tmp_path)
        settings = LedgerSettings()
        assert settings.state_path == "budget_state.json"
        assert settings.require_transfer_execution is False
        assert settings.reduction_policy == "proportional"
        assert settings.reduction_rate == Decimal("1")
        assert settings.audit_backend == "local"

    def test_reads_environment(self, monkeypatch, tmp_path):
        """Test that LEDGER_ variables override defaults."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("LEDGER_STATE_PATH", "/data/ledger.json")
        monkeypatch.setenv("LEDGER_REQUIRE_TRANSFER_EXECUTION", "true")
        monkeypatch.setenv("LEDGER_REDUCTION_POLICY", "fixed")
        monkeypatch.setenv("LEDGER_REDUCTION_FIXED_AMOUNT", "25.50")

        settings = LedgerSettings()
        assert settings.state_path == "/data/ledger.json"
        assert settings.require_transfer_execution is True
        assert settings.reduction_policy == "fixed"
        assert settings.reduction_fixed_amount == Decimal("25.50")

    def test_rejects_unknown_policy(self):
        """Test that only the built-in policies can be configured."""
        with pytest.raises(ValidationError):
            LedgerSettings(reduction_policy="halve")

    def test_rejects_rate_above_one(self):
        """Test that the proportional rate is bounded."""
        with pytest.raises(ValidationError):
            LedgerSettings(reduction_rate=Decimal("1.5"))

    def test_rejects_unknown_audit_backend(self):
        """Test the audit backend choices."""
        with pytest.raises(ValidationError):
            LedgerSettings(audit_backend="postgres")


class TestSettingsAggregate:
    """Tests for the root settings container."""

    def test_validate_all_settings_reports_sections(self, monkeypatch, tmp_path):
        """Test that a missing Sheets configuration is reported, not raised."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        get_settings.cache_clear()

        results = validate_all_settings()

        assert results["ledger"] is True
        assert results["app"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results
        get_settings.cache_clear()

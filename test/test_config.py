"""
Tests for application and telephony configuration.
"""

import pytest

from callcenter.config import Settings, get_settings
from callcenter.shared.logging import mask_secret
from callcenter.telephony.config import BackendKind, TelephonyConfig


class TestTelephonyConfig:
    def test_declared_defaults(self) -> None:
        # Environment variables may override runtime values; check the declared defaults.
        fields = TelephonyConfig.model_fields
        assert fields["default_backend"].default == BackendKind.CLICK2CALL
        assert fields["click2call_verify_tls"].default is False
        assert fields["click2call_timeout_seconds"].default == 60.0
        assert fields["ami_timeout_seconds"].default == 30.0
        assert fields["retry_max_attempts"].default == 2
        assert fields["retry_backoff_seconds"].default == 5.0
        assert fields["min_extension_length"].default == 3

    def test_environment_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TELEPHONY_DEFAULT_BACKEND", "twilio")
        monkeypatch.setenv("TELEPHONY_TWILIO_ACCOUNT_SID", "AC_FROM_ENV")

        config = TelephonyConfig()

        assert config.default_backend == BackendKind.TWILIO
        assert config.twilio_account_sid == "AC_FROM_ENV"

    def test_enabled_backend_kinds(self) -> None:
        config = TelephonyConfig(enabled_backends=" Click2Call, ami ,,")

        assert config.enabled_backend_kinds == [BackendKind.CLICK2CALL, BackendKind.AMI]

    def test_click2call_call_url(self) -> None:
        config = TelephonyConfig(
            click2call_base_url="https://pbx.example.test:3000/",
            click2call_api_path="/api/v1/manager/call",
        )

        assert config.click2call_call_url == "https://pbx.example.test:3000/api/v1/manager/call"

    def test_retry_bounds(self) -> None:
        with pytest.raises(ValueError):
            TelephonyConfig(retry_max_attempts=0)


class TestSettings:
    def test_cors_origins_list(self) -> None:
        settings = Settings(cors_origins="http://a.test, http://b.test,")

        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_ledger_timezone_is_stripped(self) -> None:
        assert Settings(ledger_timezone="  Europe/Rome ").ledger_timezone == "Europe/Rome"
        assert Settings(ledger_timezone=None).ledger_timezone == ""

    def test_fresh_settings_under_pytest(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STATS_DEFAULT_DAYS", "14")

        assert get_settings().stats_default_days == 14


def test_mask_secret() -> None:
    assert mask_secret("") == ""
    assert mask_secret("abc") == "***"
    assert mask_secret("AC1234567890") == "AC1234***"

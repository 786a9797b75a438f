"""
Unit tests for application settings parsing and validation
"""
import pytest
from pydantic import ValidationError

from coursepush.core.config import Settings


def make_settings(**overrides) -> Settings:
    """Settings built from explicit values only, ignoring any .env file."""
    return Settings(_env_file=None, **overrides)


class TestCorsOrigins:
    """CORS_ORIGINS comma-separated parsing"""

    def test_wildcard(self):
        assert make_settings(CORS_ORIGINS="*").cors_origins_list == ["*"]

    def test_multiple_origins_are_trimmed(self):
        settings = make_settings(CORS_ORIGINS=" http://a.test , http://b.test,,")

        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]


class TestPartnerCredentials:
    """FCM_PARTNER_CREDENTIALS parsing"""

    def test_map(self):
        settings = make_settings(
            FCM_PARTNER_CREDENTIALS="poc1=/secrets/poc1.json, poc2 = /secrets/poc2.json"
        )

        assert settings.partner_credentials_map == {
            "poc1": "/secrets/poc1.json",
            "poc2": "/secrets/poc2.json",
        }

    def test_empty_means_no_partners(self):
        assert make_settings(FCM_PARTNER_CREDENTIALS="").partner_credentials_map == {}

    @pytest.mark.parametrize("value", ["poc1", "poc1=", "=/secrets/poc1.json"])
    def test_malformed_entry_rejected(self, value):
        with pytest.raises(ValidationError, match="Malformed"):
            make_settings(FCM_PARTNER_CREDENTIALS=value)

    def test_duplicate_partner_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate partner 'poc1'"):
            make_settings(FCM_PARTNER_CREDENTIALS="poc1=/a.json,poc1=/b.json")


class TestRegistryBackend:
    """REGISTRY_BACKEND validation"""

    @pytest.mark.parametrize("backend", ["memory", "sql"])
    def test_valid(self, backend):
        assert make_settings(REGISTRY_BACKEND=backend).REGISTRY_BACKEND == backend

    def test_invalid(self):
        with pytest.raises(ValidationError, match="REGISTRY_BACKEND must be one of"):
            make_settings(REGISTRY_BACKEND="redis")

    def test_gateway_defaults(self):
        settings = make_settings()

        assert settings.PUSH_SEND_TIMEOUT_SECONDS == 10.0
        assert settings.PUSH_MAX_RETRIES == 3
        assert settings.FCM_CHANNEL_ID == "fcm_default_channel"

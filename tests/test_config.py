"""Tests for environment and key-file configuration."""

from __future__ import annotations

import pytest

from tattoo_discovery import config
from tattoo_discovery.config import AppSettings, ProviderSettings, load_key

CREDENTIAL_VARS = (
    "REPLICATE_API_TOKEN",
    "GOOGLE_CLOUD_PROJECT_ID",
    "GOOGLE_CLOUD_CREDENTIALS",
    "GEMINI_API_KEY",
    "HUGGINGFACE_API_KEY",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "IMAGE_PROVIDER_ORDER",
    "GENERATION_LIMIT",
    "REQUIRE_PAYMENT",
    "POLL_MAX_ATTEMPTS",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "KEY_DIR", str(tmp_path))
    return tmp_path


class TestLoadKey:
    def test_environment_wins(self, clean_env, monkeypatch):
        (clean_env / "replicate.key").write_text("from-file")
        monkeypatch.setenv("REPLICATE_API_TOKEN", "  from-env ")
        assert load_key("REPLICATE_API_TOKEN") == "from-env"

    def test_key_file_fallback(self, clean_env):
        (clean_env / "gemini.key").write_text("from-file\n")
        assert load_key("GEMINI_API_KEY") == "from-file"

    def test_blank_values_are_missing(self, clean_env, monkeypatch):
        monkeypatch.setenv("HUGGINGFACE_API_KEY", "   ")
        (clean_env / "huggingface.key").write_text("")
        assert load_key("HUGGINGFACE_API_KEY") is None


class TestProviderSettings:
    def test_nothing_configured_by_default(self, clean_env):
        settings = ProviderSettings.from_env()
        for name in ("replicate", "vertex", "gemini", "huggingface"):
            assert settings.is_configured(name) is False

    def test_vertex_needs_project_and_credentials(self, clean_env, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLOUD_PROJECT_ID", "proj")
        assert ProviderSettings.from_env().vertex_configured() is False

        (clean_env / "google-credentials.json").write_text('{"type": "service_account"}')
        assert ProviderSettings.from_env().vertex_configured() is True

    def test_provider_order_override(self, clean_env, monkeypatch):
        monkeypatch.setenv("IMAGE_PROVIDER_ORDER", " Gemini, replicate,,")
        assert ProviderSettings.from_env().provider_order == ("gemini", "replicate")

    def test_unknown_provider_is_not_configured(self):
        assert ProviderSettings(replicate_api_token="x").is_configured("dalle") is False


class TestAppSettings:
    def test_defaults(self, clean_env):
        settings = AppSettings.from_env()
        assert settings.generation_limit == 1
        assert settings.require_payment is True
        assert settings.buy_in_amount_cents == 10000
        assert settings.buy_in_currency == "eur"

    def test_limit_is_at_least_one(self, clean_env, monkeypatch):
        monkeypatch.setenv("GENERATION_LIMIT", "0")
        assert AppSettings.from_env().generation_limit == 1

    def test_malformed_numbers_fall_back(self, clean_env, monkeypatch):
        monkeypatch.setenv("POLL_MAX_ATTEMPTS", "many")
        assert AppSettings.from_env().providers.poll_max_attempts == 60

    @pytest.mark.parametrize("raw, expected", [("false", False), ("0", False), ("yes", True)])
    def test_require_payment_flag(self, clean_env, monkeypatch, raw, expected):
        monkeypatch.setenv("REQUIRE_PAYMENT", raw)
        assert AppSettings.from_env().require_payment is expected

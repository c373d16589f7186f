"""Config defaults, validation and fail-fast requirements"""

import pytest

from config import Config
from exceptions import ConfigurationError

SOURCE_VARS = (
    "CIVICLEDGER_CIVICCLERK_URL",
    "CIVICLEDGER_CITY_SITE_URL",
    "CIVICLEDGER_MUNICODE_URL",
    "CIVICLEDGER_MUNICODE_PRODUCT_ID",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in SOURCE_VARS + ("GEMINI_API_KEY", "LLM_API_KEY", "CIVICLEDGER_FETCH_CONCURRENCY"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    def test_bounds(self, clean_env):
        config = Config()
        assert config.FETCH_CONCURRENCY == 3
        assert config.DISCOVERY_MAX_PROBES == 200
        assert config.DISCOVERY_MAX_MISSES == 30
        assert config.METRICS_PORT == 0

    def test_trailing_slash_stripped(self, clean_env):
        clean_env.setenv("CIVICLEDGER_CIVICCLERK_URL", "https://examplecityga.portal.civicclerk.com/")
        assert Config().CIVICCLERK_URL == "https://examplecityga.portal.civicclerk.com"

    def test_api_key_fallback(self, clean_env):
        clean_env.setenv("LLM_API_KEY", "fallback-key")
        assert Config().get_api_key() == "fallback-key"


class TestValidation:
    @pytest.mark.parametrize(
        "name,value",
        [
            ("CIVICLEDGER_FETCH_CONCURRENCY", "0"),
            ("CIVICLEDGER_FETCH_TIMEOUT", "-5"),
            ("CIVICLEDGER_DISCOVERY_MAX_PROBES", "0"),
            ("CIVICLEDGER_DISCOVERY_MAX_MISSES", "0"),
            ("CIVICLEDGER_METRICS_PORT", "70000"),
        ],
    )
    def test_bad_values_rejected(self, clean_env, name, value):
        clean_env.setenv(name, value)
        with pytest.raises(ConfigurationError) as exc_info:
            Config()
        assert exc_info.value.context["config_key"] == name


class TestRequire:
    def test_missing_setting_names_env_var(self, clean_env):
        config = Config()
        with pytest.raises(ConfigurationError, match="CIVICLEDGER_MUNICODE_PRODUCT_ID"):
            config.require("MUNICODE_PRODUCT_ID")

    def test_first_missing_reported(self, clean_env):
        clean_env.setenv("CIVICLEDGER_MUNICODE_URL", "https://library.municode.com/ga/example")
        config = Config()
        with pytest.raises(ConfigurationError, match="CIVICLEDGER_MUNICODE_PRODUCT_ID"):
            config.require("MUNICODE_URL", "MUNICODE_PRODUCT_ID")

    def test_present_settings_pass(self, clean_env):
        clean_env.setenv("CIVICLEDGER_CITY_SITE_URL", "https://www.examplecityga.gov")
        Config().require("CITY_SITE_URL")


class TestSummary:
    def test_secrets_excluded(self, clean_env):
        clean_env.setenv("GEMINI_API_KEY", "secret-key-123")
        summary = Config().summary()

        assert summary["has_api_key"] is True
        assert "secret-key-123" not in str(summary)
        assert summary["civicclerk_url"] is None

import pytest

from core import config
from gtfs.errors import ConfigurationError


def test_int_setting_parsed(monkeypatch):
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "120")
    assert config.get_int_env_variable("POLL_INTERVAL_SECONDS", 600, minimum=10) == 120


def test_int_setting_default_when_unset(monkeypatch):
    monkeypatch.delenv("POLL_INTERVAL_SECONDS", raising=False)
    assert config.get_int_env_variable("POLL_INTERVAL_SECONDS", 600, minimum=10) == 600


def test_int_setting_invalid_falls_back_to_default(monkeypatch, caplog):
    monkeypatch.setenv("APP_PORT", "eighty")
    assert config.get_int_env_variable("APP_PORT", 3003) == 3003
    assert "Invalid value for APP_PORT" in caplog.text


def test_int_setting_clamped_to_minimum(monkeypatch):
    monkeypatch.setenv("STALENESS_THRESHOLD_SECONDS", "5")
    assert config.get_int_env_variable("STALENESS_THRESHOLD_SECONDS", 86400, minimum=60) == 60


def test_defaults():
    assert config.STAGING_PREFIX == ".data-"
    assert config.PUBLISHED_ARCHIVE_NAME == "gtfs.zip"
    assert config.DELETE_MAX_RETRIES == 5


@pytest.mark.parametrize("value", [None, "", "   "])
def test_missing_gtfs_url_is_fatal(monkeypatch, value):
    monkeypatch.setattr(config, "GTFS_URL", value)
    with pytest.raises(ConfigurationError):
        config.require_gtfs_url()


def test_gtfs_url_is_stripped(monkeypatch):
    monkeypatch.setattr(config, "GTFS_URL", "  https://feeds.example.org/gtfs.zip \n")
    assert config.require_gtfs_url() == "https://feeds.example.org/gtfs.zip"
    assert config.require_gtfs_url("https://other.example.org/a.zip") == "https://other.example.org/a.zip"

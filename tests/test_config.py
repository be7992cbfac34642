import pytest

from sources.config import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REFRESH_THRESHOLD,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    WinPowerConfig,
)
from sources.errors import ConfigError


def make_config(**overrides):
    settings = dict(url="https://192.168.1.20:8081", username="admin", password="secret")
    settings.update(overrides)
    return WinPowerConfig(**settings)


class TestFromEnv:

    def test_reads_all_settings(self):
        config = WinPowerConfig.from_env({
            "WINPOWER_URL": "https://192.168.1.20:8081",
            "WINPOWER_USERNAME": "admin",
            "WINPOWER_PASSWORD": "secret",
            "WINPOWER_TIMEOUT": "10",
            "WINPOWER_SKIP_TLS_VERIFY": "true",
            "WINPOWER_REFRESH_THRESHOLD": "120",
            "WINPOWER_USER_AGENT": "test-agent",
            "WINPOWER_POLL_INTERVAL": "2.5",
        })

        assert config.url == "https://192.168.1.20:8081"
        assert config.username == "admin"
        assert config.password == "secret"
        assert config.timeout == 10.0
        assert config.skip_tls_verify is True
        assert config.refresh_threshold == 120.0
        assert config.user_agent == "test-agent"
        assert config.poll_interval == 2.5

    def test_defaults(self):
        config = WinPowerConfig.from_env({"WINPOWER_URL": "http://ups.local"})

        assert config.timeout == DEFAULT_TIMEOUT
        assert config.skip_tls_verify is False
        assert config.refresh_threshold == DEFAULT_REFRESH_THRESHOLD
        assert config.user_agent == DEFAULT_USER_AGENT
        assert config.poll_interval == DEFAULT_POLL_INTERVAL
        assert config.username == ""

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("WINPOWER_URL", "http://ups.local")
        monkeypatch.setenv("WINPOWER_USERNAME", "operator")

        config = WinPowerConfig.from_env()

        assert config.url == "http://ups.local"
        assert config.username == "operator"

    def test_non_numeric_timeout_raises(self):
        with pytest.raises(ConfigError) as exc_info:
            WinPowerConfig.from_env({"WINPOWER_TIMEOUT": "soon"})

        assert exc_info.value.field == "WINPOWER_TIMEOUT"


class TestValidate:

    def test_valid_config_passes_and_strips_trailing_slash(self):
        config = make_config(url="https://192.168.1.20:8081/")

        config.validate()

        assert config.url == "https://192.168.1.20:8081"

    @pytest.mark.parametrize("overrides, field", [
        ({"url": ""}, "url"),
        ({"url": "ftp://ups.local"}, "url"),
        ({"url": "192.168.1.20:8081"}, "url"),
        ({"url": "https://"}, "url"),
        ({"username": ""}, "username"),
        ({"password": ""}, "password"),
        ({"timeout": 0}, "timeout"),
        ({"timeout": -1}, "timeout"),
        ({"refresh_threshold": 59}, "refresh_threshold"),
        ({"refresh_threshold": 3601}, "refresh_threshold"),
        ({"poll_interval": 0}, "poll_interval"),
    ])
    def test_invalid_settings_raise(self, overrides, field):
        with pytest.raises(ConfigError) as exc_info:
            make_config(**overrides).validate()

        assert exc_info.value.field == field

    @pytest.mark.parametrize("threshold", [60, 3600])
    def test_refresh_threshold_band_is_inclusive(self, threshold):
        make_config(refresh_threshold=threshold).validate()


def test_repr_masks_password():
    text = repr(make_config(password="supersecret"))

    assert "supersecret" not in text
    assert "s*********t" in text

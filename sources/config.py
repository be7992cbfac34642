"""WinPower connection settings - loaded from the environment, validated once"""
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from sources.errors import ConfigError

DEFAULT_TIMEOUT = 30.0
DEFAULT_REFRESH_THRESHOLD = 300.0
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_USER_AGENT = "WinPower-Power-Bridge/0.1.0"

# Refresh threshold band (seconds): refreshing every call, or never, is a misconfiguration
MIN_REFRESH_THRESHOLD = 60.0
MAX_REFRESH_THRESHOLD = 3600.0

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class WinPowerConfig:
    """
    Settings for talking to a WinPower G2 appliance.

    Attributes:
        url: Base URL of the appliance (e.g., "https://192.168.1.20:8081")
        username: Login user name
        password: Login password
        timeout: Default HTTP request timeout in seconds
        skip_tls_verify: Accept self-signed certificates
        refresh_threshold: Seconds before token expiry at which to log in again
        user_agent: User-Agent header for requests
        poll_interval: Seconds between collections in the polling loop
    """
    url: str
    username: str
    password: str
    timeout: float = DEFAULT_TIMEOUT
    skip_tls_verify: bool = False
    refresh_threshold: float = DEFAULT_REFRESH_THRESHOLD
    user_agent: str = DEFAULT_USER_AGENT
    poll_interval: float = DEFAULT_POLL_INTERVAL

    def __repr__(self) -> str:
        return (
            f"WinPowerConfig(url={self.url!r}, username={self.username!r}, "
            f"password={_mask(self.password)!r}, timeout={self.timeout}, "
            f"skip_tls_verify={self.skip_tls_verify}, "
            f"refresh_threshold={self.refresh_threshold}, "
            f"poll_interval={self.poll_interval})"
        )

    @classmethod
    def from_env(cls, environ=None) -> "WinPowerConfig":
        """
        Build a configuration from WINPOWER_* environment variables.

        Raises:
            ConfigError: if a numeric setting cannot be parsed
        """
        env = os.environ if environ is None else environ
        return cls(
            url=env.get("WINPOWER_URL", ""),
            username=env.get("WINPOWER_USERNAME", ""),
            password=env.get("WINPOWER_PASSWORD", ""),
            timeout=_env_float(env, "WINPOWER_TIMEOUT", DEFAULT_TIMEOUT),
            skip_tls_verify=env.get("WINPOWER_SKIP_TLS_VERIFY", "").strip().lower() in _TRUE_VALUES,
            refresh_threshold=_env_float(env, "WINPOWER_REFRESH_THRESHOLD", DEFAULT_REFRESH_THRESHOLD),
            user_agent=env.get("WINPOWER_USER_AGENT") or DEFAULT_USER_AGENT,
            poll_interval=_env_float(env, "WINPOWER_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
        )

    def validate(self) -> None:
        """
        Check every setting, normalizing the URL.

        Raises:
            ConfigError: naming the first invalid field
        """
        if not self.url:
            raise ConfigError("URL cannot be empty", field="url")

        parsed = urlparse(self.url)
        if parsed.scheme not in ("http", "https"):
            raise ConfigError("URL must start with http:// or https://", field="url")
        if not parsed.hostname or any(c in parsed.netloc for c in " \t\r\n"):
            raise ConfigError(f"URL has no valid host: {self.url}", field="url")
        self.url = self.url.rstrip("/")

        if not self.username:
            raise ConfigError("username cannot be empty", field="username")
        if not self.password:
            raise ConfigError("password cannot be empty", field="password")

        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}", field="timeout")

        if not MIN_REFRESH_THRESHOLD <= self.refresh_threshold <= MAX_REFRESH_THRESHOLD:
            raise ConfigError(
                f"refresh threshold must be between {MIN_REFRESH_THRESHOLD:.0f}s and "
                f"{MAX_REFRESH_THRESHOLD:.0f}s, got {self.refresh_threshold}",
                field="refresh_threshold",
            )

        if self.poll_interval <= 0:
            raise ConfigError(
                f"poll interval must be positive, got {self.poll_interval}",
                field="poll_interval",
            )


def _env_float(env, name: str, default: float) -> float:
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number of seconds, got {value!r}", field=name) from None


def _mask(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 2:
        return "*" * len(value)
    return value[0] + "*" * (len(value) - 2) + value[-1]

"""Exceptions raised by the WinPower source."""


class WinPowerError(Exception):
    """Base exception for WinPower collection."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(WinPowerError):
    """Bad credentials, or a token the appliance has rejected."""

    def __str__(self) -> str:
        return f"authentication error: {self.message}"


class NetworkError(WinPowerError):
    """Connectivity failure, timeout, unexpected HTTP status or undecodable body."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out

    def __str__(self) -> str:
        return f"network error: {self.message}"


class ParseError(WinPowerError):
    """Malformed device record or non-success device list response."""

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field

    def __str__(self) -> str:
        if self.field:
            return f"parse error on field {self.field!r}: {self.message}"
        return f"parse error: {self.message}"


class ConfigError(WinPowerError):
    """Invalid configuration, raised at construction time."""

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field

    def __str__(self) -> str:
        return f"config error on field {self.field!r}: {self.message}"

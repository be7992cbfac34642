"""WinPower token lifecycle - caches the bearer credential and refreshes it before expiry"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sources.base import Credential
from sources.errors import ConfigError, WinPowerError
from sources.winpower_http import WinPowerHTTPClient

logger = logging.getLogger(__name__)

# Fixed by the WinPower protocol; the login response carries no expiry
TOKEN_LIFETIME = timedelta(hours=1)


class TokenManager:
    """
    Owns the cached Credential for one set of login credentials.

    get_token() returns the cached token while it is outside the refresh
    threshold. Otherwise exactly one coroutine logs in while the others
    wait on the same lock and then observe that login's outcome.
    """

    def __init__(
        self,
        http_client: WinPowerHTTPClient,
        username: str,
        password: str,
        refresh_threshold: float = 300.0,
        clock=None
    ):
        """
        Args:
            http_client: Transport used for login
            username: Login user name
            password: Login password
            refresh_threshold: Seconds before expiry at which the token is renewed
            clock: Callable returning an aware datetime (tests pin time with it)
        """
        if refresh_threshold <= 0:
            raise ConfigError(
                f"refresh threshold must be positive, got {refresh_threshold}",
                field="refresh_threshold",
            )

        self.http_client = http_client
        self.username = username
        self.password = password
        self.refresh_threshold = timedelta(seconds=refresh_threshold)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._lock = asyncio.Lock()
        self._credential: Credential | None = None
        # Bumped whenever a login finishes, successful or not
        self._login_generation = 0
        self._last_login_error: WinPowerError | None = None

    async def get_token(self, timeout: float | None = None) -> str:
        """
        Return a token that is not due for refresh, logging in if needed.

        Raises:
            AuthenticationError / NetworkError: the login failed, unmodified
        """
        # Fast path: no await between the check and the return
        credential = self._credential
        if credential is not None and not self._needs_refresh(credential):
            return credential.token

        generation = self._login_generation
        async with self._lock:
            # Another coroutine may have refreshed while we waited
            credential = self._credential
            if credential is not None and not self._needs_refresh(credential):
                logger.debug("WinPower: Using token refreshed by another caller")
                return credential.token

            # A login finished while we were queued behind it; share its result
            if self._login_generation != generation:
                if self._last_login_error is not None:
                    raise self._last_login_error
                if credential is not None:
                    return credential.token

            logger.info(
                f"WinPower: Refreshing token for {self.username} "
                f"(cached: {credential is not None})"
            )

            try:
                result = await self.http_client.login(self.username, self.password, timeout=timeout)
            except WinPowerError as e:
                self._login_generation += 1
                self._last_login_error = e
                logger.error(f"WinPower: Token refresh failed: {e}")
                raise

            self._credential = Credential(
                token=result.token,
                device_id=result.device_id,
                expires_at=self._clock() + TOKEN_LIFETIME,
            )
            self._login_generation += 1
            self._last_login_error = None

            logger.info(f"WinPower: Token refreshed, valid until {self._credential.expires_at.isoformat()}")
            return self._credential.token

    def _needs_refresh(self, credential: Credential) -> bool:
        remaining = credential.expires_at - self._clock()
        return remaining <= self.refresh_threshold

    def is_valid(self) -> bool:
        credential = self._credential
        return credential is not None and credential.is_valid(self._clock())

    def expires_at(self) -> datetime | None:
        credential = self._credential
        return credential.expires_at if credential is not None else None

    def device_id(self) -> str:
        credential = self._credential
        return credential.device_id if credential is not None else ""

    def invalidate(self) -> None:
        """Drop the cached credential so the next get_token() logs in again."""
        if self._credential is not None:
            logger.info("WinPower: Clearing token cache")
            self._credential = None

"""WinPower G2 device source - authenticated collection of UPS telemetry"""
import asyncio
import dataclasses
import logging
import math
import threading
from datetime import datetime, timezone

from sources.base import CollectionStatistics, DeviceRecord, EnergyCalculator
from sources.config import WinPowerConfig
from sources.errors import AuthenticationError, WinPowerError
from sources.winpower_http import WinPowerHTTPClient
from sources.winpower_parser import parse_response
from sources.winpower_token import TokenManager
from sources.winpower_validator import has_critical_errors, validate_batch

logger = logging.getLogger(__name__)

# A single interval producing more than 1 MWh is a calculation error
MAX_REASONABLE_ENERGY_WH = 1_000_000.0


class WinPowerSource:
    """
    WinPower G2 device source.

    Each collect_device_data() call obtains a token (logging in when the
    cached one is due for refresh), fetches the device list, parses and
    optionally validates it, and records the outcome in the statistics.
    Safe to call concurrently from several tasks.
    """

    def __init__(
        self,
        config: WinPowerConfig,
        http_client: WinPowerHTTPClient | None = None,
        energy: EnergyCalculator | None = None,
        validate_records: bool = True,
        energy_timeout: float = 5.0
    ):
        """
        Initialize the WinPower source.

        Args:
            config: Connection settings, validated here
            http_client: Transport to use (default: built from config)
            energy: Optional downstream energy accumulator
            validate_records: Drop records failing identity checks, log range violations
            energy_timeout: Seconds allowed for the energy hand-off of one collection

        Raises:
            ConfigError: invalid configuration
        """
        config.validate()
        self.config = config
        self.http_client = http_client or WinPowerHTTPClient(
            base_url=config.url,
            timeout=config.timeout,
            skip_tls_verify=config.skip_tls_verify,
            user_agent=config.user_agent,
        )
        self.token_manager = TokenManager(
            self.http_client,
            username=config.username,
            password=config.password,
            refresh_threshold=config.refresh_threshold,
        )
        self.energy = energy
        self.validate_records = validate_records
        self.energy_timeout = energy_timeout

        self._stats_lock = threading.Lock()
        self._stats = CollectionStatistics()

    async def __aenter__(self):
        """Context manager entry: log in once"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit: close the HTTP connection pool"""
        await self.aclose()

    async def connect(self) -> None:
        """
        Phase 1: Authentication.

        Warms the token cache so the first collection does not pay for the
        login. Does not count as a collection attempt.
        """
        logger.info(f"WinPower: Connecting to {self.config.url}")
        await self.token_manager.get_token()
        logger.info(f"WinPower: Authenticated (device {self.token_manager.device_id()})")

    async def aclose(self) -> None:
        await self.http_client.aclose()

    async def collect_device_data(self, timeout: float | None = None) -> list[DeviceRecord]:
        """
        Phase 2: one collection attempt.

        Args:
            timeout: Per-request timeout in seconds (default: config timeout)

        Returns:
            Parsed device records (possibly empty)

        Raises:
            AuthenticationError: no token could be obtained, or the token was rejected
            NetworkError: the device list could not be fetched
            ParseError: the device list reported a non-success code
            asyncio.CancelledError: the calling task was cancelled
        """
        self._record_attempt()
        try:
            devices = await self._collect(timeout)
        except asyncio.CancelledError:
            self._record_failure("collection cancelled")
            raise
        except Exception as e:
            self._record_failure(str(e))
            logger.error(f"WinPower: Collection failed: {e}")
            raise

        self._record_success()

        if self.energy is not None:
            await self._feed_energy(devices)

        return devices

    async def _collect(self, timeout: float | None) -> list[DeviceRecord]:
        try:
            token = await self.token_manager.get_token(timeout=timeout)
        except AuthenticationError:
            raise
        except WinPowerError as e:
            raise AuthenticationError(f"failed to obtain token: {e}") from e

        try:
            response = await self.http_client.fetch_devices(token, timeout=timeout)
        except AuthenticationError:
            # The appliance no longer accepts this token; log in again next time
            self.token_manager.invalidate()
            raise

        devices = parse_response(response)

        if self.validate_records:
            devices = self._filter_valid(devices)

        return devices

    def _filter_valid(self, devices: list[DeviceRecord]) -> list[DeviceRecord]:
        accepted = []
        for device, outcome in zip(devices, validate_batch(devices)):
            if has_critical_errors(outcome):
                logger.error(f"WinPower: Dropping device {device.device_id!r}: {outcome.violations}")
                continue
            for violation in outcome.violations:
                logger.warning(f"WinPower: Device {device.device_id}: {violation.message}")
            accepted.append(device)
        return accepted

    async def _feed_energy(self, devices: list[DeviceRecord]) -> None:
        """Hand power readings to the energy accumulator; its failures stay here."""
        targets = [d for d in devices if d.connected and d.realtime.load_total_watt != 0]
        if not targets:
            return

        calls = [self.energy.calculate(d.device_id, d.realtime.load_total_watt) for d in targets]
        try:
            # One bound for the whole batch, however many devices there are
            results = await asyncio.wait_for(
                asyncio.gather(*calls, return_exceptions=True),
                timeout=self.energy_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"WinPower: Energy calculation for {len(targets)} devices "
                f"timed out after {self.energy_timeout}s"
            )
            return

        for device, energy_wh in zip(targets, results):
            if isinstance(energy_wh, BaseException):
                logger.warning(f"WinPower: Energy calculation for {device.device_id} failed: {energy_wh!r}")
            elif not isinstance(energy_wh, (int, float)) or (
                isinstance(energy_wh, float) and not math.isfinite(energy_wh)
            ):
                logger.warning(f"WinPower: Invalid energy value for {device.device_id}: {energy_wh!r}")
            elif abs(energy_wh) > MAX_REASONABLE_ENERGY_WH:
                logger.warning(
                    f"WinPower: Energy value {energy_wh} Wh for {device.device_id} is unreasonably large"
                )
            else:
                logger.debug(
                    f"WinPower: Device {device.device_id} at {device.realtime.load_total_watt} W, "
                    f"total {energy_wh} Wh"
                )

    def _record_attempt(self) -> None:
        with self._stats_lock:
            self._stats.attempts += 1

    def _record_failure(self, error: str) -> None:
        with self._stats_lock:
            self._stats.failures += 1
            self._stats.last_error = error
            self._stats.connected = False

    def _record_success(self) -> None:
        with self._stats_lock:
            self._stats.successes += 1
            self._stats.last_success_at = datetime.now(timezone.utc)
            self._stats.connected = True

    def is_connected(self) -> bool:
        with self._stats_lock:
            return self._stats.connected

    def last_collection_time(self) -> datetime | None:
        with self._stats_lock:
            return self._stats.last_success_at

    def statistics(self) -> CollectionStatistics:
        with self._stats_lock:
            return dataclasses.replace(self._stats)

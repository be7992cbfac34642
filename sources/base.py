"""Base definitions for device sources - data contracts and protocols"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping, Protocol


# Raw telemetry values as decoded from the vendor JSON
RawValue = str | int | float | bool | None


@dataclass(frozen=True)
class Credential:
    """
    Bearer token granted by the WinPower login endpoint.

    Attributes:
        token: Opaque bearer string, never empty.
        device_id: Device ID reported by the appliance at login.
        expires_at: UTC instant after which the token is no longer accepted.
    """
    token: str
    device_id: str
    expires_at: datetime

    def is_valid(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now < self.expires_at


@dataclass(frozen=True)
class RealtimeData:
    """
    Fixed-layout telemetry of one device.

    Power in W/VA, voltages in V, currents in A, frequencies in Hz,
    percentages 0-100, temperature in Celsius. Battery remaining time is
    in seconds.
    """
    load_total_watt: float = 0.0
    input_volt_1: float = 0.0
    output_volt_1: float = 0.0
    bat_volt_p: float = 0.0
    output_current_1: float = 0.0
    input_freq: float = 0.0
    output_freq: float = 0.0
    load_percent: float = 0.0
    load_total_va: float = 0.0
    load_watt_1: float = 0.0
    load_va_1: float = 0.0
    bat_capacity: float = 0.0
    bat_remain_time: int = 0
    is_charging: bool = False
    ups_temperature: float = 0.0
    mode: str = ""
    status: str = ""
    battery_status: str = ""
    test_status: str = ""
    fault_code: str = ""
    # Original vendor map, kept for fields not promoted to the layout above
    raw: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, repr=False
    )


@dataclass(frozen=True)
class DeviceRecord:
    """Canonical, immutable representation of one device at collection time."""
    device_id: str
    device_type: int
    model: str
    alias: str
    connected: bool
    realtime: RealtimeData
    collected_at: datetime


@dataclass(frozen=True)
class Violation:
    field: str
    value: Any
    message: str


@dataclass(frozen=True)
class ValidationOutcome:
    is_valid: bool
    violations: tuple[Violation, ...] = ()


@dataclass
class CollectionStatistics:
    """
    Counters kept by the collector.

    Instances handed out to callers are snapshots; mutating them has no
    effect on the collector.
    """
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    last_error: str | None = None
    last_success_at: datetime | None = None
    connected: bool = False


class DeviceSource(Protocol):
    """
    Protocol for device telemetry sources.

    Uses Protocol for duck typing - implementations don't need to inherit,
    just implement the methods with matching signatures.
    """

    async def collect_device_data(self, timeout: float | None = None) -> list[DeviceRecord]:
        """
        Run one collection attempt and return the parsed devices.

        Should raise a WinPowerError subclass if the attempt fails.
        """
        ...

    def is_connected(self) -> bool:
        """Outcome of the most recent collection attempt."""
        ...

    def statistics(self) -> CollectionStatistics:
        """Snapshot of the collection counters."""
        ...


class EnergyCalculator(Protocol):
    """
    Downstream consumer that accumulates energy from power samples.

    Failures raised here never reach the collector's caller.
    """

    async def calculate(self, device_id: str, power_watts: float) -> float:
        """Add a power sample and return the accumulated energy in Wh."""
        ...

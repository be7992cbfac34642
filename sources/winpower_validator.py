"""Plausibility checks for parsed WinPower device records"""
import logging
import math

from sources.base import DeviceRecord, ValidationOutcome, Violation

logger = logging.getLogger(__name__)

VOLTAGE_RANGE = (0.0, 500.0)
FREQUENCY_RANGE = (45.0, 65.0)
PERCENT_RANGE = (0.0, 100.0)
TEMPERATURE_RANGE = (-20.0, 100.0)

# Without these the record cannot be processed further
CRITICAL_FIELDS = frozenset({"record", "device_id"})


def validate(record: DeviceRecord | None) -> ValidationOutcome:
    """
    Check a record against physical plausibility ranges.

    Every rule runs independently; one violation does not stop the others.
    """
    if record is None:
        return ValidationOutcome(
            is_valid=False,
            violations=(Violation("record", None, "device record is missing"),),
        )

    violations: list[Violation] = []

    if not record.device_id:
        violations.append(Violation("device_id", record.device_id, "device_id cannot be empty"))
    if record.device_type < 0:
        violations.append(Violation("device_type", record.device_type, "device_type must be non-negative"))

    rt = record.realtime
    _non_negative(violations, "load_total_watt", rt.load_total_watt)
    _non_negative(violations, "load_watt_1", rt.load_watt_1)
    _non_negative(violations, "load_total_va", rt.load_total_va)
    _non_negative(violations, "load_va_1", rt.load_va_1)

    _in_range(violations, "input_volt_1", rt.input_volt_1, VOLTAGE_RANGE, "V")
    _in_range(violations, "output_volt_1", rt.output_volt_1, VOLTAGE_RANGE, "V")
    _in_range(violations, "bat_volt_p", rt.bat_volt_p, VOLTAGE_RANGE, "V")

    _non_negative(violations, "output_current_1", rt.output_current_1)

    # 0 Hz means the appliance did not report a frequency.
    # This also accepts a genuine 0 Hz reading; kept as the appliance behaves.
    for name, value in (("input_freq", rt.input_freq), ("output_freq", rt.output_freq)):
        if value != 0:
            _in_range(violations, name, value, FREQUENCY_RANGE, "Hz")

    _in_range(violations, "load_percent", rt.load_percent, PERCENT_RANGE, "%")
    _in_range(violations, "bat_capacity", rt.bat_capacity, PERCENT_RANGE, "%")
    _in_range(violations, "ups_temperature", rt.ups_temperature, TEMPERATURE_RANGE, "°C")

    _non_negative(violations, "bat_remain_time", rt.bat_remain_time)

    outcome = ValidationOutcome(is_valid=not violations, violations=tuple(violations))
    if not outcome.is_valid:
        logger.warning(
            f"WinPower: Device {record.device_id or '<no id>'} failed validation "
            f"({len(violations)} violations)"
        )
    return outcome


def validate_batch(records: list[DeviceRecord]) -> list[ValidationOutcome]:
    return [validate(record) for record in records]


def has_critical_errors(outcome: ValidationOutcome | None) -> bool:
    """True if a violation touches an identity field."""
    if outcome is None or outcome.is_valid:
        return False
    return any(v.field in CRITICAL_FIELDS for v in outcome.violations)


def _non_finite(violations: list[Violation], name: str, value: float) -> bool:
    # NaN fails every comparison
    if isinstance(value, float) and not math.isfinite(value):
        violations.append(Violation(name, value, f"{name} is not a finite number: {value}"))
        return True
    return False


def _non_negative(violations: list[Violation], name: str, value: float) -> None:
    if _non_finite(violations, name, value):
        return
    if value < 0:
        violations.append(Violation(name, value, f"{name} cannot be negative"))


def _in_range(
    violations: list[Violation],
    name: str,
    value: float,
    bounds: tuple[float, float],
    unit: str
) -> None:
    if _non_finite(violations, name, value):
        return
    low, high = bounds
    if value < low or value > high:
        violations.append(
            Violation(name, value, f"{name} out of reasonable range ({low:g}-{high:g}{unit}): {value}")
        )

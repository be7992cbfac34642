"""WinPower payload parser - turns loosely typed device records into DeviceRecord"""
import logging
import math
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Mapping

from sources.base import DeviceRecord, RawValue, RealtimeData
from sources.errors import ParseError
from sources.winpower_http import SUCCESS_CODE, DeviceListResponse

logger = logging.getLogger(__name__)


def to_float(key: str, value: RawValue) -> float:
    """Numeric strings, ints and floats; anything else degrades to 0.0."""
    if isinstance(value, bool):
        logger.warning(f"WinPower: Unexpected bool for numeric field {key}")
        return 0.0
    if isinstance(value, str) and value.strip() == "":
        return 0.0
    if isinstance(value, (int, float, str)):
        try:
            number = float(value)
        except (ValueError, OverflowError):
            logger.warning(f"WinPower: Cannot parse field {key}={value!r} as a number")
            return 0.0
        if not math.isfinite(number):
            logger.warning(f"WinPower: Non-finite value for field {key}: {value!r}")
            return 0.0
        return number
    if value is not None:
        logger.warning(f"WinPower: Unexpected {type(value).__name__} for numeric field {key}")
    return 0.0


def to_int(key: str, value: RawValue) -> int:
    """Like to_float, but integral: floats are truncated, strings must be whole numbers."""
    if isinstance(value, bool):
        logger.warning(f"WinPower: Unexpected bool for integer field {key}")
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        if value.strip() == "":
            return 0
        try:
            return int(value)
        except ValueError:
            logger.warning(f"WinPower: Cannot parse field {key}={value!r} as an integer")
            return 0
    if value is not None:
        logger.warning(f"WinPower: Unexpected {type(value).__name__} for integer field {key}")
    return 0


def to_bool(key: str, value: RawValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value == "1" or value.lower() == "true"
    if isinstance(value, (int, float)):
        return value != 0
    if value is not None:
        logger.warning(f"WinPower: Unexpected {type(value).__name__} for boolean field {key}")
    return False


def to_str(key: str, value: RawValue) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if value is not None:
        logger.warning(f"WinPower: Unexpected {type(value).__name__} for string field {key}")
    return ""


Coercer = Callable[[str, RawValue], Any]

# (RealtimeData attribute, vendor key, coercer)
REALTIME_FIELDS: tuple[tuple[str, str, Coercer], ...] = (
    ("load_total_watt", "loadTotalWatt", to_float),
    ("input_volt_1", "inputVolt1", to_float),
    ("output_volt_1", "outputVolt1", to_float),
    ("bat_volt_p", "batVoltP", to_float),
    ("output_current_1", "outputCurrent1", to_float),
    ("input_freq", "inputFreq", to_float),
    ("output_freq", "outputFreq", to_float),
    ("load_percent", "loadPercent", to_float),
    ("load_total_va", "loadTotalVa", to_float),
    ("load_watt_1", "loadWatt1", to_float),
    ("load_va_1", "loadVa1", to_float),
    ("bat_capacity", "batCapacity", to_float),
    ("bat_remain_time", "batRemainTime", to_int),
    ("is_charging", "isCharging", to_bool),
    ("ups_temperature", "upsTemperature", to_float),
    ("mode", "mode", to_str),
    ("status", "status", to_str),
    ("battery_status", "batteryStatus", to_str),
    ("test_status", "testStatus", to_str),
    ("fault_code", "faultCode", to_str),
)


def parse_realtime(raw: Mapping[str, RawValue] | None) -> RealtimeData:
    """Coerce a telemetry map into RealtimeData. Never raises."""
    if not isinstance(raw, Mapping):
        raw = {}

    values = {}
    for attribute, key, coerce in REALTIME_FIELDS:
        if key not in raw:
            logger.debug(f"WinPower: Field {key} not in realtime data")
        values[attribute] = coerce(key, raw.get(key))

    return RealtimeData(raw=MappingProxyType(raw), **values)


def parse_device(raw: Any, collected_at: datetime | None = None) -> DeviceRecord:
    """
    Parse one raw device record.

    Raises:
        ParseError: the record or its identity block is unusable
    """
    if not isinstance(raw, Mapping):
        raise ParseError(f"device record is {type(raw).__name__}, expected object", field="record")

    asset = raw.get("assetDevice")
    if not isinstance(asset, Mapping):
        raise ParseError("device record has no assetDevice block", field="assetDevice")

    device_id = to_str("id", asset.get("id"))
    if not device_id:
        raise ParseError("device id is missing", field="assetDevice.id")

    realtime = raw.get("realtime")
    if not realtime:
        logger.warning(f"WinPower: No realtime data for device {device_id}")

    return DeviceRecord(
        device_id=device_id,
        device_type=to_int("deviceType", asset.get("deviceType")),
        model=to_str("model", asset.get("model")),
        alias=to_str("alias", asset.get("alias")),
        connected=to_bool("connected", raw.get("connected")),
        realtime=parse_realtime(realtime),
        collected_at=collected_at or datetime.now(timezone.utc),
    )


def parse_response(response: DeviceListResponse) -> list[DeviceRecord]:
    """
    Parse every device of a device list response.

    Records that fail identity parsing are logged and skipped.

    Raises:
        ParseError: the response itself reports a non-success code
    """
    if response.code != SUCCESS_CODE:
        logger.warning(f"WinPower: Device list returned code {response.code}: {response.msg}")
        raise ParseError(f"API error: code={response.code}, msg={response.msg}", field="code")

    collected_at = datetime.now(timezone.utc)
    devices = []
    for index, raw in enumerate(response.data):
        try:
            devices.append(parse_device(raw, collected_at))
        except ParseError as e:
            logger.error(f"WinPower: Skipping device record {index}: {e}")

    logger.info(f"WinPower: Parsed {len(devices)} of {len(response.data)} device records (total: {response.total})")
    return devices

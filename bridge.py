import argparse
import asyncio
import logging
import sys
import time
from datetime import datetime, timezone

from dotenv import load_dotenv

# Load configuration from single .env file
load_dotenv("winpower-bridge.env")

from sources.base import DeviceRecord
from sources.config import WinPowerConfig
from sources.errors import ConfigError, WinPowerError
from sources.winpower import WinPowerSource
from sinks.energy import EnergyAccumulator

logger = logging.getLogger(__name__)

# Stale data timeout (seconds)
STALE_DATA_TIMEOUT = 60


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s - %(message)s',
        datefmt='%H:%M:%S'
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_source(energy: EnergyAccumulator | None = None) -> WinPowerSource:
    """Initialize the WinPower source with hard fail on misconfiguration"""
    try:
        config = WinPowerConfig.from_env()
        source = WinPowerSource(config, energy=energy)
    except ConfigError as e:
        logger.error(f"WinPower: {e} (check winpower-bridge.env)")
        sys.exit(1)
    logger.info(f"Using source: WinPower G2 at {config.url}")
    return source


def format_device(device: DeviceRecord) -> str:
    rt = device.realtime
    name = device.alias or device.model or device.device_id
    state = "online" if device.connected else "offline"
    return (
        f"{name} ({state}): {rt.load_total_watt:g} W, load {rt.load_percent:g}%, "
        f"in {rt.input_volt_1:g} V / out {rt.output_volt_1:g} V, "
        f"battery {rt.bat_capacity:g}% ({rt.bat_remain_time}s), {rt.ups_temperature:g} °C"
    )


async def collect_once(source: WinPowerSource) -> int:
    """Single collection for --once; returns the process exit code"""
    try:
        devices = await source.collect_device_data()
    except WinPowerError as e:
        logger.error(f"Collection failed: {e}")
        return 1

    for device in devices:
        print(format_device(device))
    return 0


async def main(once: bool = False) -> int:
    energy = EnergyAccumulator()
    source = get_source(energy=energy)

    try:
        if once:
            return await collect_once(source)

        async def staleness_monitor():
            """Warn when no collection has succeeded for a while"""
            started = time.time()
            stale_alert_sent = False
            while True:
                await asyncio.sleep(10)  # Check every 10 seconds

                last_success = source.last_collection_time()
                if last_success is None:
                    age = time.time() - started
                else:
                    age = (datetime.now(timezone.utc) - last_success).total_seconds()

                if age > STALE_DATA_TIMEOUT:
                    if not stale_alert_sent:
                        logger.warning(f"No device data collected for {STALE_DATA_TIMEOUT}s")
                        stale_alert_sent = True
                else:
                    stale_alert_sent = False

        async def poll_devices():
            """Collect on a fixed interval; a failed attempt is retried on the next tick"""
            while True:
                try:
                    devices = await source.collect_device_data()
                    for device in devices:
                        logger.info(f"{format_device(device)}, total {energy.get(device.device_id):g} Wh")
                except WinPowerError as e:
                    stats = source.statistics()
                    logger.error(f"Collection error: {e} ({stats.failures}/{stats.attempts} attempts failed)")
                await asyncio.sleep(source.config.poll_interval)

        # Run polling and staleness monitor in parallel
        async with asyncio.TaskGroup() as tg:
            tg.create_task(poll_devices())
            tg.create_task(staleness_monitor())
        return 0
    finally:
        await source.aclose()


if __name__ == "__main__":
    # Parse command line arguments
    parser = argparse.ArgumentParser(description="WinPower G2 Power Bridge")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Collect a single time, print the devices and exit"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )
    args = parser.parse_args()
    setup_logging(args.log_level)

    try:
        sys.exit(asyncio.run(main(once=args.once)))
    except KeyboardInterrupt:
        logger.info("Script stopped by user.")

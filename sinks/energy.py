"""Energy egress module - accumulates Wh per device from power samples"""
import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class EnergyAccumulator:
    """
    In-memory energy accumulator.

    Integrates power over the time between consecutive samples of the same
    device. Totals start at 0 Wh on the first sample and are lost on restart.
    """

    def __init__(self, clock=time.monotonic):
        """
        Args:
            clock: Seconds source (tests drive it manually)
        """
        self._clock = clock
        self._lock = asyncio.Lock()
        # device_id -> (timestamp of last sample, total Wh)
        self._totals: dict[str, tuple[float, float]] = {}

    async def calculate(self, device_id: str, power_watts: float) -> float:
        """
        Add a power sample and return the accumulated energy.

        Args:
            device_id: Device identifier
            power_watts: Current active power in Watts

        Returns:
            Total energy in Wh, rounded to 0.01 Wh
        """
        if not device_id:
            raise ValueError("device_id cannot be empty")

        async with self._lock:
            now = self._clock()
            previous = self._totals.get(device_id)

            if previous is None:
                total = 0.0
                logger.info(f"Energy: Started accumulating for device {device_id}")
            else:
                last_time, last_total = previous
                hours = (now - last_time) / 3600
                total = round(last_total + power_watts * hours, 2)

            self._totals[device_id] = (now, total)
            return total

    def get(self, device_id: str) -> float:
        """Accumulated energy in Wh, 0.0 for unknown devices."""
        entry = self._totals.get(device_id)
        return entry[1] if entry is not None else 0.0

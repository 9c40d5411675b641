"""
PiShield v1 - Detection Simulator
Fabricates demo alerts on a timer and pushes them to live dashboards.
There is no real detection here; every draw is random.
"""

import asyncio
import logging
import random
from typing import Any, Dict, Optional

from pishield.config import settings
from pishield.db import ALERTS, RowStoreError
from pishield.detectors.severity import pick_severity
from pishield.realtime.broadcast import BroadcastService
from pishield.realtime.events import announce_new_alert
from pishield.schemas import AlertOut, AlertStatus
from pishield.stats import StatAggregator

logger = logging.getLogger(__name__)

ATTACK_TYPES = (
    "SQL Injection Attempt",
    "Cross-Site Scripting (XSS)",
    "Port Scan",
    "Brute Force Attack",
    "DDoS Attempt",
    "Directory Traversal",
    "Command Injection",
    "Malware Communication",
    "Suspicious File Access",
)

SIMULATED_DETAILS = "Auto-generated alert by detection simulation"


def random_ip(rng: random.Random) -> str:
    """Uniform dotted quad; reserved ranges are not excluded."""
    return ".".join(str(rng.randint(0, 255)) for _ in range(4))


def synthesize_alert(rng: random.Random) -> Dict[str, Any]:
    """Build the row for one simulated alert."""
    return {
        "severity": pick_severity(rng),
        "type": rng.choice(ATTACK_TYPES),
        "source_ip": random_ip(rng),
        "dest_port": rng.randint(0, 65535),
        "status": AlertStatus.NEW.value,
        "details": SIMULATED_DETAILS,
    }


class DetectionSimulator:
    """
    Recurring timer that, with probability ``probability`` per tick, inserts
    a random alert and broadcasts it together with fresh dashboard stats.

    Ticks are independent: errors are logged and never stop the timer.
    """

    def __init__(
        self,
        store: Any,
        aggregator: StatAggregator,
        broadcaster: BroadcastService,
        probability: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self._store = store
        self._aggregator = aggregator
        self._broadcaster = broadcaster
        self._probability = settings.simulation_probability if probability is None else probability
        self._rng = rng or random.Random()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_seconds: Optional[float] = None) -> None:
        """Start ticking every ``interval_seconds``."""
        if self.running:
            return

        interval = interval_seconds or settings.simulation_interval_seconds
        logger.info(f"Starting detection simulation with interval of {interval} seconds")
        self._task = asyncio.create_task(self._run(interval))

    def stop(self) -> None:
        """Cancel the timer without waiting for an in-flight tick."""
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Detection simulation stopped")

    async def _run(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in detection simulation: {e}", exc_info=True)

    def should_generate(self) -> bool:
        return self._rng.random() < self._probability

    async def tick(self) -> Optional[AlertOut]:
        """One timer tick. Returns the alert if one was generated."""
        if not self.should_generate():
            return None
        return await self.generate_alert()

    async def generate_alert(self) -> Optional[AlertOut]:
        """
        Insert a random alert, then broadcast NEW_ALERT, STATS_UPDATE and
        NEW_ATTACK_SOURCE. Nothing is broadcast if the insert fails.
        """
        values = synthesize_alert(self._rng)
        logger.info(f"Generating random alert: {values}")

        try:
            row = await self._store.insert(ALERTS, values)
        except RowStoreError as e:
            logger.error(f"Error inserting simulated alert: {e}")
            return None

        alert = AlertOut.model_validate(row)
        logger.info(f"Alert inserted with ID: {alert.id}")

        await announce_new_alert(self._broadcaster, self._aggregator, alert)
        return alert

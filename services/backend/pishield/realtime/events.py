"""
PiShield v1 - Realtime Event Publishing
"""

import logging

from pishield.realtime.broadcast import BroadcastService
from pishield.schemas import AlertOut, AttackSource
from pishield.stats import StatAggregator, StatsError

logger = logging.getLogger(__name__)


async def announce_new_alert(
    broadcaster: BroadcastService,
    aggregator: StatAggregator,
    alert: AlertOut,
) -> None:
    """
    Push a freshly stored alert to live dashboards, in order:
    NEW_ALERT, STATS_UPDATE (skipped if the stats cannot be computed),
    NEW_ATTACK_SOURCE.
    """
    await broadcaster.broadcast_new_alert(alert)

    try:
        stats = await aggregator.compute_stats()
    except StatsError as e:
        logger.error(f"Error updating stats after new alert {alert.id}: {e}")
    else:
        await broadcaster.broadcast_stats_update(stats)

    await broadcaster.broadcast_new_attack_source(AttackSource.from_alert(alert))

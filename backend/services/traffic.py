"""
Simulated traffic: periodically grows distribution view counts.

Each tick, every distribution independently has a GROWTH_PROBABILITY chance of
gaining a uniform [MIN_INCREMENT, MAX_INCREMENT] views. The mutator never
decreases a count and never creates or deletes records.

TrafficSimulator runs the tick on a fixed interval as an asyncio task. A tick
that fails because storage is unavailable is logged and skipped; the loop
keeps running.
"""

import asyncio
import logging
import random
from typing import Optional

from services.distribution_ledger import load_distributions, save_distributions
from services.errors import StorageUnavailable
from services.store import KeyValueStore

logger = logging.getLogger(__name__)

GROWTH_PROBABILITY = 0.3
MIN_INCREMENT = 1
MAX_INCREMENT = 50


def simulate_traffic(store: KeyValueStore, rng: Optional[random.Random] = None) -> int:
    """
    Run one traffic tick.

    Returns:
        Number of distributions whose view_count grew
    """
    rng = rng or random.Random()

    with store.transaction():
        distributions = load_distributions(store)
        if not distributions:
            return 0

        grown = 0
        for i, dist in enumerate(distributions):
            if rng.random() < GROWTH_PROBABILITY:
                increment = rng.randint(MIN_INCREMENT, MAX_INCREMENT)
                distributions[i] = dist.model_copy(
                    update={"view_count": dist.view_count + increment}
                )
                grown += 1

        if grown:
            save_distributions(store, distributions)

    logger.debug(f"Traffic tick: {grown}/{len(distributions)} distributions grew")
    return grown


class TrafficSimulator:
    """Fire-and-forget background loop around simulate_traffic."""

    def __init__(
        self,
        store: KeyValueStore,
        interval_seconds: float,
        rng: Optional[random.Random] = None,
    ):
        self._store = store
        self._interval = interval_seconds
        self._rng = rng or random.Random()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        if self._interval <= 0:
            logger.info("Traffic simulator disabled (interval <= 0)")
            return
        logger.info(f"Starting traffic simulator (every {self._interval}s)")
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Traffic simulator stopped")

    def tick(self) -> int:
        """One guarded tick: storage failures skip the cycle instead of raising."""
        try:
            return simulate_traffic(self._store, self._rng)
        except StorageUnavailable as e:
            logger.warning(f"Traffic tick skipped, storage unavailable: {e}")
        except Exception:
            logger.exception("Traffic tick failed, skipping cycle")
        return 0

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.tick()

"""
Swap Event Watcher - live swap ingestion for the Pool Directory.

State machine:
    IDLE --start_watching()--> WATCHING --stop_watching()--> IDLE

On entering WATCHING the watcher subscribes the feed to exactly the
directory's current pool addresses. Decoded logs are queued and a single
consumer task turns each one into a SwapRecord and appends it to the store,
so event handling never blocks the feed or the refresh scheduler.

refresh() is called hourly by the owner. It tears the subscription down
unconditionally, refreshes the directory, re-subscribes against the new pool
set, and applies the raw retention policy to the store.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from eth_utils import to_checksum_address

from dex_signal.storage.swap_store import RAW_RETENTION, RetentionPolicy, SwapHistoryStore

from .models import PoolToken, SwapLog, SwapRecord
from .pool_directory import PoolDirectory
from .websocket import LogsCallback, SwapLogFeed

logger = logging.getLogger(__name__)


class WatcherState(str, Enum):
    IDLE = "idle"
    WATCHING = "watching"


@dataclass
class WatcherStats:
    """Counters for watcher activity."""
    events_received: int = 0
    events_dropped: int = 0
    swaps_recorded: int = 0
    missing_mapping: int = 0
    refreshes: int = 0


def record_from_log(
    log: SwapLog,
    pair: tuple[PoolToken, PoolToken],
    timestamp: Optional[datetime] = None,
) -> SwapRecord:
    """Normalize a decoded Swap log into a directional SwapRecord."""
    token0, token1 = pair
    return SwapRecord.from_legs(
        timestamp=timestamp or log.received_at,
        sender=to_checksum_address(log.sender),
        token0=PoolToken(to_checksum_address(token0.address), token0.symbol),
        token1=PoolToken(to_checksum_address(token1.address), token1.symbol),
        amount0=log.amount0,
        amount1=log.amount1,
        pool_id=log.pool_address.lower(),
    )


FeedFactory = Callable[[LogsCallback], SwapLogFeed]


class SwapEventWatcher:
    """
    Subscribes to swap logs for every pool in the directory.

    Usage:
        watcher = SwapEventWatcher(
            directory=directory,
            store=store,
            feed_factory=lambda on_logs: SwapLogFeed(url, on_logs=on_logs),
        )
        await watcher.start_watching()

        # hourly
        await watcher.refresh()

        await watcher.close()
    """

    def __init__(
        self,
        directory: PoolDirectory,
        store: SwapHistoryStore,
        feed_factory: FeedFactory,
        raw_retention: RetentionPolicy = RAW_RETENTION,
        queue_size: int = 10_000,
    ):
        self._directory = directory
        self._store = store
        self._raw_retention = raw_retention

        self._feed = feed_factory(self._enqueue)
        self._queue: asyncio.Queue[SwapLog] = asyncio.Queue(maxsize=queue_size)
        self._consumer_task: Optional[asyncio.Task] = None
        self._transition_lock = asyncio.Lock()

        self._state = WatcherState.IDLE
        self._stats = WatcherStats()

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def stats(self) -> WatcherStats:
        return self._stats

    @property
    def feed(self) -> SwapLogFeed:
        return self._feed

    async def start_watching(self) -> None:
        """Subscribe to the directory's current pool addresses."""
        async with self._transition_lock:
            await self._start_locked()

    async def stop_watching(self) -> None:
        """Tear down the subscription; queued events are still consumed."""
        async with self._transition_lock:
            await self._stop_locked()

    async def refresh(self) -> None:
        """Rebuild the subscription against a freshly refreshed pool set."""
        async with self._transition_lock:
            await self._stop_locked()
            await self._directory.refresh()
            await self._start_locked()
            self._stats.refreshes += 1

        await self._store.prune(self._raw_retention)

    async def close(self) -> None:
        """Stop watching and stop the consumer."""
        await self.stop_watching()
        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def _start_locked(self) -> None:
        if self._state == WatcherState.WATCHING:
            return

        if self._consumer_task is None or self._consumer_task.done():
            self._consumer_task = asyncio.create_task(
                self._consume_loop(), name="swap_event_consumer"
            )

        addresses = self._directory.addresses()
        logger.info(f"Listening to {len(addresses)} pool addresses")
        await self._feed.start()
        await self._feed.subscribe(addresses)
        self._state = WatcherState.WATCHING

    async def _stop_locked(self) -> None:
        if self._state == WatcherState.IDLE:
            return
        await self._feed.stop()
        self._state = WatcherState.IDLE

    async def _enqueue(self, logs: list[SwapLog]) -> None:
        for log in logs:
            self._stats.events_received += 1
            try:
                self._queue.put_nowait(log)
            except asyncio.QueueFull:
                self._stats.events_dropped += 1
                logger.warning("Swap event queue full, dropping event")
        logger.debug(f"Found {len(logs)} swaps")

    async def _consume_loop(self) -> None:
        while True:
            log = await self._queue.get()
            try:
                await self.handle_log(log)
            except Exception as e:
                logger.error(f"Error handling swap log: {e}")
            finally:
                self._queue.task_done()

    async def handle_log(self, log: SwapLog) -> Optional[SwapRecord]:
        """
        Resolve the pool's token pair and append the swap.

        Returns:
            The stored record, or None if the pool is unknown
        """
        pair = self._directory.token_pair(log.pool_address)
        if pair is None:
            self._stats.missing_mapping += 1
            logger.error(f"No token info found for pool {log.pool_address.lower()}")
            return None

        record = record_from_log(log, pair)
        await self._store.append(log.pool_address, record)
        self._stats.swaps_recorded += 1
        return record

"""
Signal Service - owns the pipeline components and the hourly refresh loop.

Lifecycle:
    1. Warm start: pool set and swap set are loaded from the cache
    2. Gap backfill: index swaps newer than the newest cached swap
    3. First refresh cycle: pool refresh + re-subscribe, summary
       recomputation
    4. Background loop: one refresh cycle per refresh interval

Ranking (rank_tokens) reads point-in-time snapshots of the universe and
the swap aggregates and never blocks the refresh loop.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from dex_signal.config import SignalConfig
from dex_signal.ingestion.backfill import SwapBackfiller
from dex_signal.ingestion.client import SubgraphClient, SubgraphError
from dex_signal.ingestion.market_depth import MarketDepth, MarketDepthClient
from dex_signal.ingestion.models import TokenSnapshot
from dex_signal.ingestion.pool_directory import PoolDirectory
from dex_signal.ingestion.universe_fetcher import TokenUniverseFetcher
from dex_signal.ingestion.watcher import FeedFactory, SwapEventWatcher
from dex_signal.ingestion.websocket import LogsCallback, SwapLogFeed
from dex_signal.storage.cache import CacheStore, FileCacheStore
from dex_signal.storage.swap_store import RetentionPolicy, SwapHistoryStore

from .aggregator import GoodTraderList, SwapAggregator
from .scoring import (
    EnhancedScoreDetails,
    RiskLevel,
    build_ranges,
    enhanced_score,
    risk_for_size,
)

logger = logging.getLogger(__name__)

IGNORED_NAME_MARKERS = ("USD", "BTC", "ETH", "Stable", "DAI")
LOOP_ERROR_BACKOFF_SECONDS = 60.0


class ServiceState(str, Enum):
    """Service lifecycle state."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAILED = "failed"


@dataclass
class RankedToken:
    """A scored token with its risk bucket."""
    token: TokenSnapshot
    risk: RiskLevel
    details: EnhancedScoreDetails

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.token.to_dict(),
            "risk": self.risk.value,
            "finalScore": self.details.final_score,
            "riskAdjusted": round(self.details.risk_adjusted, 4),
            "smartMoneyMomentum": round(self.details.smart_money_momentum, 4),
            "explanation": self.details.base.explanation,
        }


def is_ignored_name(name: str) -> bool:
    lowered = name.lower()
    return any(marker.lower() in lowered for marker in IGNORED_NAME_MARKERS)


class SignalService:
    """
    Supervises ingestion and exposes ranking.

    Usage:
        service = SignalService(SignalConfig.from_env())
        await service.start()
        ranked = await service.rank_tokens(risk=RiskLevel.LOW)
        await service.stop()
    """

    def __init__(
        self,
        config: Optional[SignalConfig] = None,
        cache: Optional[CacheStore] = None,
        client: Optional[SubgraphClient] = None,
        market_depth: Optional[MarketDepthClient] = None,
        feed_factory: Optional[FeedFactory] = None,
        allow_list: Optional[GoodTraderList] = None,
    ) -> None:
        self._config = config or SignalConfig()
        cfg = self._config

        self._cache = cache or FileCacheStore(cfg.cache_dir)
        self._client = client or SubgraphClient(
            cfg.subgraph_url,
            rate_limit=cfg.rate_limit,
            timeout=cfg.request_timeout,
            max_retries=cfg.max_retries,
        )
        self._market_depth = market_depth or MarketDepthClient(
            base_url=cfg.market_depth_url,
            cache_ttl=cfg.market_depth_cache_ttl,
        )
        self._depth_semaphore = asyncio.Semaphore(cfg.market_depth_concurrency)

        if allow_list is None:
            allow_list = (
                GoodTraderList.from_file(cfg.good_traders_path)
                if cfg.good_traders_path else GoodTraderList()
            )

        self._store = SwapHistoryStore()
        self._universe = TokenUniverseFetcher(
            self._client,
            self._cache,
            page_size=cfg.universe_page_size,
            max_pages=cfg.universe_max_pages,
            min_volume_usd=cfg.min_token_volume_usd,
        )
        self._directory = PoolDirectory(
            self._client,
            self._cache,
            page_size=cfg.pool_page_size,
            max_pages=cfg.pool_max_pages,
            min_volume_usd=cfg.min_pool_volume_usd,
        )
        self._backfiller = SwapBackfiller(
            self._client,
            self._store,
            page_size=cfg.swap_page_size,
            max_pages=cfg.swap_max_pages,
        )
        self._aggregator = SwapAggregator(
            self._store,
            allow_list,
            cache=self._cache,
            recent_retention=RetentionPolicy("recent", cfg.recent_retention_seconds),
            good_trader_window_seconds=cfg.good_trader_feed_window_seconds,
        )
        self._watcher = SwapEventWatcher(
            self._directory,
            self._store,
            feed_factory or self._default_feed,
            raw_retention=RetentionPolicy("raw", cfg.raw_retention_seconds),
        )

        self._state = ServiceState.STOPPED
        self._loop_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._last_refresh: Optional[datetime] = None

    def _default_feed(self, on_logs: LogsCallback) -> SwapLogFeed:
        return SwapLogFeed(
            self._config.rpc_ws_url,
            on_logs=on_logs,
            heartbeat_timeout=self._config.heartbeat_timeout,
            max_reconnect_delay=self._config.max_reconnect_delay,
        )

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ServiceState.RUNNING

    @property
    def store(self) -> SwapHistoryStore:
        return self._store

    @property
    def directory(self) -> PoolDirectory:
        return self._directory

    @property
    def watcher(self) -> SwapEventWatcher:
        return self._watcher

    @property
    def aggregator(self) -> SwapAggregator:
        return self._aggregator

    @property
    def last_refresh(self) -> Optional[datetime]:
        return self._last_refresh

    async def warm_start(self) -> None:
        """Load the cached pool set and swap set."""
        pools = self._directory.load_from_cache()
        swaps = await self._store.load(self._cache)
        logger.info(f"Warm start: {pools} pools, {swaps} swaps from cache")

    async def backfill_gap(self) -> int:
        """
        Backfill swaps from the index that the warm-started store lacks.

        Runs once, before the first subscription; refresh cycles never
        backfill.
        """
        latest = await self._store.latest_timestamp()
        try:
            return await self._backfiller.backfill(
                self._config.backfill_window_seconds, not_before=latest
            )
        except SubgraphError as e:
            logger.error(f"Swap backfill failed: {e}")
            return 0

    async def start(self) -> None:
        """Warm from cache, backfill the gap, run the first refresh, launch the loop."""
        if self._state != ServiceState.STOPPED:
            logger.warning(f"Cannot start: already in state {self._state.value}")
            return

        logger.info("Starting signal service...")
        self._state = ServiceState.STARTING
        self._stop_event.clear()

        try:
            await self.warm_start()
            await self.backfill_gap()
            await self.refresh_cycle()
        except Exception as e:
            logger.error(f"Failed to start signal service: {e}")
            self._state = ServiceState.FAILED
            await self._cleanup()
            raise

        self._loop_task = asyncio.create_task(self._refresh_loop(), name="signal_refresh")
        self._state = ServiceState.RUNNING
        logger.info(
            f"Signal service started "
            f"(refresh interval={self._config.refresh_interval_seconds}s)"
        )

    async def stop(self) -> None:
        if self._state in (ServiceState.STOPPED, ServiceState.STOPPING):
            return

        logger.info("Stopping signal service...")
        self._state = ServiceState.STOPPING
        self._stop_event.set()

        await self._cleanup()

        self._state = ServiceState.STOPPED
        logger.info("Signal service stopped")

    async def _cleanup(self) -> None:
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        try:
            await self._watcher.close()
        except Exception as e:
            logger.warning(f"Error closing watcher: {e}")

        await self._store.save(self._cache)
        await self.close()

    async def close(self) -> None:
        """Close HTTP sessions."""
        for name, closeable in (
            ("subgraph client", self._client),
            ("market depth client", self._market_depth),
        ):
            try:
                await closeable.close()
            except Exception as e:
                logger.warning(f"Error closing {name}: {e}")

    async def refresh_cycle(self) -> None:
        """
        One scheduled refresh: rebuild the pool set and subscription, apply
        raw retention, recompute summaries.
        """
        await self._watcher.refresh()
        await self._aggregator.recompute_summaries()
        self._aggregator.log_summaries()
        self._last_refresh = datetime.now(timezone.utc)

    async def _refresh_loop(self) -> None:
        interval = self._config.refresh_interval_seconds

        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                logger.info("Running scheduled refresh")
                await self.refresh_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in refresh loop: {e}")
                await asyncio.sleep(LOOP_ERROR_BACKOFF_SECONDS)

    async def run_forever(self) -> None:
        """Run until stop() is called."""
        await self.start()
        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    def request_stop(self) -> None:
        self._stop_event.set()

    # =========================================================================
    # Ranking
    # =========================================================================

    async def _fetch_depth(self, token: TokenSnapshot) -> Optional[MarketDepth]:
        async with self._depth_semaphore:
            return await self._market_depth.fetch(token.contract_address)

    async def rank_tokens(
        self,
        risk: Optional[RiskLevel] = None,
        weights: Optional[Mapping[str, float]] = None,
        limit: int = 10,
    ) -> list[RankedToken]:
        """
        Score the current universe and return the best tokens.

        Ranges are built over the whole universe. Tokens are then filtered
        to the requested risk bucket and away from stable/wrapped-asset
        names, enriched with market-depth data, and sorted by the
        risk-adjusted score.
        """
        tokens = await self._universe.fetch_current_universe()
        infos = await self._aggregator.token_info()
        activity = await self._aggregator.good_trader_activity()
        now = datetime.now(timezone.utc)
        window = self._config.good_trader_score_window_seconds

        ranges = build_ranges(tokens, infos, activity, now=now, window_seconds=window)

        candidates = [
            t for t in tokens
            if (risk is None or risk_for_size(t.size) == risk)
            and not is_ignored_name(t.name)
        ]
        depths = await asyncio.gather(*(self._fetch_depth(t) for t in candidates))

        ranked = [
            RankedToken(
                token=token,
                risk=risk_for_size(token.size),
                details=enhanced_score(
                    token, infos, activity, ranges,
                    dex_data=depth, weights=weights, now=now, window_seconds=window,
                ),
            )
            for token, depth in zip(candidates, depths)
        ]
        ranked.sort(key=lambda r: r.details.risk_adjusted, reverse=True)

        logger.info(
            f"Ranked {len(ranked)} of {len(tokens)} tokens"
            + (f" for risk {risk.value}" if risk else "")
        )
        return ranked[:limit]

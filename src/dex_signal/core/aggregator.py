"""
Swap History Aggregator.

Pure folds over a snapshot of retained swap records:
    - token_info: buy/sell counts and net signed amount per contract address
    - good_trader_activity: allow-listed traders' legs in a trailing window
    - fold_summaries: per-token running totals (sold, bought, count, net)

SwapAggregator binds those folds to the shared store and the allow-list,
and owns summary recomputation (which applies the recent retention policy
and persists the swap set).
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional

from eth_utils import is_address, to_checksum_address

from dex_signal.ingestion.models import (
    GoodTraderSwap,
    SwapRecord,
    TokenInfo,
    TokenSwapSummary,
    TradeAction,
)
from dex_signal.storage.cache import CacheStore
from dex_signal.storage.swap_store import RECENT_RETENTION, RetentionPolicy, SwapHistoryStore

logger = logging.getLogger(__name__)


class GoodTraderList:
    """Allow-list of trader addresses, compared in checksum form."""

    def __init__(self, addresses: Iterable[str] = ()):
        self._addresses = frozenset(to_checksum_address(a) for a in addresses)

    def __contains__(self, address: str) -> bool:
        try:
            return to_checksum_address(address) in self._addresses
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._addresses)

    @classmethod
    def from_file(cls, path: str | Path) -> "GoodTraderList":
        """
        Load from a JSON file holding either a list of address strings or
        a list of objects with an "address" field.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        addresses = []
        for entry in data:
            address = entry.get("address") if isinstance(entry, dict) else entry
            if isinstance(address, str) and is_address(address):
                addresses.append(address)
            else:
                logger.warning(f"Skipping invalid good-trader entry: {entry!r}")

        logger.info(f"Loaded {len(addresses)} good-trader addresses from {path}")
        return cls(addresses)


def token_info(records: Iterable[SwapRecord]) -> list[TokenInfo]:
    """Fold records into buy/sell counts and net amounts per token."""
    infos: dict[str, TokenInfo] = {}

    for record in records:
        sold = infos.setdefault(record.sold.address, TokenInfo(record.sold.address))
        sold.sold += 1
        sold.amount -= record.sold.amount

        bought = infos.setdefault(record.bought.address, TokenInfo(record.bought.address))
        bought.buys += 1
        bought.amount += record.bought.amount

    return list(infos.values())


def good_trader_activity(
    records: Iterable[SwapRecord],
    allow_list: GoodTraderList,
    window_seconds: float = 3600.0,
    now: Optional[datetime] = None,
) -> list[GoodTraderSwap]:
    """
    Allow-listed traders' swaps within the trailing window, newest first.

    Each matching swap yields a SELL entry for the sold leg and a BUY entry
    for the bought leg.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=window_seconds)
    activity: list[GoodTraderSwap] = []

    for record in records:
        if record.timestamp < cutoff:
            continue
        if record.sender not in allow_list:
            continue

        activity.append(GoodTraderSwap(
            trader=record.sender,
            timestamp=record.timestamp,
            action=TradeAction.SELL,
            token=record.sold,
        ))
        activity.append(GoodTraderSwap(
            trader=record.sender,
            timestamp=record.timestamp,
            action=TradeAction.BUY,
            token=record.bought,
        ))

    activity.sort(key=lambda a: a.timestamp, reverse=True)
    return activity


def fold_summaries(records: Iterable[SwapRecord]) -> dict[str, TokenSwapSummary]:
    """Per-token totals; net_amount is always total_bought - total_sold."""
    summaries: dict[str, TokenSwapSummary] = {}

    for record in records:
        sold = summaries.setdefault(
            record.sold.address,
            TokenSwapSummary(symbol=record.sold.symbol, address=record.sold.address),
        )
        sold.total_sold += record.sold.amount
        sold.net_amount -= record.sold.amount
        sold.swap_count += 1

        bought = summaries.setdefault(
            record.bought.address,
            TokenSwapSummary(symbol=record.bought.symbol, address=record.bought.address),
        )
        bought.total_bought += record.bought.amount
        bought.net_amount += record.bought.amount
        bought.swap_count += 1

    return summaries


class SwapAggregator:
    """
    Store-bound aggregation queries.

    Usage:
        aggregator = SwapAggregator(store, GoodTraderList.from_file(path), cache)
        infos = await aggregator.token_info()
        activity = await aggregator.good_trader_activity()
        summaries = await aggregator.recompute_summaries()
    """

    def __init__(
        self,
        store: SwapHistoryStore,
        allow_list: GoodTraderList,
        cache: Optional[CacheStore] = None,
        recent_retention: RetentionPolicy = RECENT_RETENTION,
        good_trader_window_seconds: float = 3600.0,
    ):
        self._store = store
        self._allow_list = allow_list
        self._cache = cache
        self._recent_retention = recent_retention
        self._good_trader_window = good_trader_window_seconds
        self._summaries: dict[str, TokenSwapSummary] = {}

    @property
    def allow_list(self) -> GoodTraderList:
        return self._allow_list

    async def token_info(self) -> list[TokenInfo]:
        return token_info(await self._store.snapshot())

    async def good_trader_activity(self, now: Optional[datetime] = None) -> list[GoodTraderSwap]:
        return good_trader_activity(
            await self._store.snapshot(),
            self._allow_list,
            window_seconds=self._good_trader_window,
            now=now,
        )

    def token_summaries(self) -> list[TokenSwapSummary]:
        """Summaries from the last recomputation."""
        return list(self._summaries.values())

    async def recompute_summaries(self, now: Optional[datetime] = None) -> list[TokenSwapSummary]:
        """
        Prune to the recent window, refold summaries, persist the swap set.
        """
        await self._store.prune(self._recent_retention, now=now)
        self._summaries = fold_summaries(await self._store.snapshot())

        if self._cache is not None:
            await self._store.save(self._cache)

        return self.token_summaries()

    def log_summaries(self) -> None:
        lines = ["=== Token Swap Summaries ==="]
        for summary in self._summaries.values():
            lines.append(
                f"{summary.symbol} ({summary.address[:6]}...): "
                f"bought={summary.total_bought} sold={summary.total_sold} "
                f"net={summary.net_amount} ({summary.net_direction}) "
                f"swaps={summary.swap_count}"
            )
        logger.info("\n".join(lines))

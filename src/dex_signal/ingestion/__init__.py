"""
Ingestion Layer - External data sources and live swap events.

This module provides:
    - SubgraphClient: GraphQL client for the analytics index (hourly token
      stats, pool listings, swap events)
    - TokenUniverseFetcher: hour-bucketed universe snapshots with fallback
    - PoolDirectory: paged pool set with a pool -> token pair index
    - SwapLogFeed: reconnecting JSON-RPC websocket for pool Swap logs
    - SwapEventWatcher: subscription lifecycle and swap normalization
    - SwapBackfiller / RecentSwapsFetcher: swap history from the index
    - MarketDepthClient: per-token pair data for the enhanced score

Only the leaf modules are re-exported here; components that depend on the
storage layer are imported from their own modules.

Usage:
    from dex_signal.ingestion.pool_directory import PoolDirectory
    from dex_signal.ingestion.watcher import SwapEventWatcher
    from dex_signal.ingestion import SubgraphClient, SwapLogFeed

    async with SubgraphClient(url) as client:
        directory = PoolDirectory(client, cache)
        await directory.refresh()
"""

# Models
from .models import (
    GoodTraderSwap,
    Pool,
    PoolToken,
    SwapLog,
    SwapRecord,
    TokenInfo,
    TokenLeg,
    TokenSize,
    TokenSnapshot,
    TokenSwapSummary,
    TradeAction,
)

# Analytics index client
from .client import (
    NoDataError,
    RateLimitError,
    SubgraphClient,
    SubgraphError,
)

# Live feed
from .websocket import (
    SWAP_TOPIC,
    FeedState,
    SwapLogFeed,
    decode_swap_log,
)

# Market depth
from .market_depth import (
    DexPair,
    MarketDepth,
    MarketDepthClient,
    PairInfo,
    WindowTxns,
)

__all__ = [
    # Models
    "GoodTraderSwap",
    "Pool",
    "PoolToken",
    "SwapLog",
    "SwapRecord",
    "TokenInfo",
    "TokenLeg",
    "TokenSize",
    "TokenSnapshot",
    "TokenSwapSummary",
    "TradeAction",
    # Client
    "NoDataError",
    "RateLimitError",
    "SubgraphClient",
    "SubgraphError",
    # Feed
    "SWAP_TOPIC",
    "FeedState",
    "SwapLogFeed",
    "decode_swap_log",
    # Market depth
    "DexPair",
    "MarketDepth",
    "MarketDepthClient",
    "PairInfo",
    "WindowTxns",
]

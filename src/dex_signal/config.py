"""
Configuration for the signal pipeline.

All settings have sensible defaults and can be overridden from the
environment via SignalConfig.from_env().

Environment Variables:
    THE_GRAPH_API_KEY         API key for the analytics subgraph gateway
    SUBGRAPH_ID               Subgraph deployment id
    SUBGRAPH_URL              Full subgraph URL (overrides key + id)
    RPC_WS_URL                JSON-RPC websocket endpoint for live swap logs
    MARKET_DEPTH_URL          Base URL for the market-depth provider
    CACHE_DIR                 Directory for the file cache (default: ./cache)
    GOOD_TRADERS_PATH         JSON file with the good-trader allow-list
    REFRESH_INTERVAL_SECONDS  Pool/subscription refresh cadence (default: 3600)
    RAW_RETENTION_SECONDS     Swap retention applied on refresh (default: 86400)
    RECENT_RETENTION_SECONDS  Swap retention applied on summary recompute (default: 3600)
    LOG_LEVEL                 Logging level (DEBUG/INFO/WARNING/ERROR)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_SUBGRAPH_ID = "GqzP4Xaehti8KSfQmv3ZctFSjnSUYZ4En5NRsiTbvZpz"
GRAPH_GATEWAY = "https://gateway.thegraph.com/api/{api_key}/subgraphs/id/{subgraph_id}"


def build_subgraph_url(api_key: str, subgraph_id: str = DEFAULT_SUBGRAPH_ID) -> str:
    """Build the gateway URL for a subgraph deployment."""
    return GRAPH_GATEWAY.format(api_key=api_key, subgraph_id=subgraph_id)


@dataclass
class SignalConfig:
    """Complete pipeline configuration."""

    # Upstream analytics index
    subgraph_url: str = ""
    request_timeout: float = 30.0
    max_retries: int = 3
    rate_limit: float = 5.0  # requests per second

    # Token universe
    universe_page_size: int = 100
    universe_max_pages: int = 3
    min_token_volume_usd: float = 100.0

    # Pool directory
    pool_page_size: int = 1000
    pool_max_pages: int = 11
    min_pool_volume_usd: float = 1000.0

    # Swap backfill
    swap_page_size: int = 1000
    swap_max_pages: int = 11
    backfill_window_seconds: int = 1800

    # Live feed
    rpc_ws_url: str = "wss://base-rpc.publicnode.com"
    heartbeat_timeout: float = 120.0
    max_reconnect_delay: float = 60.0

    # Market depth provider
    market_depth_url: str = "https://api.dexscreener.com/latest/dex/tokens"
    market_depth_concurrency: int = 5
    market_depth_cache_ttl: float = 300.0

    # Retention and windows
    refresh_interval_seconds: float = 3600.0
    raw_retention_seconds: float = 86400.0
    recent_retention_seconds: float = 3600.0
    good_trader_feed_window_seconds: float = 3600.0
    good_trader_score_window_seconds: float = 1800.0

    # Storage
    cache_dir: str = "cache"
    good_traders_path: Optional[str] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "SignalConfig":
        """Load configuration from environment variables."""
        subgraph_url = os.environ.get("SUBGRAPH_URL", "")
        if not subgraph_url:
            subgraph_url = build_subgraph_url(
                os.environ.get("THE_GRAPH_API_KEY", ""),
                os.environ.get("SUBGRAPH_ID", DEFAULT_SUBGRAPH_ID),
            )

        return cls(
            subgraph_url=subgraph_url,
            request_timeout=float(os.environ.get("REQUEST_TIMEOUT", "30")),
            max_retries=int(os.environ.get("MAX_RETRIES", "3")),
            rate_limit=float(os.environ.get("SUBGRAPH_RATE_LIMIT", "5")),
            universe_page_size=int(os.environ.get("UNIVERSE_PAGE_SIZE", "100")),
            universe_max_pages=int(os.environ.get("UNIVERSE_MAX_PAGES", "3")),
            min_token_volume_usd=float(os.environ.get("MIN_TOKEN_VOLUME_USD", "100")),
            pool_page_size=int(os.environ.get("POOL_PAGE_SIZE", "1000")),
            pool_max_pages=int(os.environ.get("POOL_MAX_PAGES", "11")),
            min_pool_volume_usd=float(os.environ.get("MIN_POOL_VOLUME_USD", "1000")),
            swap_page_size=int(os.environ.get("SWAP_PAGE_SIZE", "1000")),
            swap_max_pages=int(os.environ.get("SWAP_MAX_PAGES", "11")),
            backfill_window_seconds=int(os.environ.get("BACKFILL_WINDOW_SECONDS", "1800")),
            rpc_ws_url=os.environ.get("RPC_WS_URL", "wss://base-rpc.publicnode.com"),
            heartbeat_timeout=float(os.environ.get("HEARTBEAT_TIMEOUT", "120")),
            max_reconnect_delay=float(os.environ.get("MAX_RECONNECT_DELAY", "60")),
            market_depth_url=os.environ.get(
                "MARKET_DEPTH_URL", "https://api.dexscreener.com/latest/dex/tokens"
            ),
            market_depth_concurrency=int(os.environ.get("MARKET_DEPTH_CONCURRENCY", "5")),
            market_depth_cache_ttl=float(os.environ.get("MARKET_DEPTH_CACHE_TTL", "300")),
            refresh_interval_seconds=float(os.environ.get("REFRESH_INTERVAL_SECONDS", "3600")),
            raw_retention_seconds=float(os.environ.get("RAW_RETENTION_SECONDS", "86400")),
            recent_retention_seconds=float(os.environ.get("RECENT_RETENTION_SECONDS", "3600")),
            good_trader_feed_window_seconds=float(
                os.environ.get("GOOD_TRADER_FEED_WINDOW_SECONDS", "3600")
            ),
            good_trader_score_window_seconds=float(
                os.environ.get("GOOD_TRADER_SCORE_WINDOW_SECONDS", "1800")
            ),
            cache_dir=os.environ.get("CACHE_DIR", "cache"),
            good_traders_path=os.environ.get("GOOD_TRADERS_PATH"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )

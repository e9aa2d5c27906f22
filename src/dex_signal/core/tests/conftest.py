"""
Test fixtures for core layer.

IMPORTANT: All external calls must be mocked.
The service fixtures never open a socket or an HTTP session.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_utils import to_checksum_address

from dex_signal.ingestion.client import SubgraphClient
from dex_signal.ingestion.market_depth import MarketDepthClient
from dex_signal.ingestion.models import (
    GoodTraderSwap,
    PoolToken,
    SwapRecord,
    TokenLeg,
    TokenSize,
    TokenSnapshot,
    TradeAction,
)
from dex_signal.ingestion.websocket import SwapLogFeed
from dex_signal.storage.cache import MemoryCacheStore
from dex_signal.storage.swap_store import SwapHistoryStore

TOKEN_A = to_checksum_address("0x" + "a1" * 20)
TOKEN_B = to_checksum_address("0x" + "b2" * 20)
TOKEN_C = to_checksum_address("0x" + "c3" * 20)
POOL_1 = to_checksum_address("0x" + "d4" * 20)
GOOD_TRADER = to_checksum_address("0x" + "e5" * 20)
OTHER_TRADER = to_checksum_address("0x" + "f6" * 20)


# =============================================================================
# Time Fixtures
# =============================================================================


@pytest.fixture
def now():
    return datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Address Fixtures
# =============================================================================


@pytest.fixture
def addresses():
    return {
        "token_a": TOKEN_A,
        "token_b": TOKEN_B,
        "token_c": TOKEN_C,
        "pool_1": POOL_1,
        "good_trader": GOOD_TRADER,
        "other_trader": OTHER_TRADER,
    }


# =============================================================================
# Model Builders
# =============================================================================


@pytest.fixture
def make_token():
    """Factory for token snapshots."""

    def _build(address, name="Token", symbol="TKN", tvl=1000.0, volume=100.0, size=TokenSize.MEDIUM):
        return TokenSnapshot(
            contract_address=address,
            name=name,
            symbol=symbol,
            price_usd=1.0,
            total_value_locked_usd=tvl,
            volume_usd=volume,
            period_start_unix=1_704_110_400,
            size=size,
        )

    return _build


@pytest.fixture
def make_swap(now):
    """Factory for a swap selling `sold` for `bought`."""

    def _build(sold=TOKEN_A, bought=TOKEN_B, sold_amount=50, bought_amount=120,
               sender=GOOD_TRADER, age_minutes=1):
        return SwapRecord.from_legs(
            now - timedelta(minutes=age_minutes),
            sender,
            PoolToken(sold, "S"),
            PoolToken(bought, "B"),
            -sold_amount,
            bought_amount,
            pool_id=POOL_1.lower(),
        )

    return _build


@pytest.fixture
def make_activity(now):
    """Factory for a good-trader activity entry."""

    def _build(token, action=TradeAction.BUY, age_minutes=1, trader=GOOD_TRADER):
        return GoodTraderSwap(
            trader=trader,
            timestamp=now - timedelta(minutes=age_minutes),
            action=action,
            token=TokenLeg(token, "T", 1),
        )

    return _build


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def cache():
    return MemoryCacheStore()


@pytest.fixture
def store():
    return SwapHistoryStore()


@pytest.fixture
def mock_client():
    client = MagicMock(spec=SubgraphClient)
    client.get_token_hour_datas = AsyncMock(return_value=[])
    client.get_pools = AsyncMock(return_value=[])
    client.get_swaps = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client


@pytest.fixture
def mock_market_depth():
    depth = MagicMock(spec=MarketDepthClient)
    depth.fetch = AsyncMock(return_value=None)
    depth.close = AsyncMock()
    return depth


@pytest.fixture
def mock_feed():
    feed = MagicMock(spec=SwapLogFeed)
    feed.start = AsyncMock()
    feed.stop = AsyncMock()
    feed.subscribe = AsyncMock()
    return feed

"""
Test fixtures for ingestion layer.

IMPORTANT: All external calls must be mocked.
Never hit the real analytics index, RPC node or market-depth provider in tests.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import encode
from eth_utils import encode_hex, to_checksum_address

from dex_signal.ingestion.client import SubgraphClient
from dex_signal.ingestion.websocket import SWAP_DATA_TYPES, SWAP_TOPIC
from dex_signal.storage.cache import MemoryCacheStore
from dex_signal.storage.swap_store import SwapHistoryStore

TOKEN_A = to_checksum_address("0x" + "a1" * 20)
TOKEN_B = to_checksum_address("0x" + "b2" * 20)
POOL_1 = to_checksum_address("0x" + "c3" * 20)
POOL_2 = to_checksum_address("0x" + "d4" * 20)
TRADER = to_checksum_address("0x" + "e5" * 20)
RECIPIENT = to_checksum_address("0x" + "f6" * 20)


# =============================================================================
# Time Fixtures
# =============================================================================


@pytest.fixture
def now():
    """Current time in UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# Address Fixtures
# =============================================================================


@pytest.fixture
def addresses():
    """Well-formed checksummed addresses used across tests."""
    return {
        "token_a": TOKEN_A,
        "token_b": TOKEN_B,
        "pool_1": POOL_1,
        "pool_2": POOL_2,
        "trader": TRADER,
        "recipient": RECIPIENT,
    }


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def cache():
    """In-memory cache store."""
    return MemoryCacheStore()


@pytest.fixture
def unwritable_cache():
    """Cache store whose writes fail like a read-only or full disk."""

    class UnwritableCacheStore(MemoryCacheStore):
        def set(self, key, value):
            raise PermissionError(13, "Permission denied")

    return UnwritableCacheStore()


@pytest.fixture
def store():
    """Empty swap history store."""
    return SwapHistoryStore()


# =============================================================================
# Client Fixtures
# =============================================================================


@pytest.fixture
def mock_client():
    """Subgraph client with every row-set method mocked."""
    client = MagicMock(spec=SubgraphClient)
    client.get_token_hour_datas = AsyncMock(return_value=[])
    client.get_pools = AsyncMock(return_value=[])
    client.get_swaps = AsyncMock(return_value=[])
    return client


# =============================================================================
# Row Builders
# =============================================================================


@pytest.fixture
def token_row():
    """Factory for tokenHourDatas rows."""

    def _build(address, name, symbol, tvl, volume, period=1_700_000_000, created=None):
        pools = [{"createdAtTimestamp": str(c), "id": f"0xpool{i}"} for i, c in enumerate(created or [])]
        return {
            "priceUSD": "1.5",
            "totalValueLockedUSD": str(tvl),
            "volumeUSD": str(volume),
            "periodStartUnix": period,
            "totalValueLocked": "1000",
            "token": {
                "id": address,
                "name": name,
                "symbol": symbol,
                "totalValueLocked": "5000",
                "txCount": "42",
                "whitelistPools": pools,
            },
        }

    return _build


@pytest.fixture
def pool_row():
    """Factory for pools rows."""

    def _build(pool_id, token0=TOKEN_A, symbol0="AAA", token1=TOKEN_B, symbol1="BBB", liquidity="123456789"):
        return {
            "id": pool_id.lower(),
            "liquidity": liquidity,
            "token0": {"id": token0.lower(), "symbol": symbol0},
            "token1": {"id": token1.lower(), "symbol": symbol1},
        }

    return _build


@pytest.fixture
def raw_swap_log():
    """Factory for raw eth_subscription Swap logs, ABI-encoded."""

    def _build(
        pool=POOL_1,
        amount0=-50,
        amount1=120,
        sender=TRADER,
        recipient=RECIPIENT,
        sqrt_price_x96=2 ** 96,
        liquidity=10 ** 18,
        tick=-100,
        removed=False,
    ):
        data = encode(SWAP_DATA_TYPES, [amount0, amount1, sqrt_price_x96, liquidity, tick])
        return {
            "address": pool.lower(),
            "topics": [
                SWAP_TOPIC,
                "0x" + "00" * 12 + sender[2:].lower(),
                "0x" + "00" * 12 + recipient[2:].lower(),
            ],
            "data": encode_hex(data),
            "blockNumber": "0x10",
            "transactionHash": "0x" + "ab" * 32,
            "removed": removed,
        }

    return _build

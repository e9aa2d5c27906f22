"""
Test fixtures for storage layer.
"""

from datetime import datetime, timedelta, timezone

import pytest
from eth_utils import to_checksum_address

from dex_signal.ingestion.models import PoolToken, SwapRecord
from dex_signal.storage.cache import FileCacheStore, MemoryCacheStore
from dex_signal.storage.swap_store import SwapHistoryStore

TOKEN_A = PoolToken(to_checksum_address("0x" + "a1" * 20), "AAA")
TOKEN_B = PoolToken(to_checksum_address("0x" + "b2" * 20), "BBB")
POOL_1 = to_checksum_address("0x" + "c3" * 20)
POOL_2 = to_checksum_address("0x" + "d4" * 20)
TRADER = to_checksum_address("0x" + "e5" * 20)


# =============================================================================
# Time Fixtures
# =============================================================================


@pytest.fixture
def now():
    return datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def memory_cache():
    return MemoryCacheStore()


@pytest.fixture
def file_cache(tmp_path):
    return FileCacheStore(tmp_path / "cache")


@pytest.fixture
def store():
    return SwapHistoryStore()


# =============================================================================
# Record Builders
# =============================================================================


@pytest.fixture
def make_swap(now):
    """Factory for swap records aged relative to `now`."""

    def _build(age_minutes=1, amount0=-50, amount1=120, pool_id=POOL_1):
        return SwapRecord.from_legs(
            now - timedelta(minutes=age_minutes),
            TRADER,
            TOKEN_A,
            TOKEN_B,
            amount0,
            amount1,
            pool_id=pool_id.lower() if pool_id else None,
        )

    return _build

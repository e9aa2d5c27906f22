"""
Tests for the pool directory.

These tests verify:
- Paging stops on an empty page, a failed page, or the page cap
- The pool -> token pair index is case-insensitive
- A refresh that yields nothing keeps the previous pool set
- The pool set is written to and reloaded from the cache
"""

from unittest.mock import AsyncMock

import pytest

from dex_signal.ingestion.client import SubgraphError
from dex_signal.ingestion.pool_directory import PoolDirectory
from dex_signal.storage.cache import POOLS_KEY


@pytest.fixture
def directory(mock_client, cache):
    return PoolDirectory(mock_client, cache, page_size=2, max_pages=11)


class TestRefresh:
    @pytest.mark.asyncio
    async def test_collects_pages_until_empty(self, directory, mock_client, pool_row, addresses):
        mock_client.get_pools = AsyncMock(side_effect=[
            [pool_row(addresses["pool_1"]), pool_row(addresses["pool_2"])],
            [],
        ])

        await directory.refresh()

        assert len(directory) == 2
        assert directory.addresses() == [addresses["pool_1"], addresses["pool_2"]]
        first_call = mock_client.get_pools.call_args_list[0].kwargs
        assert first_call == {"first": 2, "skip": 0, "min_volume_usd": 1000.0}

    @pytest.mark.asyncio
    async def test_stops_after_page_cap(self, directory, mock_client, pool_row, addresses):
        mock_client.get_pools = AsyncMock(return_value=[pool_row(addresses["pool_1"])])

        await directory.refresh()

        assert mock_client.get_pools.call_count == 11
        skips = [c.kwargs["skip"] for c in mock_client.get_pools.call_args_list]
        assert skips == [i * 2 for i in range(11)]

    @pytest.mark.asyncio
    async def test_page_failure_returns_partial(self, directory, mock_client, pool_row, addresses):
        mock_client.get_pools = AsyncMock(side_effect=[
            [pool_row(addresses["pool_1"])],
            SubgraphError("gateway down", status_code=503),
        ])

        await directory.refresh()

        assert [p.id for p in directory.current_pools()] == [addresses["pool_1"].lower()]

    @pytest.mark.asyncio
    async def test_empty_refresh_keeps_previous_set(self, directory, mock_client, pool_row, addresses):
        mock_client.get_pools = AsyncMock(side_effect=[[pool_row(addresses["pool_1"])], []])
        await directory.refresh()

        mock_client.get_pools = AsyncMock(side_effect=SubgraphError("down", status_code=500))
        await directory.refresh()

        assert len(directory) == 1

    @pytest.mark.asyncio
    async def test_skips_malformed_rows(self, directory, mock_client, pool_row, addresses):
        mock_client.get_pools = AsyncMock(side_effect=[
            [{"id": "0xbroken"}, pool_row(addresses["pool_1"])],
            [],
        ])

        await directory.refresh()

        assert len(directory) == 1


class TestTokenPair:
    @pytest.mark.asyncio
    async def test_lookup_is_case_insensitive(self, directory, mock_client, pool_row, addresses):
        mock_client.get_pools = AsyncMock(side_effect=[[pool_row(addresses["pool_1"])], []])
        await directory.refresh()

        pair = directory.token_pair(addresses["pool_1"])

        assert pair is not None
        assert pair[0].symbol == "AAA"
        assert pair[1].symbol == "BBB"
        assert directory.token_pair(addresses["pool_1"].upper().replace("0X", "0x")) == pair

    def test_unknown_pool(self, directory, addresses):
        assert directory.token_pair(addresses["pool_2"]) is None


class TestCache:
    @pytest.mark.asyncio
    async def test_refresh_writes_cache(self, directory, mock_client, cache, pool_row, addresses):
        mock_client.get_pools = AsyncMock(side_effect=[[pool_row(addresses["pool_1"])], []])

        await directory.refresh()

        cached = cache.get(POOLS_KEY)
        assert cached[0]["id"] == addresses["pool_1"].lower()

    def test_load_from_cache(self, mock_client, cache, pool_row, addresses):
        cache.set(POOLS_KEY, [pool_row(addresses["pool_1"]), pool_row(addresses["pool_2"])])
        directory = PoolDirectory(mock_client, cache)

        assert directory.load_from_cache() == 2
        assert directory.token_pair(addresses["pool_2"]) is not None

    def test_load_from_empty_cache(self, directory):
        assert directory.load_from_cache() == 0
        assert len(directory) == 0

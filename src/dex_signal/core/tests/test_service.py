"""
Tests for the signal service.

These tests verify:
- Warm start loads pools and swaps from the cache
- A refresh cycle refreshes pools, recomputes and stamps the time without backfilling
- Startup backfills once, only after the newest cached swap
- Start/stop lifecycle, including a failed start
- Ranking filters by risk and ignored names before market-depth lookups
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from dex_signal.config import SignalConfig
from dex_signal.core.aggregator import GoodTraderList
from dex_signal.core.scoring import RiskLevel
from dex_signal.core.service import ServiceState, SignalService, is_ignored_name
from dex_signal.ingestion.client import NoDataError, SubgraphError
from dex_signal.ingestion.models import PoolToken, SwapLog, SwapRecord, TokenSize
from dex_signal.ingestion.watcher import WatcherState
from dex_signal.storage.cache import POOLS_KEY, SWAPS_KEY


@pytest.fixture
def service(tmp_path, cache, mock_client, mock_market_depth, mock_feed, addresses):
    return SignalService(
        SignalConfig(cache_dir=str(tmp_path)),
        cache=cache,
        client=mock_client,
        market_depth=mock_market_depth,
        feed_factory=lambda on_logs: mock_feed,
        allow_list=GoodTraderList([addresses["good_trader"]]),
    )


def _cache_pool(cache, addresses):
    cache.set(POOLS_KEY, [{
        "id": addresses["pool_1"].lower(),
        "liquidity": "1",
        "token0": {"id": addresses["token_a"].lower(), "symbol": "AAA"},
        "token1": {"id": addresses["token_b"].lower(), "symbol": "BBB"},
    }])


def _index_row(addresses, timestamp):
    """The index view of a -50 / +120 swap on pool_1."""
    return {
        "amount0": "-50",
        "amount1": "120",
        "timestamp": str(timestamp),
        "sender": addresses["good_trader"].lower(),
        "pool": {"id": addresses["pool_1"].lower()},
        "token0": {"id": addresses["token_a"].lower(), "symbol": "AAA", "decimals": "0"},
        "token1": {"id": addresses["token_b"].lower(), "symbol": "BBB", "decimals": "0"},
    }


@pytest.fixture
def ranked_universe(make_token, addresses):
    return [
        make_token(addresses["token_a"], name="Alpha", tvl=900.0, size=TokenSize.LARGE),
        make_token(addresses["token_b"], name="Wrapped BTC", tvl=800.0, size=TokenSize.LARGE),
        make_token(addresses["token_c"], name="Gamma", tvl=10.0, size=TokenSize.SMALL),
    ]


class TestIgnoredNames:
    @pytest.mark.parametrize("name,ignored", [
        ("USD Coin", True),
        ("Wrapped BTC", True),
        ("stable token", True),
        ("Dai", True),
        ("Alpha", False),
    ])
    def test_markers(self, name, ignored):
        assert is_ignored_name(name) is ignored


class TestWarmStart:
    @pytest.mark.asyncio
    async def test_loads_pools_and_swaps(self, service, cache, make_swap, addresses):
        _cache_pool(cache, addresses)
        cache.set(SWAPS_KEY, [make_swap().to_dict()])

        await service.warm_start()

        assert len(service.directory) == 1
        assert await service.store.count() == 1


class TestRefreshCycle:
    @pytest.mark.asyncio
    async def test_runs_every_stage(self, service, mock_client, mock_feed, cache):
        await service.refresh_cycle()

        mock_client.get_pools.assert_awaited()
        mock_feed.subscribe.assert_awaited_once_with([])
        assert service.watcher.state == WatcherState.WATCHING
        assert service.last_refresh is not None
        assert SWAPS_KEY in cache
        await service.watcher.close()

    @pytest.mark.asyncio
    async def test_live_swap_is_not_backfilled_again(self, service, cache, mock_client, addresses):
        _cache_pool(cache, addresses)
        await service.warm_start()
        await service.watcher.handle_log(SwapLog(
            pool_address=addresses["pool_1"],
            sender=addresses["good_trader"],
            recipient=addresses["good_trader"],
            amount0=-50,
            amount1=120,
        ))
        mock_client.get_swaps = AsyncMock(return_value=[_index_row(addresses, int(time.time()))])

        await service.refresh_cycle()

        infos = {i.contract_address: i for i in await service.aggregator.token_info()}
        assert infos[addresses["token_b"]].buys == 1
        assert infos[addresses["token_a"]].sold == 1
        mock_client.get_swaps.assert_not_awaited()
        await service.watcher.close()


class TestBackfillGap:
    @pytest.mark.asyncio
    async def test_empty_store_backfills_full_window(self, service, mock_client):
        before = int(time.time())

        await service.backfill_gap()

        since = mock_client.get_swaps.call_args_list[0].kwargs["since"]
        assert before - 1800 <= since <= int(time.time()) - 1800

    @pytest.mark.asyncio
    async def test_starts_after_newest_cached_swap(self, service, cache, mock_client, addresses):
        newest = datetime.now(timezone.utc) - timedelta(minutes=5)
        cached = SwapRecord.from_legs(
            newest,
            addresses["good_trader"],
            PoolToken(addresses["token_a"], "AAA"),
            PoolToken(addresses["token_b"], "BBB"),
            -50,
            120,
            pool_id=addresses["pool_1"].lower(),
        )
        cache.set(SWAPS_KEY, [cached.to_dict()])

        await service.start()

        assert mock_client.get_swaps.await_count == 1
        assert mock_client.get_swaps.call_args.kwargs["since"] == int(newest.timestamp()) + 1
        assert await service.store.count() == 1
        await service.stop()

    @pytest.mark.asyncio
    async def test_index_failure_adds_nothing(self, service, mock_client):
        mock_client.get_swaps = AsyncMock(side_effect=SubgraphError("down", status_code=503))

        assert await service.backfill_gap() == 0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, service, mock_client, mock_market_depth, mock_feed):
        await service.start()

        assert service.state == ServiceState.RUNNING
        assert service.is_running

        await service.stop()

        assert service.state == ServiceState.STOPPED
        mock_feed.stop.assert_awaited()
        mock_client.close.assert_awaited_once()
        mock_market_depth.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_when_stopped_is_noop(self, service, mock_client):
        await service.stop()

        mock_client.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_start(self, service, mock_feed, mock_client):
        mock_feed.start = AsyncMock(side_effect=RuntimeError("connect failed"))

        with pytest.raises(RuntimeError):
            await service.start()

        assert service.state == ServiceState.FAILED
        mock_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_forever_returns_after_request_stop(self, service):
        asyncio.get_running_loop().call_later(0.05, service.request_stop)

        await service.run_forever()

        assert service.state == ServiceState.STOPPED


class TestRankTokens:
    @pytest.mark.asyncio
    async def test_filters_before_depth_lookup(self, service, mock_market_depth, ranked_universe, addresses):
        service._universe.fetch_current_universe = AsyncMock(return_value=ranked_universe)

        ranked = await service.rank_tokens(risk=RiskLevel.LOW)

        assert [r.token.contract_address for r in ranked] == [addresses["token_a"]]
        assert ranked[0].risk == RiskLevel.LOW
        mock_market_depth.fetch.assert_awaited_once_with(addresses["token_a"])

    @pytest.mark.asyncio
    async def test_sorted_and_limited(self, service, ranked_universe):
        service._universe.fetch_current_universe = AsyncMock(return_value=ranked_universe)

        ranked = await service.rank_tokens(limit=1)

        assert len(ranked) == 1
        assert ranked[0].token.name == "Alpha"

    @pytest.mark.asyncio
    async def test_to_dict(self, service, ranked_universe):
        service._universe.fetch_current_universe = AsyncMock(return_value=ranked_universe)

        data = (await service.rank_tokens())[0].to_dict()

        assert data["risk"] == "LOW"
        assert 0 <= data["finalScore"] <= 100
        assert set(data["explanation"]) == {"tvl", "volume", "net_buys", "good_trader", "heat"}

    @pytest.mark.asyncio
    async def test_no_universe_raises(self, service):
        service._universe.fetch_current_universe = AsyncMock(side_effect=NoDataError("empty"))

        with pytest.raises(NoDataError):
            await service.rank_tokens()

"""Tests for liquidity validation and the rugpull re-check."""

from datetime import UTC, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from conftest import ETH, POOL, TOKEN, FakeVenue, erc20
from src.models.enums import Venue
from src.security.active_tokens import ActiveToken
from src.security.liquidity import LiquidityOracle, is_insufficient_reserve_error, select_best_pool
from src.trading.venues.base import PoolLiquidity, UnsupportedVenue


def _entry(venue: Venue | None) -> ActiveToken:
    return ActiveToken(
        address=TOKEN,
        creator_address=None,
        discovered_at=datetime.now(UTC).replace(tzinfo=None),
        added_at=0.0,
        expires_at=600.0,
        erc20=erc20(),
        venue=venue,
    )


class TestSelectBestPool:
    def test_deepest_pool_wins(self) -> None:
        pools = [
            PoolLiquidity(Venue.UNISWAP_V2, POOL, 2 * ETH),
            PoolLiquidity(Venue.UNISWAP_V3, POOL, 5 * ETH),
        ]
        assert select_best_pool(pools, Decimal(1)).venue == Venue.UNISWAP_V3

    def test_tie_goes_to_simpler_venue(self) -> None:
        pools = [
            PoolLiquidity(Venue.UNISWAP_V3, POOL, 3 * ETH),
            PoolLiquidity(Venue.UNISWAP_V2, POOL, 3 * ETH),
        ]
        assert select_best_pool(pools, Decimal(1)).venue == Venue.UNISWAP_V2

    def test_nothing_above_threshold(self) -> None:
        pools = [PoolLiquidity(Venue.UNISWAP_V2, POOL, ETH // 2)]
        assert select_best_pool(pools, Decimal(1)) is None

    def test_reserve_error_markers(self) -> None:
        assert is_insufficient_reserve_error(RuntimeError("UniswapV2: INSUFFICIENT_LIQUIDITY"))
        assert not is_insufficient_reserve_error(RuntimeError("timeout"))


class TestLiquidityOracle:
    def test_threshold_pct_bounds(self) -> None:
        with pytest.raises(ValueError):
            LiquidityOracle({}, rugpull_threshold_pct=0)
        with pytest.raises(ValueError):
            LiquidityOracle({}, rugpull_threshold_pct=100)

    def test_rugpull_floor(self) -> None:
        oracle = LiquidityOracle({}, min_liquidity_eth=1.0, rugpull_threshold_pct=20)
        assert oracle.rugpull_floor_eth == Decimal("0.2")

    @pytest.mark.asyncio
    async def test_two_eth_then_point_one_eth_is_rugpull(self) -> None:
        venue = FakeVenue(Venue.UNISWAP_V2, reserve_wei=2 * ETH)
        oracle = LiquidityOracle({Venue.UNISWAP_V2: venue}, min_liquidity_eth=1.0, rugpull_threshold_pct=20)

        result = await oracle.validate_liquidity(TOKEN)
        assert result.has_liquidity is True
        assert result.venue == Venue.UNISWAP_V2
        assert result.liquidity_eth == Decimal(2)

        venue.reserve_wei = ETH // 10
        rug = await oracle.rugpull_check_active(_entry(result.venue))
        assert rug.is_rugpull is True
        assert rug.reason == "liquidity_drop"
        assert rug.liquidity_eth == Decimal("0.1")

    @pytest.mark.asyncio
    async def test_half_eth_is_not_rugpull(self) -> None:
        venue = FakeVenue(Venue.UNISWAP_V2, reserve_wei=ETH // 2)
        oracle = LiquidityOracle({Venue.UNISWAP_V2: venue}, min_liquidity_eth=1.0)
        rug = await oracle.rugpull_check_active(_entry(Venue.UNISWAP_V2))
        assert rug.is_rugpull is False

    @pytest.mark.asyncio
    async def test_below_threshold_has_no_liquidity(self) -> None:
        venue = FakeVenue(Venue.UNISWAP_V2, reserve_wei=ETH // 2)
        oracle = LiquidityOracle({Venue.UNISWAP_V2: venue}, min_liquidity_eth=1.0)
        result = await oracle.validate_liquidity(TOKEN)
        assert result.has_liquidity is False
        assert result.liquidity_eth == Decimal("0.5")

    @pytest.mark.asyncio
    async def test_unsupported_and_failing_venues_are_skipped(self) -> None:
        broken = FakeVenue(Venue.UNISWAP_V3)
        broken.pool_error = RuntimeError("rpc")
        oracle = LiquidityOracle(
            {
                Venue.UNISWAP_V2: FakeVenue(Venue.UNISWAP_V2, reserve_wei=3 * ETH),
                Venue.UNISWAP_V3: broken,
                Venue.AERODROME: UnsupportedVenue(Venue.AERODROME),
            }
        )
        pools = await oracle.read_pools(TOKEN)
        assert [p.venue for p in pools] == [Venue.UNISWAP_V2]

    @pytest.mark.asyncio
    async def test_missing_pool_is_rugpull(self) -> None:
        venue = FakeVenue(Venue.UNISWAP_V2, reserve_wei=None)
        oracle = LiquidityOracle({Venue.UNISWAP_V2: venue})
        rug = await oracle.rugpull_check_token(SimpleNamespace(address=TOKEN, venue="uniswapv2"))
        assert rug.is_rugpull is True
        assert rug.reason == "pool_missing"

    @pytest.mark.asyncio
    async def test_insufficient_reserve_error_is_rugpull(self) -> None:
        venue = FakeVenue(Venue.UNISWAP_V2)
        venue.pool_error = RuntimeError("INSUFFICIENT_LIQUIDITY")
        oracle = LiquidityOracle({Venue.UNISWAP_V2: venue})
        rug = await oracle.rugpull_check_active(_entry(Venue.UNISWAP_V2))
        assert rug.is_rugpull is True
        assert rug.reason == "insufficient_reserves"

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self) -> None:
        venue = FakeVenue(Venue.UNISWAP_V2)
        venue.pool_error = RuntimeError("connection reset")
        oracle = LiquidityOracle({Venue.UNISWAP_V2: venue})
        with pytest.raises(RuntimeError):
            await oracle.rugpull_check_active(_entry(Venue.UNISWAP_V2))

    @pytest.mark.asyncio
    async def test_unimplemented_venue_is_not_rugpull(self) -> None:
        oracle = LiquidityOracle({Venue.BALANCER: UnsupportedVenue(Venue.BALANCER)})
        rug = await oracle.rugpull_check_active(_entry(Venue.BALANCER))
        assert rug.is_rugpull is False
        assert rug.reason == "venue_not_implemented"

    @pytest.mark.asyncio
    async def test_unknown_venue_reads_all_pools(self) -> None:
        oracle = LiquidityOracle({Venue.UNISWAP_V2: FakeVenue(Venue.UNISWAP_V2, reserve_wei=2 * ETH)})
        rug = await oracle.rugpull_check_active(_entry(None))
        assert rug.is_rugpull is False
        assert rug.venue == Venue.UNISWAP_V2

"""Uniswap V3-style concentrated-liquidity venue.

Liquidity is the base-asset balance held by the pool contract; every
configured fee tier is probed and the deepest pool wins. Pool addresses
are immutable once created, so lookups are cached with a TTL.
Swaps are not implemented yet.
"""

from __future__ import annotations

import time

from eth_utils import to_checksum_address
from loguru import logger

from src.chain.abis import ERC20_ABI, UNISWAP_V3_FACTORY_ABI, UNISWAP_V3_QUOTER_ABI, ZERO_ADDRESS
from src.chain.erc20 import Erc20Metadata
from src.chain.provider import ChainProvider
from src.errors import VenueNotImplementedError
from src.models.enums import Venue
from src.trading.venues.base import PoolLiquidity, SwapFill, VenueAdapter
from src.utils.logger import short

DEFAULT_FEE_TIERS = (100, 500, 3000, 10000)


class PoolCache:
    """token -> [(fee, pool)] with per-entry expiry."""

    def __init__(self, ttl_sec: float) -> None:
        self._ttl = ttl_sec
        self._entries: dict[str, tuple[float, list[tuple[int, str]]]] = {}

    def get(self, token: str, now: float | None = None) -> list[tuple[int, str]] | None:
        entry = self._entries.get(token)
        if entry is None:
            return None
        expires_at, pools = entry
        if (now if now is not None else time.monotonic()) >= expires_at:
            del self._entries[token]
            return None
        return pools

    def put(self, token: str, pools: list[tuple[int, str]], now: float | None = None) -> None:
        self._entries[token] = ((now if now is not None else time.monotonic()) + self._ttl, pools)

    def __len__(self) -> int:
        return len(self._entries)


class UniswapV3Venue(VenueAdapter):
    venue = Venue.UNISWAP_V3

    def __init__(
        self,
        provider: ChainProvider,
        *,
        factory_address: str,
        quoter_address: str,
        weth_address: str,
        fee_tiers: tuple[int, ...] | list[int] = DEFAULT_FEE_TIERS,
        pool_cache_ttl_sec: float = 3600,
    ) -> None:
        self._provider = provider
        self._weth = to_checksum_address(weth_address)
        self._factory = provider.contract(factory_address, UNISWAP_V3_FACTORY_ABI)
        self._quoter = provider.contract(quoter_address, UNISWAP_V3_QUOTER_ABI)
        self._weth_contract = provider.contract(self._weth, ERC20_ABI)
        self._fee_tiers = tuple(fee_tiers)
        self._pools = PoolCache(pool_cache_ttl_sec)
        self._best_fee: dict[str, int] = {}

    async def _resolve_pools(self, token_address: str) -> list[tuple[int, str]]:
        token = to_checksum_address(token_address)
        cached = self._pools.get(token)
        if cached is not None:
            return cached

        pools: list[tuple[int, str]] = []
        for fee in self._fee_tiers:
            pool = await self._factory.functions.getPool(token, self._weth, fee).call()
            if pool and pool != ZERO_ADDRESS:
                pools.append((fee, to_checksum_address(pool)))
        # Only cache hits: a pool may still be created for a token with none yet
        if pools:
            self._pools.put(token, pools)
        return pools

    async def get_pool_liquidity(self, token_address: str) -> PoolLiquidity | None:
        best: PoolLiquidity | None = None
        for fee, pool in await self._resolve_pools(token_address):
            balance = await self._weth_contract.functions.balanceOf(pool).call()
            if best is None or balance > best.base_reserve_wei:
                best = PoolLiquidity(
                    venue=self.venue, pool_address=pool, base_reserve_wei=balance, fee_tier=fee
                )
        if best is not None:
            self._best_fee[to_checksum_address(token_address)] = best.fee_tier
            logger.debug(
                f"[V3] {short(token_address)} deepest pool fee={best.fee_tier} "
                f"base={best.liquidity_eth} ETH"
            )
        return best

    async def quote(self, path: list[str], amount_in: int) -> int:
        if len(path) != 2:
            raise VenueNotImplementedError(self.venue, "multi-hop quote")
        token_in, token_out = (to_checksum_address(p) for p in path)
        token = token_out if token_in == self._weth else token_in
        fee = self._best_fee.get(token)
        if fee is None:
            liquidity = await self.get_pool_liquidity(token)
            if liquidity is None:
                raise ValueError(f"no V3 pool for {token}")
            fee = liquidity.fee_tier
        result = await self._quoter.functions.quoteExactInputSingle(
            (token_in, token_out, amount_in, fee, 0)
        ).call()
        return result[0]

    async def swap_buy(self, token: Erc20Metadata, eth_amount_wei: int) -> SwapFill:
        raise VenueNotImplementedError(self.venue, "buy")

    async def swap_sell(self, token: Erc20Metadata, raw_amount: int) -> SwapFill:
        raise VenueNotImplementedError(self.venue, "sell")

"""Venue adapter contract: one implementation per DEX family."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from src.chain.erc20 import Erc20Metadata
from src.chain.units import format_units
from src.errors import VenueNotImplementedError
from src.models.enums import Venue


@dataclass
class PoolLiquidity:
    """Base-asset side of the deepest pool a venue has for a token."""

    venue: Venue
    pool_address: str
    base_reserve_wei: int
    fee_tier: int | None = None

    @property
    def liquidity_eth(self) -> Decimal:
        return format_units(self.base_reserve_wei, 18)


@dataclass
class SwapFill:
    """Settled swap as seen from the wallet.

    token_amount_raw: tokens received (buy) or sent (sell)
    eth_amount_wei: ETH sent (buy) or received (sell)
    """

    tx_hash: str
    token_amount_raw: int
    eth_amount_wei: int
    gas_cost_wei: int


class VenueAdapter(ABC):
    venue: Venue

    @abstractmethod
    async def get_pool_liquidity(self, token_address: str) -> PoolLiquidity | None:
        """Deepest token/base-asset pool, None if the venue has none."""

    @abstractmethod
    async def quote(self, path: list[str], amount_in: int) -> int:
        """Expected output amount for ``amount_in`` along ``path``."""

    @abstractmethod
    async def swap_buy(self, token: Erc20Metadata, eth_amount_wei: int) -> SwapFill: ...

    @abstractmethod
    async def swap_sell(self, token: Erc20Metadata, raw_amount: int) -> SwapFill: ...

    async def simulate_buy(self, token: Erc20Metadata, eth_amount_wei: int) -> SwapFill:
        """Probe buy: a small live swap that is never booked to the ledger."""
        return await self.swap_buy(token, eth_amount_wei)

    async def simulate_sell(self, token: Erc20Metadata, raw_amount: int) -> SwapFill:
        return await self.swap_sell(token, raw_amount)

    async def token_price_eth(self, token: Erc20Metadata, weth_address: str) -> Decimal:
        """ETH value of one whole token."""
        out = await self.quote([token.address, weth_address], 10**token.decimals)
        return format_units(out, 18)


class UnsupportedVenue(VenueAdapter):
    """Placeholder for venues without an implementation yet."""

    def __init__(self, venue: Venue) -> None:
        self.venue = venue

    async def get_pool_liquidity(self, token_address: str) -> PoolLiquidity | None:
        raise VenueNotImplementedError(self.venue, "liquidity lookup")

    async def quote(self, path: list[str], amount_in: int) -> int:
        raise VenueNotImplementedError(self.venue, "quote")

    async def swap_buy(self, token: Erc20Metadata, eth_amount_wei: int) -> SwapFill:
        raise VenueNotImplementedError(self.venue, "buy")

    async def swap_sell(self, token: Erc20Metadata, raw_amount: int) -> SwapFill:
        raise VenueNotImplementedError(self.venue, "sell")

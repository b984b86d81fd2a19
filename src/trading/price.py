"""ETH/USD and token prices derived from on-chain venue quotes.

ETH/USD comes from the V2 router (1 WETH -> USDC) and is cached for
``cache_sec``. Token prices are quoted on the token's own venue.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from decimal import Decimal, localcontext

from loguru import logger

from src.chain.erc20 import Erc20Metadata
from src.chain.units import format_units, parse_units
from src.errors import TechnicalError, VenueNotImplementedError
from src.models.enums import Venue
from src.trading.venues.base import VenueAdapter

ONE_ETH_WEI = 10**18


class PriceOracle:
    def __init__(
        self,
        venues: dict[Venue, VenueAdapter],
        *,
        weth_address: str,
        usdc_address: str,
        usdc_decimals: int = 6,
        cache_sec: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._venues = venues
        self._weth = weth_address
        self._usdc = usdc_address
        self._usdc_decimals = usdc_decimals
        self._cache_sec = cache_sec
        self._clock = clock
        self._eth_price: Decimal | None = None
        self._eth_price_at = 0.0

    def _adapter(self, venue: Venue | str | None) -> VenueAdapter:
        if venue is None:
            raise VenueNotImplementedError("unknown", "pricing")
        adapter = self._venues.get(Venue(venue))
        if adapter is None:
            raise VenueNotImplementedError(str(venue), "pricing")
        return adapter

    async def eth_price_usd(self) -> Decimal:
        now = self._clock()
        if self._eth_price is not None and now - self._eth_price_at < self._cache_sec:
            return self._eth_price

        adapter = self._adapter(Venue.UNISWAP_V2)
        try:
            out = await adapter.quote([self._weth, self._usdc], ONE_ETH_WEI)
        except Exception as e:
            if self._eth_price is not None:
                logger.warning(f"[PRICE] ETH/USD refresh failed, using stale ${self._eth_price}: {e}")
                return self._eth_price
            raise TechnicalError(f"ETH/USD price unavailable: {e}") from e

        price = format_units(out, self._usdc_decimals)
        if price <= 0:
            raise TechnicalError("ETH/USD quote returned zero")
        self._eth_price = price
        self._eth_price_at = now
        logger.debug(f"[PRICE] ETH/USD ${price}")
        return price

    async def usd_to_wei(self, usd_amount: Decimal | float | str) -> int:
        eth_price = await self.eth_price_usd()
        with localcontext() as ctx:
            ctx.prec = 60
            eth = Decimal(str(usd_amount)) / eth_price
        return parse_units(eth, 18)

    async def token_price_eth(self, token: Erc20Metadata, venue: Venue | str | None) -> Decimal:
        return await self._adapter(venue).token_price_eth(token, self._weth)

    async def token_price_usd(self, token: Erc20Metadata, venue: Venue | str | None) -> Decimal:
        price_eth = await self.token_price_eth(token, venue)
        return price_eth * await self.eth_price_usd()

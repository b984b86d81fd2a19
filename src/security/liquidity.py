"""Liquidity lookup across venues and the rugpull re-check.

validate_liquidity picks the deepest pool at or above the admission
threshold; rugpull checks re-read the resolved venue and flag a drop
below ``rugpull_threshold_pct`` percent of that threshold.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from loguru import logger

from src.errors import VenueNotImplementedError
from src.models.enums import VENUE_PRIORITY, Venue
from src.models.token import Token
from src.security.active_tokens import ActiveToken
from src.trading.venues.base import PoolLiquidity, VenueAdapter
from src.utils.logger import short

_INSUFFICIENT_RESERVE_MARKERS = (
    "insufficient_liquidity",
    "insufficient liquidity",
    "insufficient reserves",
    "insufficient_reserves",
)


@dataclass
class LiquidityResult:
    has_liquidity: bool
    venue: Venue | None = None
    liquidity_eth: Decimal = Decimal(0)
    pool_address: str | None = None


@dataclass
class RugpullResult:
    is_rugpull: bool
    venue: Venue | None = None
    liquidity_eth: Decimal | None = None
    reason: str | None = None


def is_insufficient_reserve_error(error: BaseException) -> bool:
    text = str(error).lower()
    return any(marker in text for marker in _INSUFFICIENT_RESERVE_MARKERS)


def select_best_pool(pools: list[PoolLiquidity], min_liquidity_eth: Decimal) -> PoolLiquidity | None:
    """Deepest pool at or above the threshold; ties go to the simpler venue."""
    eligible = [p for p in pools if p.liquidity_eth >= min_liquidity_eth]
    if not eligible:
        return None

    def rank(p: PoolLiquidity) -> tuple[int, int]:
        priority = VENUE_PRIORITY.index(p.venue) if p.venue in VENUE_PRIORITY else len(VENUE_PRIORITY)
        return (-p.base_reserve_wei, priority)

    return min(eligible, key=rank)


class LiquidityOracle:
    def __init__(
        self,
        venues: dict[Venue, VenueAdapter],
        *,
        min_liquidity_eth: float | Decimal = 1.0,
        rugpull_threshold_pct: float | Decimal = 20.0,
    ) -> None:
        pct = Decimal(str(rugpull_threshold_pct))
        if not 0 < pct < 100:
            raise ValueError("rugpull_threshold_pct must be between 0 and 100")
        self._venues = venues
        self.min_liquidity_eth = Decimal(str(min_liquidity_eth))
        self.rugpull_floor_eth = self.min_liquidity_eth * pct / 100

    async def read_pools(self, token_address: str) -> list[PoolLiquidity]:
        """One reading per venue that has a pool. Unsupported venues are skipped."""
        pools: list[PoolLiquidity] = []
        for venue in VENUE_PRIORITY:
            adapter = self._venues.get(venue)
            if adapter is None:
                continue
            try:
                pool = await adapter.get_pool_liquidity(token_address)
            except VenueNotImplementedError:
                continue
            except Exception as e:
                logger.warning(f"[LIQUIDITY] {venue} lookup failed for {short(token_address)}: {e}")
                continue
            if pool is not None:
                pools.append(pool)
        return pools

    async def validate_liquidity(self, token_address: str) -> LiquidityResult:
        pools = await self.read_pools(token_address)
        best = select_best_pool(pools, self.min_liquidity_eth)
        if best is None:
            deepest = max((p.liquidity_eth for p in pools), default=Decimal(0))
            logger.debug(
                f"[LIQUIDITY] {short(token_address)} below threshold "
                f"({deepest} < {self.min_liquidity_eth} ETH)"
            )
            return LiquidityResult(has_liquidity=False, liquidity_eth=deepest)

        logger.info(
            f"[LIQUIDITY] {short(token_address)} {best.venue}: {best.liquidity_eth} ETH"
        )
        return LiquidityResult(
            has_liquidity=True,
            venue=best.venue,
            liquidity_eth=best.liquidity_eth,
            pool_address=best.pool_address,
        )

    async def get_liquidity(self, token_address: str, venue: Venue | None) -> PoolLiquidity | None:
        if venue is None:
            pools = await self.read_pools(token_address)
            return max(pools, key=lambda p: p.base_reserve_wei, default=None)
        adapter = self._venues.get(venue)
        if adapter is None:
            raise VenueNotImplementedError(venue, "liquidity lookup")
        return await adapter.get_pool_liquidity(token_address)

    async def _rugpull_check(self, token_address: str, venue: Venue | None) -> RugpullResult:
        try:
            pool = await self.get_liquidity(token_address, venue)
        except VenueNotImplementedError:
            return RugpullResult(is_rugpull=False, venue=venue, reason="venue_not_implemented")
        except Exception as e:
            if is_insufficient_reserve_error(e):
                logger.warning(f"[LIQUIDITY] {short(token_address)} reserves drained: {e}")
                return RugpullResult(is_rugpull=True, venue=venue, reason="insufficient_reserves")
            raise

        if pool is None:
            logger.warning(f"[LIQUIDITY] {short(token_address)} pool gone on {venue}")
            return RugpullResult(is_rugpull=True, venue=venue, liquidity_eth=Decimal(0), reason="pool_missing")

        if pool.liquidity_eth < self.rugpull_floor_eth:
            logger.warning(
                f"[LIQUIDITY] {short(token_address)} rugpull: {pool.liquidity_eth} ETH "
                f"< {self.rugpull_floor_eth} ETH"
            )
            return RugpullResult(
                is_rugpull=True, venue=pool.venue, liquidity_eth=pool.liquidity_eth, reason="liquidity_drop"
            )
        return RugpullResult(is_rugpull=False, venue=pool.venue, liquidity_eth=pool.liquidity_eth)

    async def rugpull_check_active(self, entry: ActiveToken) -> RugpullResult:
        """Re-check a token still in the security gate."""
        return await self._rugpull_check(entry.address, entry.venue)

    async def rugpull_check_token(self, token: Token) -> RugpullResult:
        """Re-check a persisted token on its recorded venue."""
        venue = Venue(token.venue) if token.venue else None
        return await self._rugpull_check(token.address, venue)

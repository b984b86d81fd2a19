"""Honeypot probe: buy a little, check the tokens arrived, sell them back.

A venue adapter that is not implemented yields NOT_IMPLEMENTED and is
NOT a honeypot (fail-open for unsupported venues).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

from src.chain.erc20 import Erc20Metadata
from src.chain.wallet import EvmWallet
from src.errors import VenueNotImplementedError
from src.models.enums import TokenStatus, Venue
from src.models.token import Token
from src.trading.price import PriceOracle
from src.trading.venues.base import VenueAdapter
from src.utils.logger import short


class HoneypotReason(StrEnum):
    VALIDATED = "validated"
    SAFE = "safe"
    NOT_IMPLEMENTED = "notImplemented"
    BUY_FAILED = "buyFailed"
    NO_TOKENS = "noTokensReceived"
    SELL_FAILED = "sellFailed"


@dataclass
class HoneypotResult:
    is_honeypot: bool
    reason: HoneypotReason
    detail: str | None = None


# Statuses that mean the token was screened before or has traded
_SKIP_STATUSES = frozenset({TokenStatus.VALIDATED, TokenStatus.SOLD})


class HoneypotProbe:
    def __init__(
        self,
        *,
        venues: dict[Venue, VenueAdapter],
        wallet: EvmWallet | None,
        price_oracle: PriceOracle,
        test_buy_usd: float = 1.0,
        settle_delay_sec: float = 3.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._venues = venues
        self._wallet = wallet
        self._prices = price_oracle
        self._test_buy_usd = test_buy_usd
        self._settle_delay = settle_delay_sec
        self._sleep = sleep

    async def check_token(self, token: Token, erc20: Erc20Metadata, *, has_position: bool) -> HoneypotResult:
        """Probe a persisted token unless it already proved itself."""
        if has_position or TokenStatus(token.status) in _SKIP_STATUSES:
            return HoneypotResult(is_honeypot=False, reason=HoneypotReason.VALIDATED)
        return await self._probe(erc20, Venue(token.venue) if token.venue else None)

    async def check_candidate(self, erc20: Erc20Metadata, venue: Venue | None) -> HoneypotResult:
        """Probe a token that is still in the security gate."""
        return await self._probe(erc20, venue)

    async def _probe(self, erc20: Erc20Metadata, venue: Venue | None) -> HoneypotResult:
        adapter = self._venues.get(venue) if venue else None
        if adapter is None:
            return HoneypotResult(False, HoneypotReason.NOT_IMPLEMENTED, f"no adapter for {venue}")
        if self._wallet is None:
            logger.warning(f"[HONEYPOT] No wallet configured, cannot probe {short(erc20.address)}")
            return HoneypotResult(False, HoneypotReason.NOT_IMPLEMENTED, "no wallet")

        # Price feed errors propagate; only the swap itself can fail the probe
        amount_wei = await self._prices.usd_to_wei(self._test_buy_usd)
        try:
            await adapter.simulate_buy(erc20, amount_wei)
        except VenueNotImplementedError as e:
            return HoneypotResult(False, HoneypotReason.NOT_IMPLEMENTED, str(e))
        except Exception as e:
            logger.warning(f"[HONEYPOT] {short(erc20.address)} probe buy failed: {e}")
            return HoneypotResult(True, HoneypotReason.BUY_FAILED, str(e))

        await self._sleep(self._settle_delay)

        balance = await self._wallet.get_token_balance(erc20.address)
        if balance <= 0:
            logger.warning(f"[HONEYPOT] {short(erc20.address)} probe buy delivered no tokens")
            return HoneypotResult(True, HoneypotReason.NO_TOKENS)

        try:
            await adapter.simulate_sell(erc20, balance)
        except VenueNotImplementedError as e:
            return HoneypotResult(False, HoneypotReason.NOT_IMPLEMENTED, str(e))
        except Exception as e:
            logger.warning(f"[HONEYPOT] {short(erc20.address)} probe sell failed: {e}")
            return HoneypotResult(True, HoneypotReason.SELL_FAILED, str(e))

        logger.info(f"[HONEYPOT] {erc20.symbol} ({short(erc20.address)}) passed buy/sell probe")
        return HoneypotResult(False, HoneypotReason.SAFE)

"""Trade execution: venue swap with classified retries, then bookkeeping.

Flow for every trade:
1. Resolve the token's venue adapter (unknown venue -> VenueNotImplementedError)
2. Swap, retrying transient errors up to max_retries
3. Record an immutable Trade row
4. Update the Position via the ledger
5. Move the token status and notify subscribers

Only the swap is retried; bookkeeping after a settled swap never re-trades.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from decimal import Decimal, localcontext
from typing import TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from src.chain.erc20 import Erc20Metadata
from src.chain.units import format_units, to_plain
from src.chain.wallet import EvmWallet, TransactionPendingError
from src.db.persistence import get_position, insert_trade, set_token_status, utcnow
from src.errors import (
    DomainValidationError,
    InvalidTradeTypeError,
    NoBuyTradeError,
    TradeExecutionError,
    VenueNotImplementedError,
)
from src.models.enums import BUY_TRADE_TYPES, TokenStatus, TradeSide, TradeType, Venue
from src.models.schemas import PositionOut, TokenOut, TradeOut
from src.models.token import Token
from src.models.trade import Trade
from src.notify.webhooks import TOKEN_UPDATE, TRADE_RECEIVE, WebhookNotifier, event_payload
from src.trading.ledger import Fill, PositionLedger
from src.trading.price import PriceOracle
from src.trading.venues.base import SwapFill, VenueAdapter
from src.utils.logger import short

T = TypeVar("T")

NON_RETRYABLE_MARKERS = ("insufficient funds", "insufficient allowance", "user rejected")


def is_retryable(error: BaseException) -> bool:
    """Transient errors are retried; funds/allowance/rejection errors never are.

    A swap still pending after the receipt timeout is not retried either:
    a second send could fill twice.
    """
    if isinstance(error, (VenueNotImplementedError, DomainValidationError, TransactionPendingError)):
        return False
    text = str(error).lower()
    return not any(marker in text for marker in NON_RETRYABLE_MARKERS)


def token_metadata(token: Token) -> Erc20Metadata:
    """ERC-20 view of a persisted token (supply is not tracked)."""
    return Erc20Metadata(
        address=token.address,
        name=token.name,
        symbol=token.symbol or "",
        decimals=token.decimals,
        total_supply=0,
    )


class TradeExecutor:
    def __init__(
        self,
        *,
        venues: dict[Venue, VenueAdapter],
        wallet: EvmWallet | None,
        price_oracle: PriceOracle,
        notifier: WebhookNotifier,
        ledger: PositionLedger | None = None,
        max_retries: int = 3,
        retry_delay_sec: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._venues = venues
        self._wallet = wallet
        self._prices = price_oracle
        self._notifier = notifier
        self._ledger = ledger or PositionLedger()
        self._max_retries = max_retries
        self._retry_delay = retry_delay_sec
        self._sleep = sleep

    def _adapter(self, token: Token) -> VenueAdapter:
        adapter = self._venues.get(Venue(token.venue)) if token.venue else None
        if adapter is None:
            raise VenueNotImplementedError(str(token.venue), "trading")
        return adapter

    def _require_wallet(self) -> EvmWallet:
        if self._wallet is None:
            raise TradeExecutionError("No wallet configured for trading")
        return self._wallet

    async def _with_retries(self, label: str, op: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(1, self._max_retries + 1):
            try:
                return await op()
            except Exception as e:
                if not is_retryable(e):
                    logger.error(f"[TRADE] {label} failed (not retryable): {e}")
                    if isinstance(e, TradeExecutionError):
                        raise
                    raise TradeExecutionError(str(e), attempts=attempt, retryable=False) from e
                if attempt >= self._max_retries:
                    logger.error(f"[TRADE] {label} failed after {attempt} attempts: {e}")
                    raise TradeExecutionError(
                        f"{label} failed after {attempt} attempts: {e}", attempts=attempt, retryable=True
                    ) from e
                logger.warning(f"[TRADE] {label} attempt {attempt}/{self._max_retries} failed: {e}")
                await self._sleep(self._retry_delay)
        raise TradeExecutionError(f"{label}: no attempts made")

    def _build_trade(
        self,
        token: Token,
        *,
        side: TradeSide,
        trade_type: TradeType,
        swap: SwapFill,
        fill: Fill,
        eth_price: Decimal,
    ) -> Trade:
        eth_amount = to_plain(fill.eth_amount)
        return Trade(
            token_address=token.address,
            token_name=token.name,
            tx_hash=swap.tx_hash,
            side=str(side),
            trade_type=str(trade_type),
            venue=str(token.venue),
            eth_spent=eth_amount if side == TradeSide.BUY else "0",
            eth_received=eth_amount if side == TradeSide.SELL else "0",
            raw_token_amount=str(swap.token_amount_raw),
            formatted_token_amount=to_plain(fill.formatted_tokens),
            token_price_usd=to_plain(fill.token_price_usd),
            eth_price_usd=to_plain(eth_price),
            gas_cost_eth=to_plain(fill.gas_cost_eth),
            gas_cost_usd=to_plain(fill.gas_cost_usd),
            created_at=utcnow(),
        )

    @staticmethod
    def _to_fill(swap: SwapFill, decimals: int, eth_price: Decimal) -> Fill:
        with localcontext() as ctx:
            ctx.prec = 78
            formatted = format_units(swap.token_amount_raw, decimals)
            eth_amount = format_units(swap.eth_amount_wei, 18)
            gas_eth = format_units(swap.gas_cost_wei, 18)
            usd_amount = eth_amount * eth_price
            price = usd_amount / formatted if formatted > 0 else Decimal(0)
            return Fill(
                raw_tokens=swap.token_amount_raw,
                formatted_tokens=formatted,
                eth_amount=eth_amount,
                usd_amount=usd_amount,
                gas_cost_eth=gas_eth,
                gas_cost_usd=gas_eth * eth_price,
                token_price_usd=price,
                at=utcnow(),
            )

    def _notify_trade(self, token: Token, trade: Trade, position_out: dict) -> None:
        self._notifier.notify(
            TRADE_RECEIVE,
            event_payload(
                token.address,
                {"trade": TradeOut.model_validate(trade).model_dump(mode="json"), "position": position_out},
            ),
        )

    # ── Buy ───────────────────────────────────────────────────────────

    async def buy(
        self,
        session: AsyncSession,
        token: Token,
        usd_amount: Decimal | float | str,
        trade_type: TradeType = TradeType.USD_VALUE,
    ) -> Trade:
        """Buy ``usd_amount`` worth of ``token``. Flushes, caller commits."""
        if trade_type not in BUY_TRADE_TYPES:
            raise InvalidTradeTypeError(f"{trade_type} is not a buy trade type")
        usd = Decimal(str(usd_amount))
        if usd <= 0:
            raise DomainValidationError(f"Buy amount must be positive, got {usd}")

        adapter = self._adapter(token)
        self._require_wallet()
        erc20 = token_metadata(token)
        eth_price = await self._prices.eth_price_usd()
        wei = await self._prices.usd_to_wei(usd)

        logger.info(f"[TRADE] Buying ${usd} of {token.symbol} ({short(token.address)}) as {trade_type}")
        swap = await self._with_retries(
            f"buy {short(token.address)}", lambda: adapter.swap_buy(erc20, wei)
        )
        if swap.token_amount_raw <= 0:
            raise TradeExecutionError(f"Buy of {token.address} settled with no tokens received")

        fill = self._to_fill(swap, token.decimals, eth_price)
        trade = await insert_trade(
            session,
            self._build_trade(token, side=TradeSide.BUY, trade_type=trade_type, swap=swap, fill=fill, eth_price=eth_price),
        )
        position = await self._ledger.apply_buy(session, token.address, fill)
        await set_token_status(session, token, TokenStatus.BUYABLE)

        self._notify_trade(token, trade, PositionOut.model_validate(position).model_dump(mode="json"))
        self._notifier.notify(
            TOKEN_UPDATE, event_payload(token.address, TokenOut.model_validate(token).model_dump(mode="json"))
        )
        logger.info(f"[TRADE] Bought {to_plain(fill.formatted_tokens)} {token.symbol} tx={swap.tx_hash}")
        return trade

    # ── Sell ──────────────────────────────────────────────────────────

    async def sell(
        self,
        session: AsyncSession,
        token: Token,
        raw_amount: int | None = None,
    ) -> Trade:
        """Sell ``raw_amount`` (whole wallet balance when None). Flushes, caller commits."""
        position = await get_position(session, token.address)
        if position is None:
            raise NoBuyTradeError(f"No position for {token.address}, nothing to sell")

        adapter = self._adapter(token)
        wallet = self._require_wallet()
        erc20 = token_metadata(token)

        balance = await wallet.get_token_balance(token.address)
        amount = balance if raw_amount is None else raw_amount
        if amount <= 0:
            raise TradeExecutionError(f"insufficient funds: no {token.symbol} balance to sell")
        if amount > balance:
            raise TradeExecutionError(f"insufficient funds: balance {balance} < requested {amount}")

        eth_price = await self._prices.eth_price_usd()
        logger.info(f"[TRADE] Selling {amount} raw {token.symbol} ({short(token.address)})")
        swap = await self._with_retries(
            f"sell {short(token.address)}", lambda: adapter.swap_sell(erc20, amount)
        )

        remaining = await wallet.get_token_balance(token.address)
        trade_type = TradeType.FULL_SELL if remaining == 0 else TradeType.PARTIAL_SELL

        fill = self._to_fill(swap, token.decimals, eth_price)
        trade = await insert_trade(
            session,
            self._build_trade(token, side=TradeSide.SELL, trade_type=trade_type, swap=swap, fill=fill, eth_price=eth_price),
        )
        position = await self._ledger.apply_sell(
            session, token.address, fill, remaining_raw=remaining, decimals=token.decimals
        )

        self._notify_trade(token, trade, PositionOut.model_validate(position).model_dump(mode="json"))
        if trade_type == TradeType.FULL_SELL:
            await set_token_status(session, token, TokenStatus.SOLD)
            self._notifier.notify(
                TOKEN_UPDATE, event_payload(token.address, TokenOut.model_validate(token).model_dump(mode="json"))
            )
        logger.info(f"[TRADE] {trade_type} {token.symbol} for {to_plain(fill.eth_amount)} ETH tx={swap.tx_hash}")
        return trade

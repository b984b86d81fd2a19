"""Cost-basis and P/L accounting per token.

The math is pure (LedgerState in, LedgerState out) so it can be tested
without a database; PositionLedger maps it onto Position rows. Every
amount is a Decimal or an int, never a float.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, localcontext

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from src.chain.units import dec, format_units, to_plain
from src.db.persistence import get_position, save_position
from src.errors import NoBuyTradeError
from src.models.trade import Position

_ZERO = Decimal(0)
_PREC = 78


@dataclass(frozen=True)
class Fill:
    """One settled trade, as the ledger sees it."""

    raw_tokens: int
    formatted_tokens: Decimal
    eth_amount: Decimal
    usd_amount: Decimal
    gas_cost_eth: Decimal
    gas_cost_usd: Decimal
    token_price_usd: Decimal
    at: datetime | None = None


@dataclass(frozen=True)
class LedgerState:
    raw_bought: int = 0
    formatted_bought: Decimal = _ZERO
    raw_sold: int = 0
    formatted_sold: Decimal = _ZERO
    raw_remaining: int = 0
    formatted_remaining: Decimal = _ZERO
    eth_spent: Decimal = _ZERO
    eth_received: Decimal = _ZERO
    usd_spent: Decimal = _ZERO
    usd_received: Decimal = _ZERO
    gas_cost_eth: Decimal = _ZERO
    gas_cost_usd: Decimal = _ZERO
    average_entry_price: Decimal = _ZERO
    average_exit_price: Decimal | None = None
    pnl_usd: Decimal = _ZERO
    last_trade_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.raw_remaining > 0

    @classmethod
    def from_position(cls, pos: Position) -> LedgerState:
        return cls(
            raw_bought=int(pos.raw_total_bought or "0"),
            formatted_bought=dec(pos.formatted_total_bought),
            raw_sold=int(pos.raw_total_sold or "0"),
            formatted_sold=dec(pos.formatted_total_sold),
            raw_remaining=int(pos.raw_remaining or "0"),
            formatted_remaining=dec(pos.formatted_remaining),
            eth_spent=dec(pos.total_eth_spent),
            eth_received=dec(pos.total_eth_received),
            usd_spent=dec(pos.total_usd_spent),
            usd_received=dec(pos.total_usd_received),
            gas_cost_eth=dec(pos.total_gas_cost_eth),
            gas_cost_usd=dec(pos.total_gas_cost_usd),
            average_entry_price=dec(pos.average_entry_price_usd),
            average_exit_price=dec(pos.average_exit_price_usd) if pos.average_exit_price_usd else None,
            pnl_usd=dec(pos.current_pnl_usd),
            last_trade_at=pos.last_trade_at,
        )

    def write_to(self, pos: Position) -> Position:
        pos.raw_total_bought = str(self.raw_bought)
        pos.formatted_total_bought = to_plain(self.formatted_bought)
        pos.raw_total_sold = str(self.raw_sold)
        pos.formatted_total_sold = to_plain(self.formatted_sold)
        pos.raw_remaining = str(self.raw_remaining)
        pos.formatted_remaining = to_plain(self.formatted_remaining)
        pos.total_eth_spent = to_plain(self.eth_spent)
        pos.total_eth_received = to_plain(self.eth_received)
        pos.total_usd_spent = to_plain(self.usd_spent)
        pos.total_usd_received = to_plain(self.usd_received)
        pos.total_gas_cost_eth = to_plain(self.gas_cost_eth)
        pos.total_gas_cost_usd = to_plain(self.gas_cost_usd)
        pos.average_entry_price_usd = to_plain(self.average_entry_price)
        pos.average_exit_price_usd = (
            to_plain(self.average_exit_price) if self.average_exit_price is not None else None
        )
        pos.current_pnl_usd = to_plain(self.pnl_usd)
        pos.last_trade_at = self.last_trade_at
        return pos


def apply_buy(state: LedgerState, fill: Fill) -> LedgerState:
    """Add a buy: totals grow, entry price is re-averaged, P/L re-marked."""
    with localcontext() as ctx:
        ctx.prec = _PREC
        raw_bought = state.raw_bought + fill.raw_tokens
        formatted_bought = state.formatted_bought + fill.formatted_tokens
        usd_spent = state.usd_spent + fill.usd_amount
        gas_usd = state.gas_cost_usd + fill.gas_cost_usd
        raw_remaining = state.raw_remaining + fill.raw_tokens
        formatted_remaining = state.formatted_remaining + fill.formatted_tokens

        avg_entry = usd_spent / formatted_bought if formatted_bought > 0 else _ZERO
        pnl = formatted_remaining * fill.token_price_usd - (usd_spent + gas_usd)

        return replace(
            state,
            raw_bought=raw_bought,
            formatted_bought=formatted_bought,
            raw_remaining=raw_remaining,
            formatted_remaining=formatted_remaining,
            eth_spent=state.eth_spent + fill.eth_amount,
            usd_spent=usd_spent,
            gas_cost_eth=state.gas_cost_eth + fill.gas_cost_eth,
            gas_cost_usd=gas_usd,
            average_entry_price=avg_entry,
            pnl_usd=pnl,
            last_trade_at=fill.at or state.last_trade_at,
        )


def realized_gain(state: LedgerState, fill: Fill) -> Decimal:
    """Proceeds of this sale minus the cost basis of the tokens it sold."""
    with localcontext() as ctx:
        ctx.prec = _PREC
        if state.formatted_bought <= 0:
            return fill.usd_amount
        cost_basis = state.usd_spent * (fill.formatted_tokens / state.formatted_bought)
        return fill.usd_amount - cost_basis


def apply_sell(
    state: LedgerState,
    fill: Fill,
    *,
    remaining_raw: int | None = None,
    decimals: int = 18,
) -> LedgerState:
    """Add a sell. ``remaining_raw`` overrides the computed balance with the on-chain one."""
    with localcontext() as ctx:
        ctx.prec = _PREC
        raw_sold = state.raw_sold + fill.raw_tokens
        formatted_sold = state.formatted_sold + fill.formatted_tokens
        usd_received = state.usd_received + fill.usd_amount
        gas_usd = state.gas_cost_usd + fill.gas_cost_usd

        if remaining_raw is None:
            raw_remaining = max(0, state.raw_remaining - fill.raw_tokens)
            formatted_remaining = max(_ZERO, state.formatted_remaining - fill.formatted_tokens)
        else:
            raw_remaining = remaining_raw
            formatted_remaining = format_units(remaining_raw, decimals)

        avg_exit = usd_received / formatted_sold if formatted_sold > 0 else None
        gain = realized_gain(state, fill)
        pnl = formatted_remaining * fill.token_price_usd + gain - (state.usd_spent + gas_usd)

        return replace(
            state,
            raw_sold=raw_sold,
            formatted_sold=formatted_sold,
            raw_remaining=raw_remaining,
            formatted_remaining=formatted_remaining,
            eth_received=state.eth_received + fill.eth_amount,
            usd_received=usd_received,
            gas_cost_eth=state.gas_cost_eth + fill.gas_cost_eth,
            gas_cost_usd=gas_usd,
            average_exit_price=avg_exit,
            pnl_usd=pnl,
            last_trade_at=fill.at or state.last_trade_at,
        )


class PositionLedger:
    """Applies fills to the Position row of a token."""

    async def apply_buy(self, session: AsyncSession, token_address: str, fill: Fill) -> Position:
        position = await get_position(session, token_address)
        if position is None:
            position = Position(token_address=token_address)
            state = LedgerState()
        else:
            state = LedgerState.from_position(position)

        new_state = apply_buy(state, fill)
        new_state.write_to(position)
        await save_position(session, position)
        logger.info(
            f"[LEDGER] {token_address[:10]} buy: +{to_plain(fill.formatted_tokens)} tokens, "
            f"avg entry ${to_plain(new_state.average_entry_price)}"
        )
        return position

    async def apply_sell(
        self,
        session: AsyncSession,
        token_address: str,
        fill: Fill,
        *,
        remaining_raw: int | None = None,
        decimals: int = 18,
    ) -> Position:
        position = await get_position(session, token_address)
        if position is None:
            raise NoBuyTradeError(f"No position for {token_address}")

        state = LedgerState.from_position(position)
        new_state = apply_sell(state, fill, remaining_raw=remaining_raw, decimals=decimals)
        new_state.write_to(position)
        await save_position(session, position)
        logger.info(
            f"[LEDGER] {token_address[:10]} sell: -{to_plain(fill.formatted_tokens)} tokens, "
            f"P/L ${to_plain(new_state.pnl_usd)}"
        )
        return position

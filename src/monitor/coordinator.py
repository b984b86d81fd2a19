"""Monitor coordinator: periodic re-screening, price updates, exit strategies
and operator-initiated trades.

Two sweeps feed one monitoring queue:
- open positions, every ``positions_interval_sec``
- every monitorable token (buyable/validated/sold), every ``all_interval_sec``
The queue is drained in batches; tokens in a batch are checked concurrently.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.chain.units import normalize_address, parse_units, to_plain
from src.db.persistence import (
    archive_token,
    delete_token,
    get_buy_trades,
    get_position,
    list_active_position_addresses,
    list_tokens,
    require_token,
    set_token_status,
    utcnow,
)
from src.errors import InvalidStatusError, InvalidTradeTypeError, NoBuyTradeError, TradeExecutionError
from src.models.enums import BUY_TRADE_TYPES, BUYABLE_STATUSES, MONITORABLE_STATUSES, TokenStatus, TradeType
from src.models.schemas import TokenOut
from src.models.token import Token
from src.models.trade import Trade
from src.monitor.exit_rules import check_exit_conditions
from src.notify.webhooks import PRICE_UPDATE, TOKEN_UPDATE, WebhookNotifier, event_payload
from src.queues.payloads import MonitorRequest
from src.queues.retry_queue import QueueItem, RetryQueue
from src.security.honeypot import HoneypotProbe
from src.security.liquidity import LiquidityOracle
from src.trading.executor import TradeExecutor, token_metadata
from src.trading.price import PriceOracle
from src.utils.aio import cancel_task, sleep_or_stop
from src.utils.logger import short


@dataclass
class MonitorStats:
    position_sweeps: int = 0
    full_sweeps: int = 0
    tokens_checked: int = 0
    rugpull_count: int = 0
    honeypot_count: int = 0
    trades_triggered: int = 0
    errors: int = 0


@dataclass
class MonitorOutcome:
    address: str
    checked: bool = False
    skipped_reason: str | None = None
    is_rugpull: bool = False
    price_usd: Decimal | None = None
    liquidity_eth: Decimal | None = None
    exit_reason: str | None = None
    trade_id: int | None = None


@dataclass
class TradeRequestResult:
    executed: bool
    reason: str | None = None
    trade: Trade | None = None


class MonitorCoordinator:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        liquidity: LiquidityOracle,
        honeypot: HoneypotProbe,
        prices: PriceOracle,
        executor: TradeExecutor,
        notifier: WebhookNotifier,
        queue: RetryQueue[MonitorRequest],
        positions_interval_sec: float = 30,
        all_interval_sec: float = 300,
        batch_size: int = 5,
        double_exit_multiplier: float = 2.0,
        early_exit_minutes: float = 30,
        default_buy_usd: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._liquidity = liquidity
        self._honeypot = honeypot
        self._prices = prices
        self._executor = executor
        self._notifier = notifier
        self._queue = queue
        self._positions_interval = positions_interval_sec
        self._all_interval = all_interval_sec
        self._batch_size = batch_size
        self._double_exit_multiplier = double_exit_multiplier
        self._early_exit_minutes = early_exit_minutes
        self._default_buy_usd = default_buy_usd
        self._clock = clock

        self.stats = MonitorStats()
        self._pending: set[str] = set()
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task] = []
        self._queue.on("failure", self._on_terminal_failure)

    def get_stats(self) -> dict:
        data = asdict(self.stats)
        data["pending_count"] = len(self._pending)
        data["monitoring_queue_size"] = self._queue.size()
        return data

    # ── Queue feed ────────────────────────────────────────────────────

    def enqueue(self, address: str) -> bool:
        """Queue a token for a check. Returns False if it is already queued."""
        address = normalize_address(address)
        if address in self._pending:
            return False
        self._pending.add(address)
        self._queue.enqueue(MonitorRequest(address=address))
        return True

    def _on_terminal_failure(self, item: QueueItem[MonitorRequest], error: BaseException | None) -> None:
        self._pending.discard(item.data.address)
        self.stats.errors += 1

    async def sweep_positions(self) -> int:
        async with self._session_factory() as session:
            addresses = await list_active_position_addresses(session)
        self.stats.position_sweeps += 1
        return sum(1 for a in addresses if self.enqueue(a))

    async def sweep_all(self) -> int:
        async with self._session_factory() as session:
            tokens = await list_tokens(session, MONITORABLE_STATUSES)
        self.stats.full_sweeps += 1
        return sum(1 for t in tokens if self.enqueue(t.address))

    async def process(self, item: QueueItem[MonitorRequest]) -> None:
        """Queue handler. A raise hands the item to the queue's retry policy."""
        await self.monitor_token(item.data.address)
        self._pending.discard(item.data.address)

    # ── Per-token check ───────────────────────────────────────────────

    async def _mark(self, session: AsyncSession, token: Token, status: TokenStatus) -> None:
        await set_token_status(session, token, status)
        await session.commit()
        self._notifier.notify(
            TOKEN_UPDATE, event_payload(token.address, TokenOut.model_validate(token).model_dump(mode="json"))
        )

    async def monitor_token(self, address: str) -> MonitorOutcome:
        """Rugpull re-check, price update, exit-rule evaluation for one token."""
        outcome = MonitorOutcome(address=address)
        async with self._session_factory() as session:
            token = await require_token(session, address)
            if TokenStatus(token.status) not in MONITORABLE_STATUSES:
                outcome.skipped_reason = f"status {token.status}"
                return outcome

            outcome.checked = True
            self.stats.tokens_checked += 1

            rug = await self._liquidity.rugpull_check_token(token)
            if rug.is_rugpull:
                outcome.is_rugpull = True
                self.stats.rugpull_count += 1
                logger.warning(f"[MONITOR] {token.symbol} ({short(token.address)}) rugpull: {rug.reason}")
                await self._mark(session, token, TokenStatus.RUGPULL)
                return outcome

            erc20 = token_metadata(token)
            price = await self._prices.token_price_usd(erc20, token.venue)
            outcome.price_usd = price
            outcome.liquidity_eth = rug.liquidity_eth
            self._notifier.notify(
                PRICE_UPDATE,
                event_payload(
                    token.address,
                    {
                        "priceUsd": to_plain(price),
                        "liquidity": {
                            "venue": str(rug.venue) if rug.venue else token.venue,
                            "liquidityEth": to_plain(rug.liquidity_eth) if rug.liquidity_eth is not None else None,
                        },
                    },
                ),
            )

            position = await get_position(session, token.address)
            if position is None or not position.is_active:
                return outcome

            avg_entry = Decimal(position.average_entry_price_usd or "0")
            now = self._clock()
            for trade in await get_buy_trades(session, token.address):
                reason = check_exit_conditions(
                    trade.trade_type,
                    average_entry_price=avg_entry,
                    current_price=price,
                    discovered_at=token.discovered_at,
                    now=now,
                    double_exit_multiplier=self._double_exit_multiplier,
                    early_exit_minutes=self._early_exit_minutes,
                )
                if reason is None:
                    continue

                logger.info(f"[MONITOR] {token.symbol} ({short(token.address)}) exit: {reason}")
                outcome.exit_reason = reason
                self.stats.trades_triggered += 1
                try:
                    sell = await self._executor.sell(session, token)
                    await session.commit()
                    outcome.trade_id = sell.id
                except TradeExecutionError as e:
                    await session.rollback()
                    self.stats.errors += 1
                    logger.error(f"[MONITOR] Exit sell of {short(token.address)} failed: {e}")
                # The whole balance was offered; remaining buy trades have nothing left to exit
                break

        return outcome

    async def monitor_now(self, address: str) -> MonitorOutcome:
        return await self.monitor_token(normalize_address(address))

    # ── Operator trades ───────────────────────────────────────────────

    async def buy(
        self,
        address: str,
        trade_type: TradeType | str = TradeType.USD_VALUE,
        usd_amount: Decimal | float | str | None = None,
    ) -> TradeRequestResult:
        """Re-validate, then buy. Rugpull/honeypot findings abort with a reason."""
        try:
            kind = TradeType(trade_type)
        except ValueError as e:
            raise InvalidTradeTypeError(f"Unknown trade type: {trade_type}") from e
        if kind not in BUY_TRADE_TYPES:
            raise InvalidTradeTypeError(f"{kind} is not allowed for a buy")
        usd = Decimal(str(usd_amount if usd_amount is not None else self._default_buy_usd))

        async with self._session_factory() as session:
            token = await require_token(session, address)
            if TokenStatus(token.status) not in BUYABLE_STATUSES:
                raise InvalidStatusError(f"Token {token.address} is {token.status}, cannot buy")
            if token.is_suspicious:
                raise InvalidStatusError(f"Token {token.address} is flagged suspicious")

            rug = await self._liquidity.rugpull_check_token(token)
            if rug.is_rugpull:
                self.stats.rugpull_count += 1
                await self._mark(session, token, TokenStatus.RUGPULL)
                return TradeRequestResult(executed=False, reason="rugpull")

            position = await get_position(session, token.address)
            hp = await self._honeypot.check_token(token, token_metadata(token), has_position=position is not None)
            if hp.is_honeypot:
                self.stats.honeypot_count += 1
                await self._mark(session, token, TokenStatus.HONEYPOT)
                return TradeRequestResult(executed=False, reason=f"honeypot:{hp.reason}")

            trade = await self._executor.buy(session, token, usd, kind)
            await session.commit()
            return TradeRequestResult(executed=True, trade=trade)

    async def sell(self, address: str, amount: Decimal | str | None = None) -> Trade:
        """Sell ``amount`` whole tokens, or the whole balance when omitted."""
        async with self._session_factory() as session:
            token = await require_token(session, address)
            if not await get_buy_trades(session, token.address):
                raise NoBuyTradeError(f"No buy trade recorded for {token.address}")
            raw = parse_units(amount, token.decimals) if amount is not None else None
            trade = await self._executor.sell(session, token, raw)
            await session.commit()
            return trade

    async def archive(self, address: str) -> Token:
        async with self._session_factory() as session:
            token = await archive_token(session, address)
            await session.commit()
        self._pending.discard(token.address)
        self._notifier.notify(
            TOKEN_UPDATE, event_payload(token.address, TokenOut.model_validate(token).model_dump(mode="json"))
        )
        return token

    async def delete(self, address: str) -> bool:
        async with self._session_factory() as session:
            deleted = await delete_token(session, address)
            await session.commit()
        return deleted

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def _sweep_loop(self, name: str, sweep: Callable, interval: float) -> None:
        while not self._stop.is_set():
            try:
                queued = await sweep()
                if queued:
                    logger.debug(f"[MONITOR] {name} sweep queued {queued}")
            except Exception as e:
                self.stats.errors += 1
                logger.error(f"[MONITOR] {name} sweep failed: {e}")
            if await sleep_or_stop(self._stop, interval):
                break

    def start(self) -> None:
        if self._tasks:
            return
        self._stop.clear()
        self._tasks = [
            asyncio.create_task(
                self._sweep_loop("positions", self.sweep_positions, self._positions_interval),
                name="monitor-positions",
            ),
            asyncio.create_task(
                self._sweep_loop("all", self.sweep_all, self._all_interval), name="monitor-all"
            ),
            asyncio.create_task(
                self._queue.run(self.process, batch_size=self._batch_size), name="monitor-worker"
            ),
        ]
        logger.info("[MONITOR] Started")

    async def stop(self) -> None:
        self._stop.set()
        self._queue.stop()
        for task in self._tasks:
            await cancel_task(task)
        self._tasks = []
        logger.info("[MONITOR] Stopped")

"""Security gate: active-token admission, liquidity/rugpull/honeypot screening,
promotion of survivors to the token table.

Flow per token:
  submit -> ActiveTokenSet (TTL) -> validation queue
  -> liquidity >= threshold? (else wait for the next sweep until TTL)
  -> grace sleep -> rugpull re-check -> honeypot probe
  -> persisted Token (buyable) -> monitoring queue

The processing flag on an entry guarantees at most one in-flight
validation per address; it is cleared on every exit path.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.chain.erc20 import Erc20Metadata
from src.chain.units import normalize_address
from src.db.persistence import create_token, get_token
from src.models.enums import TokenStatus
from src.models.schemas import TokenOut
from src.notify.webhooks import TOKEN_UPDATE, WebhookNotifier, event_payload
from src.queues.payloads import ValidationRequest
from src.queues.retry_queue import QueueItem, RetryQueue
from src.security.active_tokens import ActiveToken, ActiveTokenSet
from src.security.honeypot import HoneypotProbe
from src.security.liquidity import LiquidityOracle
from src.utils.aio import cancel_task, sleep_or_stop
from src.utils.logger import short

MetadataFetcher = Callable[[str], Awaitable[Erc20Metadata]]
PromotionHook = Callable[[str], object]


@dataclass
class GateStats:
    tokens_admitted: int = 0
    tokens_created: int = 0
    rugpull_count: int = 0
    honeypot_count: int = 0
    no_liquidity_count: int = 0
    expired_count: int = 0
    errors: int = 0


class SecurityGate:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        fetch_metadata: MetadataFetcher,
        liquidity: LiquidityOracle,
        honeypot: HoneypotProbe | None,
        notifier: WebhookNotifier,
        queue: RetryQueue[ValidationRequest],
        on_promoted: PromotionHook | None = None,
        ttl_sec: float = 600,
        sweep_interval_sec: float = 60,
        grace_period_sec: float = 90,
        batch_size: int = 5,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._fetch_metadata = fetch_metadata
        self._liquidity = liquidity
        self._honeypot = honeypot
        self._notifier = notifier
        self._queue = queue
        self._on_promoted = on_promoted
        self._sweep_interval = sweep_interval_sec
        self._grace_period = grace_period_sec
        self._batch_size = batch_size
        self._sleep = sleep

        self.active = ActiveTokenSet(ttl_sec, clock=clock)
        self.stats = GateStats()
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    def get_stats(self) -> dict:
        data = asdict(self.stats)
        data["active_token_count"] = len(self.active)
        data["validation_queue_size"] = self._queue.size()
        return data

    def active_snapshot(self) -> list[ActiveToken]:
        """Active entries, oldest admission first."""
        return sorted(self.active, key=lambda e: e.added_at)

    # ── Admission ─────────────────────────────────────────────────────

    async def submit(self, request: ValidationRequest) -> bool:
        """Admit a screened contract and queue it for validation.

        Returns False when the address is already active or persisted, or
        when its ERC-20 metadata cannot be read.
        """
        address = normalize_address(request.address)
        if address in self.active:
            return False

        async with self._session_factory() as session:
            if await get_token(session, address) is not None:
                logger.debug(f"[GATE] {short(address)} already persisted, skipping")
                return False

        try:
            erc20 = await self._fetch_metadata(address)
        except Exception as e:
            logger.warning(f"[GATE] {short(address)} metadata unreadable: {e}")
            return False

        entry = self.active.admit(
            address=address,
            creator_address=request.creator_address,
            discovered_at=request.discovered_at,
            erc20=erc20,
        )
        if entry is None:
            return False
        self.stats.tokens_admitted += 1
        logger.info(f"[GATE] Admitted {erc20.symbol} ({short(address)}), {len(self.active)} active")
        self._enqueue(entry)
        return True

    def _enqueue(self, entry: ActiveToken) -> None:
        entry.is_processing = True
        self._queue.enqueue(
            ValidationRequest(
                address=entry.address,
                creator_address=entry.creator_address,
                discovered_at=entry.discovered_at,
            )
        )

    def sweep(self) -> int:
        """Evict expired entries, queue every idle live one. Returns how many were queued."""
        expired = self.active.evict_expired()
        if expired:
            self.stats.expired_count += len(expired)
            logger.debug(f"[GATE] Evicted {len(expired)} expired token(s)")

        pending = self.active.pending()
        for entry in pending:
            self._enqueue(entry)
        return len(pending)

    # ── Validation worker ─────────────────────────────────────────────

    async def process(self, item: QueueItem[ValidationRequest]) -> None:
        """Queue handler for one validation request."""
        entry = self.active.get(item.data.address)
        if entry is None:
            logger.debug(f"[GATE] {short(item.data.address)} left the active set before validation")
            return
        try:
            await self._validate(entry)
        except Exception as e:
            self.stats.errors += 1
            logger.error(f"[GATE] Validation of {short(entry.address)} failed: {e}")
        finally:
            entry.is_processing = False

    async def _validate(self, entry: ActiveToken) -> None:
        result = await self._liquidity.validate_liquidity(entry.address)
        if not result.has_liquidity:
            self.stats.no_liquidity_count += 1
            return

        entry.has_liquidity = True
        entry.venue = result.venue
        entry.liquidity_eth = result.liquidity_eth

        # Give an instant rugpull time to show itself
        await self._sleep(self._grace_period)
        if entry.address not in self.active:
            logger.debug(f"[GATE] {short(entry.address)} expired during grace window")
            return

        rug = await self._liquidity.rugpull_check_active(entry)
        if rug.is_rugpull:
            self.active.remove(entry.address)
            self.stats.rugpull_count += 1
            logger.warning(f"[GATE] {entry.erc20.symbol} ({short(entry.address)}) rugpulled during grace")
            return

        if self._honeypot is not None:
            hp = await self._honeypot.check_candidate(entry.erc20, entry.venue)
            if hp.is_honeypot:
                self.active.remove(entry.address)
                self.stats.honeypot_count += 1
                logger.warning(f"[GATE] {entry.erc20.symbol} ({short(entry.address)}) honeypot: {hp.reason}")
                return

        await self._promote(entry)

    async def _promote(self, entry: ActiveToken) -> None:
        async with self._session_factory() as session:
            if await get_token(session, entry.address) is not None:
                self.active.remove(entry.address)
                return
            token = await create_token(
                session,
                address=entry.address,
                name=entry.erc20.name,
                symbol=entry.erc20.symbol,
                decimals=entry.erc20.decimals,
                creator_address=entry.creator_address,
                venue=str(entry.venue) if entry.venue else None,
                discovered_at=entry.discovered_at,
                status=TokenStatus.BUYABLE,
            )
            await session.commit()
            payload = TokenOut.model_validate(token).model_dump(mode="json")

        self.active.remove(entry.address)
        self.stats.tokens_created += 1
        logger.info(
            f"[GATE] Promoted {entry.erc20.symbol} ({short(entry.address)}) on {entry.venue} "
            f"with {entry.liquidity_eth} ETH"
        )
        self._notifier.notify(TOKEN_UPDATE, event_payload(entry.address, payload))
        if self._on_promoted is not None:
            self._on_promoted(entry.address)

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def _sweep_loop(self) -> None:
        while not self._stop.is_set():
            try:
                queued = self.sweep()
                if queued:
                    logger.debug(f"[GATE] Sweep queued {queued}, {len(self.active)} active")
            except Exception as e:
                logger.error(f"[GATE] Sweep failed: {e}")
            if await sleep_or_stop(self._stop, self._sweep_interval):
                break

    def start(self) -> None:
        if self._tasks:
            return
        self._stop.clear()
        self._tasks = [
            asyncio.create_task(self._sweep_loop(), name="gate-sweep"),
            asyncio.create_task(
                self._queue.run(self.process, batch_size=self._batch_size), name="gate-worker"
            ),
        ]
        logger.info("[GATE] Started")

    async def stop(self) -> None:
        self._stop.set()
        self._queue.stop()
        for task in self._tasks:
            await cancel_task(task)
        self._tasks = []
        logger.info("[GATE] Stopped")

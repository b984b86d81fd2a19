"""Tests for the security gate: admission, validation flow, promotion, sweeps."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from conftest import CREATOR, ETH, TOKEN, FakeNotifier, FakePrices, FakeVenue, FakeWallet, erc20, seed_token
from src.db.persistence import get_token
from src.errors import TechnicalError
from src.models.enums import TokenStatus, Venue
from src.notify.webhooks import TOKEN_UPDATE
from src.queues.payloads import ValidationRequest
from src.queues.retry_queue import RetryQueue
from src.security.gate import SecurityGate
from src.security.honeypot import HoneypotProbe
from src.security.liquidity import LiquidityOracle


class Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class GateHarness:
    def __init__(self, session_factory, *, honeypot: bool = False, reserve_wei: int | None = 2 * ETH) -> None:
        self.clock = Clock()
        self.wallet = FakeWallet()
        self.prices = FakePrices()
        self.venue = FakeVenue(Venue.UNISWAP_V2, reserve_wei=reserve_wei, wallet=self.wallet)
        self.notifier = FakeNotifier()
        self.queue: RetryQueue[ValidationRequest] = RetryQueue("token-validation")
        self.promoted: list[str] = []
        self.on_sleep = None
        self.metadata_error: Exception | None = None
        venues = {Venue.UNISWAP_V2: self.venue}
        probe = None
        if honeypot:
            probe = HoneypotProbe(venues=venues, wallet=self.wallet, price_oracle=self.prices, sleep=self._sleep)
        self.gate = SecurityGate(
            session_factory=session_factory,
            fetch_metadata=self._fetch,
            liquidity=LiquidityOracle(venues, min_liquidity_eth=1.0, rugpull_threshold_pct=20),
            honeypot=probe,
            notifier=self.notifier,
            queue=self.queue,
            on_promoted=self.promoted.append,
            ttl_sec=600,
            grace_period_sec=90,
            clock=self.clock,
            sleep=self._sleep,
        )

    async def _fetch(self, address: str):
        if self.metadata_error is not None:
            raise self.metadata_error
        return erc20(address)

    async def _sleep(self, seconds: float) -> None:
        if self.on_sleep is not None:
            self.on_sleep()

    async def submit(self, address: str = TOKEN) -> bool:
        return await self.gate.submit(
            ValidationRequest(address=address, creator_address=CREATOR, discovered_at=datetime.now(UTC).replace(tzinfo=None))
        )

    async def process_next(self) -> None:
        await self.gate.process(self.queue.dequeue())


# ═══════════════════════════════════════════════════════════════════════
# Admission
# ═══════════════════════════════════════════════════════════════════════


class TestSubmit:
    @pytest.mark.asyncio
    async def test_admits_and_queues(self, session_factory) -> None:
        h = GateHarness(session_factory)
        assert await h.submit() is True
        assert TOKEN in h.gate.active
        assert h.queue.size() == 1
        assert h.gate.active.get(TOKEN).is_processing is True

    @pytest.mark.asyncio
    async def test_already_active_is_skipped(self, session_factory) -> None:
        h = GateHarness(session_factory)
        await h.submit()
        assert await h.submit() is False
        assert h.queue.size() == 1

    @pytest.mark.asyncio
    async def test_already_persisted_is_skipped(self, session_factory) -> None:
        await seed_token(session_factory)
        h = GateHarness(session_factory)
        assert await h.submit() is False
        assert len(h.gate.active) == 0

    @pytest.mark.asyncio
    async def test_unreadable_metadata_is_skipped(self, session_factory) -> None:
        h = GateHarness(session_factory)
        h.metadata_error = TechnicalError("name() reverted")
        assert await h.submit() is False
        assert len(h.gate.active) == 0


# ═══════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════


class TestValidation:
    @pytest.mark.asyncio
    async def test_liquid_token_is_promoted(self, session_factory) -> None:
        h = GateHarness(session_factory)
        await h.submit()
        await h.process_next()

        async with session_factory() as session:
            token = await get_token(session, TOKEN)
        assert token is not None
        assert token.status == TokenStatus.BUYABLE
        assert token.venue == "uniswapv2"
        assert token.creator_address == CREATOR
        assert TOKEN not in h.gate.active
        assert h.promoted == [TOKEN]
        events = h.notifier.of(TOKEN_UPDATE)
        assert events[0]["tokenAddress"] == TOKEN
        assert events[0]["data"]["status"] == "buyable"
        assert h.gate.stats.tokens_created == 1

    @pytest.mark.asyncio
    async def test_no_liquidity_stays_active_for_next_sweep(self, session_factory) -> None:
        h = GateHarness(session_factory, reserve_wei=ETH // 2)
        await h.submit()
        await h.process_next()

        entry = h.gate.active.get(TOKEN)
        assert entry is not None
        assert entry.is_processing is False
        assert h.gate.stats.no_liquidity_count == 1
        assert h.promoted == []

    @pytest.mark.asyncio
    async def test_rugpull_during_grace_is_dropped(self, session_factory) -> None:
        h = GateHarness(session_factory)

        def pull() -> None:
            h.venue.reserve_wei = ETH // 10

        h.on_sleep = pull
        await h.submit()
        await h.process_next()

        assert TOKEN not in h.gate.active
        assert h.gate.stats.rugpull_count == 1
        async with session_factory() as session:
            assert await get_token(session, TOKEN) is None

    @pytest.mark.asyncio
    async def test_expired_during_grace_is_not_promoted(self, session_factory) -> None:
        h = GateHarness(session_factory)

        def expire() -> None:
            h.clock.now += 601
            h.gate.sweep()

        h.on_sleep = expire
        await h.submit()
        await h.process_next()

        assert h.promoted == []
        async with session_factory() as session:
            assert await get_token(session, TOKEN) is None

    @pytest.mark.asyncio
    async def test_honeypot_is_dropped(self, session_factory) -> None:
        h = GateHarness(session_factory, honeypot=True)
        h.venue.sell_errors = [RuntimeError("TRANSFER_FROM_FAILED")]
        await h.submit()
        await h.process_next()

        assert TOKEN not in h.gate.active
        assert h.gate.stats.honeypot_count == 1
        assert h.promoted == []

    @pytest.mark.asyncio
    async def test_honeypot_probe_passes(self, session_factory) -> None:
        h = GateHarness(session_factory, honeypot=True)
        await h.submit()
        await h.process_next()
        assert h.promoted == [TOKEN]

    @pytest.mark.asyncio
    async def test_price_outage_keeps_token_active(self, session_factory) -> None:
        h = GateHarness(session_factory, honeypot=True)
        h.prices.usd_to_wei = AsyncMock(side_effect=TechnicalError("ETH/USD price unavailable: RPC timeout"))
        await h.submit()
        await h.process_next()

        entry = h.gate.active.get(TOKEN)
        assert entry is not None
        assert entry.is_processing is False
        assert h.gate.stats.honeypot_count == 0
        assert h.gate.stats.errors == 1
        assert h.promoted == []

    @pytest.mark.asyncio
    async def test_error_clears_processing_flag(self, session_factory) -> None:
        h = GateHarness(session_factory)

        def boom() -> None:
            h.venue.pool_error = RuntimeError("rpc down")

        h.on_sleep = boom
        await h.submit()
        await h.process_next()

        entry = h.gate.active.get(TOKEN)
        assert entry is not None
        assert entry.is_processing is False
        assert h.gate.stats.errors == 1


# ═══════════════════════════════════════════════════════════════════════
# Sweeps
# ═══════════════════════════════════════════════════════════════════════


class TestSweep:
    @pytest.mark.asyncio
    async def test_sweep_requeues_idle_entries_once(self, session_factory) -> None:
        h = GateHarness(session_factory, reserve_wei=ETH // 2)
        await h.submit()
        # In flight: a sweep must not queue it again
        assert h.gate.sweep() == 0
        await h.process_next()

        assert h.gate.sweep() == 1
        assert h.gate.sweep() == 0
        assert h.queue.size() == 1

    @pytest.mark.asyncio
    async def test_sweep_evicts_expired(self, session_factory) -> None:
        h = GateHarness(session_factory, reserve_wei=ETH // 2)
        await h.submit()
        await h.process_next()
        h.clock.now += 600
        assert h.gate.sweep() == 0
        assert len(h.gate.active) == 0
        assert h.gate.stats.expired_count == 1

    @pytest.mark.asyncio
    async def test_stats(self, session_factory) -> None:
        h = GateHarness(session_factory)
        await h.submit()
        stats = h.gate.get_stats()
        assert stats["active_token_count"] == 1
        assert stats["validation_queue_size"] == 1
        assert stats["tokens_admitted"] == 1

"""Shared test fixtures and chain/venue fakes."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.chain.erc20 import Erc20Metadata
from src.db.persistence import create_token
from src.errors import VenueNotImplementedError
from src.models.base import Base
from src.models.enums import TokenStatus, Venue
from src.models.token import Token
from src.trading.venues.base import PoolLiquidity, SwapFill, VenueAdapter

# Digit-only addresses are their own EIP-55 checksum form
TOKEN = "0x1111111111111111111111111111111111111111"
TOKEN_B = "0x2222222222222222222222222222222222222222"
CREATOR = "0x3333333333333333333333333333333333333333"
WETH = "0x4200000000000000000000000000000000000006"
USDC = "0x5555555555555555555555555555555555555555"
POOL = "0x6666666666666666666666666666666666666666"

ETH = 10**18


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite shared by every session of one test.

    StaticPool keeps the single connection alive, otherwise each session
    would see its own empty database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Persistence functions use flush() only; rollback cleans up at the end."""
    async with session_factory() as session:
        yield session
        await session.rollback()


async def seed_token(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    address: str = TOKEN,
    status: TokenStatus = TokenStatus.BUYABLE,
    venue: Venue | None = Venue.UNISWAP_V2,
    decimals: int = 18,
    discovered_at: datetime | None = None,
) -> Token:
    async with session_factory() as session:
        token = await create_token(
            session,
            address=address,
            name="Test Token",
            symbol="TEST",
            decimals=decimals,
            creator_address=CREATOR,
            venue=str(venue) if venue else None,
            discovered_at=discovered_at,
            status=status,
        )
        await session.commit()
        return token


def erc20(address: str = TOKEN, decimals: int = 18) -> Erc20Metadata:
    return Erc20Metadata(address=address, name="Test Token", symbol="TEST", decimals=decimals, total_supply=10**27)


# ═══════════════════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════════════════


class FakeNotifier:
    """Records notify() calls instead of POSTing."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def notify(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))

    def of(self, event: str) -> list[dict]:
        return [p for e, p in self.events if e == event]


class FakeWallet:
    """Token balances keyed by address; venues move them on swaps."""

    address = "0x7777777777777777777777777777777777777777"

    def __init__(self) -> None:
        self.balances: dict[str, int] = {}

    async def get_token_balance(self, token_address: str) -> int:
        return self.balances.get(token_address, 0)

    async def get_eth_balance(self) -> Decimal:
        return Decimal(1)


class FakeVenue(VenueAdapter):
    """Scriptable venue.

    reserve_wei: WETH side of the pool (None: no pool)
    price_eth: ETH per whole token for quotes and fills
    buy_errors/sell_errors: raised in order before a swap succeeds
    """

    def __init__(
        self,
        venue: Venue = Venue.UNISWAP_V2,
        *,
        reserve_wei: int | None = 2 * ETH,
        price_eth: Decimal = Decimal("0.001"),
        wallet: FakeWallet | None = None,
        decimals: int = 18,
    ) -> None:
        self.venue = venue
        self.reserve_wei = reserve_wei
        self.price_eth = price_eth
        self.wallet = wallet
        self.decimals = decimals
        self.buy_errors: list[Exception] = []
        self.sell_errors: list[Exception] = []
        self.pool_error: Exception | None = None
        self.tokens_per_buy: int | None = None
        self.buys: list[int] = []
        self.sells: list[int] = []

    async def get_pool_liquidity(self, token_address: str) -> PoolLiquidity | None:
        if self.pool_error is not None:
            raise self.pool_error
        if self.reserve_wei is None:
            return None
        return PoolLiquidity(venue=self.venue, pool_address=POOL, base_reserve_wei=self.reserve_wei)

    async def quote(self, path: list[str], amount_in: int) -> int:
        # token -> WETH quote for one whole token
        return int(self.price_eth * ETH * amount_in // 10**self.decimals)

    async def swap_buy(self, token: Erc20Metadata, eth_amount_wei: int) -> SwapFill:
        if self.buy_errors:
            raise self.buy_errors.pop(0)
        received = self.tokens_per_buy
        if received is None:
            received = int(Decimal(eth_amount_wei) / self.price_eth) * 10**token.decimals // ETH
        if self.wallet is not None:
            self.wallet.balances[token.address] = self.wallet.balances.get(token.address, 0) + received
        self.buys.append(eth_amount_wei)
        return SwapFill(tx_hash=f"0xbuy{len(self.buys)}", token_amount_raw=received, eth_amount_wei=eth_amount_wei, gas_cost_wei=10**14)

    async def swap_sell(self, token: Erc20Metadata, raw_amount: int) -> SwapFill:
        if self.sell_errors:
            raise self.sell_errors.pop(0)
        if self.wallet is not None:
            self.wallet.balances[token.address] = self.wallet.balances.get(token.address, 0) - raw_amount
        eth_out = int(self.price_eth * ETH * raw_amount // 10**token.decimals)
        self.sells.append(raw_amount)
        return SwapFill(tx_hash=f"0xsell{len(self.sells)}", token_amount_raw=raw_amount, eth_amount_wei=eth_out, gas_cost_wei=10**14)


class FakeUnimplementedVenue(FakeVenue):
    async def swap_buy(self, token: Erc20Metadata, eth_amount_wei: int) -> SwapFill:
        raise VenueNotImplementedError(self.venue, "buy")

    async def swap_sell(self, token: Erc20Metadata, raw_amount: int) -> SwapFill:
        raise VenueNotImplementedError(self.venue, "sell")


class FakePrices:
    """Fixed ETH/USD and token/ETH prices."""

    def __init__(self, eth_usd: Decimal = Decimal(2000), token_usd: Decimal = Decimal(2)) -> None:
        self.eth_usd = eth_usd
        self.token_usd = token_usd

    async def eth_price_usd(self) -> Decimal:
        return self.eth_usd

    async def usd_to_wei(self, usd_amount) -> int:
        return int(Decimal(str(usd_amount)) / self.eth_usd * ETH)

    async def token_price_eth(self, token, venue) -> Decimal:
        return self.token_usd / self.eth_usd

    async def token_price_usd(self, token, venue) -> Decimal:
        return self.token_usd


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()

"""Tests for token/trade/position persistence and the status lifecycle."""

import pytest

from conftest import CREATOR, TOKEN, TOKEN_B, seed_token
from src.db.persistence import (
    archive_token,
    count_tokens_by_status,
    create_token,
    delete_token,
    get_buy_trades,
    get_token,
    insert_trade,
    list_positions,
    list_tokens,
    require_token,
    save_position,
    set_token_status,
)
from src.errors import InvalidAddressError, InvalidStatusError, TokenNotFoundError
from src.models.enums import TokenStatus, can_transition
from src.models.trade import Position, Trade


def _trade(side: str, trade_type: str, address: str = TOKEN) -> Trade:
    return Trade(
        token_address=address,
        token_name="Test Token",
        tx_hash=f"0x{side}",
        side=side,
        trade_type=trade_type,
        venue="uniswapv2",
    )


# ── Lifecycle graph ────────────────────────────────────────────────────


class TestTransitions:
    def test_terminal_statuses_only_archive(self):
        for terminal in (TokenStatus.RUGPULL, TokenStatus.HONEYPOT):
            assert can_transition(terminal, TokenStatus.ARCHIVED)
            assert not can_transition(terminal, TokenStatus.BUYABLE)
            assert not can_transition(terminal, TokenStatus.SOLD)

    def test_archive_reachable_from_everything(self):
        for status in TokenStatus:
            assert can_transition(status, TokenStatus.ARCHIVED)

    def test_sold_can_be_bought_again(self):
        assert can_transition(TokenStatus.SOLD, TokenStatus.BUYABLE)

    def test_archived_is_final(self):
        assert not can_transition(TokenStatus.ARCHIVED, TokenStatus.BUYABLE)


# ── Tokens ─────────────────────────────────────────────────────────────


class TestTokens:
    @pytest.mark.asyncio
    async def test_create_sanitizes_name(self, db_session):
        token = await create_token(
            db_session,
            address=TOKEN,
            name="Evil\x00Coin  ",
            symbol="",
            decimals=9,
            creator_address=CREATOR,
            venue="uniswapv3",
        )
        assert token.name == "EvilCoin"
        assert token.symbol is None
        assert token.status == "buyable"
        assert token.discovered_at is not None

    @pytest.mark.asyncio
    async def test_lookup_normalizes_address(self, db_session):
        await create_token(
            db_session, address=TOKEN, name="T", symbol="T", decimals=18, creator_address=None, venue=None
        )
        assert await get_token(db_session, TOKEN.lower()) is not None
        with pytest.raises(InvalidAddressError):
            await get_token(db_session, "not-an-address")

    @pytest.mark.asyncio
    async def test_require_missing_token(self, db_session):
        with pytest.raises(TokenNotFoundError):
            await require_token(db_session, TOKEN)

    @pytest.mark.asyncio
    async def test_illegal_transition_rejected(self, session_factory):
        await seed_token(session_factory, status=TokenStatus.RUGPULL)
        async with session_factory() as session:
            token = await require_token(session, TOKEN)
            with pytest.raises(InvalidStatusError):
                await set_token_status(session, token, TokenStatus.BUYABLE)
            archived = await archive_token(session, TOKEN)
            assert archived.status == "archived"

    @pytest.mark.asyncio
    async def test_list_by_status_and_counts(self, session_factory):
        await seed_token(session_factory, address=TOKEN)
        await seed_token(session_factory, address=TOKEN_B, status=TokenStatus.HONEYPOT)
        async with session_factory() as session:
            buyable = await list_tokens(session, [TokenStatus.BUYABLE])
            everything = await list_tokens(session)
            counts = await count_tokens_by_status(session)

        assert [t.address for t in buyable] == [TOKEN]
        assert len(everything) == 2
        assert counts["buyable"] == 1
        assert counts["honeypot"] == 1
        assert counts["sold"] == 0

    @pytest.mark.asyncio
    async def test_delete_cascades(self, session_factory):
        await seed_token(session_factory)
        async with session_factory() as session:
            await insert_trade(session, _trade("buy", "usdValue"))
            await save_position(session, Position(token_address=TOKEN, raw_remaining="5"))
            await session.commit()

        async with session_factory() as session:
            assert await delete_token(session, TOKEN) is True
            await session.commit()

        async with session_factory() as session:
            assert await get_token(session, TOKEN) is None
            assert await get_buy_trades(session, TOKEN) == []
            assert await list_positions(session) == []
            assert await delete_token(session, TOKEN) is False


# ── Trades and positions ───────────────────────────────────────────────


class TestTradesAndPositions:
    @pytest.mark.asyncio
    async def test_buy_trades_oldest_first(self, session_factory):
        await seed_token(session_factory)
        async with session_factory() as session:
            await insert_trade(session, _trade("buy", "doubleExit"))
            await insert_trade(session, _trade("sell", "fullSell"))
            await insert_trade(session, _trade("buy", "earlyExit"))
            buys = await get_buy_trades(session, TOKEN)

        assert [t.trade_type for t in buys] == ["doubleExit", "earlyExit"]

    @pytest.mark.asyncio
    async def test_active_positions_filter(self, session_factory):
        await seed_token(session_factory, address=TOKEN)
        await seed_token(session_factory, address=TOKEN_B)
        async with session_factory() as session:
            await save_position(session, Position(token_address=TOKEN, raw_remaining="1"))
            await save_position(session, Position(token_address=TOKEN_B, raw_remaining="0"))
            active = await list_positions(session, active_only=True)
            every = await list_positions(session)

        assert [p.token_address for p in active] == [TOKEN]
        assert len(every) == 2

"""Data persistence layer for tokens, trades and positions.

Functions take an open session and only flush; callers own the
transaction (commit/rollback).
"""

from collections.abc import Iterable
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.chain.units import normalize_address
from src.errors import InvalidStatusError, TokenNotFoundError
from src.models.enums import TokenStatus, TradeSide, can_transition
from src.models.token import Token
from src.models.trade import Position, Trade


def _sanitize(val: str | None) -> str | None:
    """Strip null bytes and control chars some tokens put in their name."""
    if val is None:
        return None
    return val.replace("\x00", "").strip() or None


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(UTC).replace(tzinfo=None)


# ── Tokens ─────────────────────────────────────────────────────────────


async def get_token(session: AsyncSession, address: str) -> Token | None:
    """Find a token by its contract address."""
    stmt = select(Token).where(Token.address == normalize_address(address))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def require_token(session: AsyncSession, address: str) -> Token:
    token = await get_token(session, address)
    if token is None:
        raise TokenNotFoundError(f"Token {address} not found")
    return token


async def list_tokens(
    session: AsyncSession, statuses: Iterable[str] | None = None
) -> list[Token]:
    """All tokens, optionally restricted to a status set."""
    stmt = select(Token).order_by(Token.discovered_at.desc())
    if statuses is not None:
        stmt = stmt.where(Token.status.in_([str(s) for s in statuses]))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_token(
    session: AsyncSession,
    *,
    address: str,
    name: str,
    symbol: str | None,
    decimals: int,
    creator_address: str | None,
    venue: str | None,
    discovered_at: datetime | None = None,
    status: TokenStatus = TokenStatus.BUYABLE,
) -> Token:
    """Insert a newly promoted token."""
    token = Token(
        address=normalize_address(address),
        name=_sanitize(name) or "unknown",
        symbol=_sanitize(symbol),
        decimals=decimals,
        creator_address=creator_address,
        venue=venue,
        status=str(status),
        is_suspicious=False,
        discovered_at=discovered_at or utcnow(),
        updated_at=utcnow(),
    )
    session.add(token)
    await session.flush()
    return token


async def set_token_status(
    session: AsyncSession, token: Token, status: TokenStatus
) -> Token:
    """Move a token to a new status, enforcing the lifecycle graph."""
    current = TokenStatus(token.status)
    if not can_transition(current, status):
        raise InvalidStatusError(
            f"Token {token.address}: transition {current} -> {status} not allowed"
        )
    if current != status:
        logger.info(f"[DB] {token.symbol or token.address}: {current} -> {status}")
    token.status = str(status)
    token.updated_at = utcnow()
    await session.flush()
    return token


async def archive_token(session: AsyncSession, address: str) -> Token:
    token = await require_token(session, address)
    return await set_token_status(session, token, TokenStatus.ARCHIVED)


async def delete_token(session: AsyncSession, address: str) -> bool:
    """Remove a token with its trades and position. Returns False if absent."""
    token = await get_token(session, address)
    if token is None:
        return False
    await session.execute(delete(Trade).where(Trade.token_address == token.address))
    await session.execute(delete(Position).where(Position.token_address == token.address))
    await session.delete(token)
    await session.flush()
    return True


async def count_tokens_by_status(session: AsyncSession) -> dict[str, int]:
    stmt = select(Token.status, func.count(Token.id)).group_by(Token.status)
    result = await session.execute(stmt)
    counts = {str(s): 0 for s in TokenStatus}
    for status, count in result.all():
        counts[status] = count
    return counts


# ── Trades ─────────────────────────────────────────────────────────────


async def insert_trade(session: AsyncSession, trade: Trade) -> Trade:
    """Append a settled trade. Trades are never updated afterwards."""
    if trade.created_at is None:
        trade.created_at = utcnow()
    session.add(trade)
    await session.flush()
    return trade


async def list_trades(
    session: AsyncSession, token_address: str | None = None, limit: int = 200
) -> list[Trade]:
    stmt = select(Trade).order_by(Trade.id.desc()).limit(limit)
    if token_address is not None:
        stmt = stmt.where(Trade.token_address == normalize_address(token_address))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_buy_trades(session: AsyncSession, token_address: str) -> list[Trade]:
    """Buy-side trades for a token, oldest first."""
    stmt = (
        select(Trade)
        .where(
            Trade.token_address == normalize_address(token_address),
            Trade.side == str(TradeSide.BUY),
        )
        .order_by(Trade.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ── Positions ──────────────────────────────────────────────────────────


async def get_position(session: AsyncSession, token_address: str) -> Position | None:
    stmt = select(Position).where(Position.token_address == normalize_address(token_address))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def save_position(session: AsyncSession, position: Position) -> Position:
    """Insert or update a position row."""
    position.updated_at = utcnow()
    session.add(position)
    await session.flush()
    return position


async def list_positions(session: AsyncSession, *, active_only: bool = False) -> list[Position]:
    stmt = select(Position).order_by(Position.last_trade_at.desc())
    result = await session.execute(stmt)
    positions = list(result.scalars().all())
    if active_only:
        # raw_remaining is a string column; filter numerically in Python
        positions = [p for p in positions if p.is_active]
    return positions


async def list_active_position_addresses(session: AsyncSession) -> list[str]:
    return [p.token_address for p in await list_positions(session, active_only=True)]

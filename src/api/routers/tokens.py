"""Token endpoints: list, detail and per-token operator actions."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_services, get_session
from src.db.persistence import get_position, list_tokens, list_trades, require_token
from src.errors import InvalidStatusError
from src.models.enums import TokenStatus, TradeType
from src.models.schemas import PositionOut, TokenOut, TradeOut
from src.services import Services

router = APIRouter(prefix="/api/v1/tokens", tags=["tokens"])


class BuyRequest(BaseModel):
    trade_type: str = TradeType.USD_VALUE.value
    usd_amount: Decimal | None = Field(None, gt=0)


class SellRequest(BaseModel):
    amount: Decimal | None = Field(None, gt=0, description="Whole tokens; full balance when omitted")


class BuyResponse(BaseModel):
    executed: bool
    reason: str | None = None
    trade: TradeOut | None = None


class MonitorResponse(BaseModel):
    address: str
    checked: bool
    skipped_reason: str | None = None
    is_rugpull: bool
    price_usd: str | None = None
    liquidity_eth: str | None = None
    exit_reason: str | None = None
    trade_id: int | None = None


@router.get("", response_model=list[TokenOut])
async def get_tokens(
    session: AsyncSession = Depends(get_session),
    status: list[str] | None = Query(None, description="Filter by status (repeatable)"),
) -> list[TokenOut]:
    if status:
        allowed = {s.value for s in TokenStatus}
        unknown = [s for s in status if s not in allowed]
        if unknown:
            raise InvalidStatusError(f"Unknown status filter: {', '.join(unknown)}")
    tokens = await list_tokens(session, status or None)
    return [TokenOut.model_validate(t) for t in tokens]


@router.get("/{address}")
async def get_token_detail(address: str, session: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    """Token row with its position and most recent trades."""
    token = await require_token(session, address)
    position = await get_position(session, token.address)
    trades = await list_trades(session, token.address, limit=50)
    return {
        "token": TokenOut.model_validate(token).model_dump(mode="json"),
        "position": PositionOut.model_validate(position).model_dump(mode="json") if position else None,
        "trades": [TradeOut.model_validate(t).model_dump(mode="json") for t in trades],
    }


@router.post("/{address}/buy", response_model=BuyResponse)
async def buy_token(
    address: str,
    body: BuyRequest,
    services: Services = Depends(get_services),
) -> BuyResponse:
    result = await services.monitor.buy(address, body.trade_type, body.usd_amount)
    return BuyResponse(
        executed=result.executed,
        reason=result.reason,
        trade=TradeOut.model_validate(result.trade) if result.trade else None,
    )


@router.post("/{address}/sell", response_model=TradeOut)
async def sell_token(
    address: str,
    body: SellRequest,
    services: Services = Depends(get_services),
) -> TradeOut:
    trade = await services.monitor.sell(address, body.amount)
    return TradeOut.model_validate(trade)


@router.post("/{address}/monitor", response_model=MonitorResponse)
async def monitor_token(address: str, services: Services = Depends(get_services)) -> MonitorResponse:
    outcome = await services.monitor.monitor_now(address)
    return MonitorResponse(
        address=outcome.address,
        checked=outcome.checked,
        skipped_reason=outcome.skipped_reason,
        is_rugpull=outcome.is_rugpull,
        price_usd=str(outcome.price_usd) if outcome.price_usd is not None else None,
        liquidity_eth=str(outcome.liquidity_eth) if outcome.liquidity_eth is not None else None,
        exit_reason=outcome.exit_reason,
        trade_id=outcome.trade_id,
    )


@router.post("/{address}/archive", response_model=TokenOut)
async def archive(address: str, services: Services = Depends(get_services)) -> TokenOut:
    token = await services.monitor.archive(address)
    return TokenOut.model_validate(token)


@router.delete("/{address}")
async def delete(address: str, services: Services = Depends(get_services)) -> dict[str, bool]:
    return {"deleted": await services.monitor.delete(address)}

"""Trade history."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_session
from src.db.persistence import list_trades
from src.models.schemas import TradeOut

router = APIRouter(prefix="/api/v1/trades", tags=["trades"])


@router.get("", response_model=list[TradeOut])
async def get_trades(
    session: AsyncSession = Depends(get_session),
    token: str | None = Query(None, description="Token address"),
    limit: int = Query(100, ge=1, le=500),
) -> list[TradeOut]:
    trades = await list_trades(session, token, limit=limit)
    return [TradeOut.model_validate(t) for t in trades]

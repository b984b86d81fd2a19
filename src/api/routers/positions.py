"""Positions and P/L."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_session
from src.db.persistence import list_positions
from src.models.schemas import PositionOut

router = APIRouter(prefix="/api/v1/positions", tags=["positions"])


@router.get("", response_model=list[PositionOut])
async def get_positions(
    session: AsyncSession = Depends(get_session),
    active_only: bool = Query(False),
) -> list[PositionOut]:
    positions = await list_positions(session, active_only=active_only)
    return [PositionOut.model_validate(p) for p in positions]

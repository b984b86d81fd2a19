"""Health check: DB and RPC reachability."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_services, get_session
from src.services import Services

router = APIRouter(prefix="/api/v1", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    db_ok: bool
    rpc_ok: bool
    block_height: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check(
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
) -> HealthResponse:
    db_ok = False
    try:
        await session.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        pass

    height = None
    try:
        height = await services.provider.current_height()
    except Exception:
        pass

    rpc_ok = height is not None
    return HealthResponse(
        status="ok" if db_ok and rpc_ok else "degraded",
        version="0.1.0",
        db_ok=db_ok,
        rpc_ok=rpc_ok,
        block_height=height,
    )

"""Aggregate pipeline statistics and wallet info."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from src.api.dependencies import get_services
from src.services import Services

router = APIRouter(prefix="/api/v1", tags=["stats"])


@router.get("/stats")
async def get_stats(services: Services = Depends(get_services)) -> dict[str, Any]:
    """Token counts per status, queue depths, per-stage counters."""
    return await services.get_stats()


@router.get("/wallet")
async def wallet_info(services: Services = Depends(get_services)) -> dict[str, Any]:
    return await services.wallet_info()

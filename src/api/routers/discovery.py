"""Discovery control: status, start/stop, unverified retry, gate snapshot."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.api.dependencies import get_services
from src.chain.units import to_plain
from src.services import Services

router = APIRouter(prefix="/api/v1/discovery", tags=["discovery"])


class DiscoveryStatus(BaseModel):
    is_running: bool
    last_scanned_block: int | None = None
    blocks_scanned: int
    contracts_discovered: int
    valid_contracts: int
    invalid_contracts: int
    unverified_contracts: int


class ToggleResponse(BaseModel):
    changed: bool
    is_running: bool


class ActiveTokenOut(BaseModel):
    address: str
    symbol: str
    creator_address: str | None = None
    discovered_at: datetime
    has_liquidity: bool
    venue: str | None = None
    liquidity_eth: str | None = None
    is_processing: bool


def _status(services: Services) -> DiscoveryStatus:
    return DiscoveryStatus(**services.discovery.get_stats())


@router.get("", response_model=DiscoveryStatus)
async def discovery_status(services: Services = Depends(get_services)) -> DiscoveryStatus:
    return _status(services)


@router.post("/start", response_model=ToggleResponse)
async def start_discovery(
    services: Services = Depends(get_services),
    from_block: int | None = Query(None, ge=0),
) -> ToggleResponse:
    changed = services.discovery.start(from_block=from_block)
    return ToggleResponse(changed=changed, is_running=services.discovery.is_running)


@router.post("/stop", response_model=ToggleResponse)
async def stop_discovery(services: Services = Depends(get_services)) -> ToggleResponse:
    changed = await services.discovery.stop()
    return ToggleResponse(changed=changed, is_running=services.discovery.is_running)


@router.get("/unverified")
async def unverified(services: Services = Depends(get_services)) -> dict[str, list[str]]:
    return {"addresses": services.discovery.unverified_addresses}


@router.post("/retry-unverified")
async def retry_unverified(services: Services = Depends(get_services)) -> dict[str, int]:
    forwarded = await services.discovery.retry_unverified()
    return {"forwarded": forwarded, "remaining": len(services.discovery.unverified_addresses)}


@router.get("/active", response_model=list[ActiveTokenOut])
async def active_tokens(services: Services = Depends(get_services)) -> list[ActiveTokenOut]:
    return [
        ActiveTokenOut(
            address=e.address,
            symbol=e.erc20.symbol,
            creator_address=e.creator_address,
            discovered_at=e.discovered_at,
            has_liquidity=e.has_liquidity,
            venue=str(e.venue) if e.venue else None,
            liquidity_eth=to_plain(e.liquidity_eth) if e.liquidity_eth is not None else None,
            is_processing=e.is_processing,
        )
        for e in services.gate.active_snapshot()
    ]

"""Webhook subscriptions."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from src.api.dependencies import get_services
from src.services import Services

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


class SubscribeRequest(BaseModel):
    url: str
    events: list[str] | None = None


class SubscriptionOut(BaseModel):
    id: str
    url: str
    events: list[str]
    created_at: datetime


@router.get("", response_model=list[SubscriptionOut])
async def list_subscriptions(services: Services = Depends(get_services)) -> list[SubscriptionOut]:
    return [
        SubscriptionOut(id=s.id, url=s.url, events=sorted(s.events), created_at=s.created_at)
        for s in services.notifier.list_subscriptions()
    ]


@router.post("", status_code=status.HTTP_201_CREATED)
async def subscribe(body: SubscribeRequest, services: Services = Depends(get_services)) -> dict[str, str]:
    try:
        sub_id = services.notifier.subscribe(body.url, body.events)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return {"id": sub_id}


@router.delete("/{subscription_id}")
async def unsubscribe(subscription_id: str, services: Services = Depends(get_services)) -> dict[str, bool]:
    if not services.notifier.unsubscribe(subscription_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return {"removed": True}

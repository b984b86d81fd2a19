"""Webhook fan-out for pipeline events.

Delivery is best effort: each subscriber gets one POST with a short
timeout, failures are logged and never retried or raised.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx
from loguru import logger

TOKEN_UPDATE = "tokenUpdateHook"
PRICE_UPDATE = "priceUpdateHook"
TRADE_RECEIVE = "tradeReceiveHook"

EVENT_TYPES = frozenset({TOKEN_UPDATE, PRICE_UPDATE, TRADE_RECEIVE})


@dataclass
class Subscription:
    id: str
    url: str
    events: frozenset[str]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def event_payload(token_address: str, data: Any) -> dict[str, Any]:
    return {"tokenAddress": token_address, "data": data}


def _new_subscription_id() -> str:
    return f"sub_{int(time.time() * 1000)}_{random.randint(0, 36**6):x}"


class WebhookNotifier:
    def __init__(self, *, timeout_sec: float = 5.0, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(timeout=timeout_sec)
        self._subscriptions: dict[str, Subscription] = {}
        self._pending: set[asyncio.Task] = set()
        self.delivered = 0
        self.failed = 0

    async def close(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self._client.aclose()

    # ── Subscriptions ─────────────────────────────────────────────────

    def subscribe(self, url: str, events: list[str] | None = None) -> str:
        """Register ``url`` for ``events`` (all events when omitted)."""
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"Webhook URL must be http(s): {url}")
        wanted = frozenset(events) if events else EVENT_TYPES
        unknown = wanted - EVENT_TYPES
        if unknown:
            raise ValueError(f"Unknown webhook events: {sorted(unknown)}")
        sub = Subscription(id=_new_subscription_id(), url=url, events=wanted)
        self._subscriptions[sub.id] = sub
        logger.info(f"[WEBHOOK] Subscribed {url} to {sorted(wanted)} ({sub.id})")
        return sub.id

    def unsubscribe(self, subscription_id: str) -> bool:
        removed = self._subscriptions.pop(subscription_id, None)
        if removed:
            logger.info(f"[WEBHOOK] Unsubscribed {removed.url} ({subscription_id})")
        return removed is not None

    def list_subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions.values())

    # ── Delivery ──────────────────────────────────────────────────────

    async def _deliver(self, sub: Subscription, body: dict[str, Any]) -> bool:
        try:
            resp = await self._client.post(sub.url, json=body)
            if resp.status_code >= 400:
                self.failed += 1
                logger.warning(f"[WEBHOOK] {sub.url} answered HTTP {resp.status_code} for {body['event']}")
                return False
            self.delivered += 1
            return True
        except httpx.HTTPError as e:
            self.failed += 1
            logger.warning(f"[WEBHOOK] {sub.url} delivery failed for {body['event']}: {e}")
            return False

    async def broadcast(self, event: str, payload: dict[str, Any]) -> int:
        """POST ``{"event": event, **payload}`` to every matching subscriber.

        Returns the number of successful deliveries.
        """
        targets = [s for s in self._subscriptions.values() if event in s.events]
        if not targets:
            return 0
        body = {"event": event, **payload}
        results = await asyncio.gather(*(self._deliver(s, body) for s in targets))
        return sum(1 for ok in results if ok)

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        """Fire-and-forget broadcast; the caller never waits on subscribers."""
        task = asyncio.create_task(self.broadcast(event, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

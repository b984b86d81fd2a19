"""Transient set of discovered tokens awaiting liquidity and risk checks.

Owned by the security gate; nothing else mutates it.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.chain.erc20 import Erc20Metadata
from src.models.enums import Venue


@dataclass
class ActiveToken:
    address: str
    creator_address: str | None
    discovered_at: datetime
    added_at: float
    expires_at: float
    erc20: Erc20Metadata
    has_liquidity: bool = False
    venue: Venue | None = None
    liquidity_eth: Decimal | None = None
    is_processing: bool = False

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


def split_expired(
    entries: dict[str, ActiveToken], now: float
) -> tuple[dict[str, ActiveToken], list[ActiveToken]]:
    """Partition entries into (still alive, expired). Does not mutate ``entries``."""
    alive: dict[str, ActiveToken] = {}
    expired: list[ActiveToken] = []
    for address, entry in entries.items():
        if entry.is_expired(now):
            expired.append(entry)
        else:
            alive[address] = entry
    return alive, expired


class ActiveTokenSet:
    """address -> ActiveToken with a fixed TTL from admission."""

    def __init__(self, ttl_sec: float, *, clock: Callable[[], float] = time.time) -> None:
        if ttl_sec <= 0:
            raise ValueError("ttl_sec must be positive")
        self._ttl = ttl_sec
        self._clock = clock
        self._entries: dict[str, ActiveToken] = {}

    def __contains__(self, address: str) -> bool:
        return address in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ActiveToken]:
        return iter(list(self._entries.values()))

    def get(self, address: str) -> ActiveToken | None:
        return self._entries.get(address)

    def admit(
        self,
        *,
        address: str,
        creator_address: str | None,
        discovered_at: datetime,
        erc20: Erc20Metadata,
    ) -> ActiveToken | None:
        """Add a token. Returns None if the address is already active."""
        if address in self._entries:
            return None
        now = self._clock()
        entry = ActiveToken(
            address=address,
            creator_address=creator_address,
            discovered_at=discovered_at,
            added_at=now,
            expires_at=now + self._ttl,
            erc20=erc20,
        )
        self._entries[address] = entry
        return entry

    def remove(self, address: str) -> ActiveToken | None:
        return self._entries.pop(address, None)

    def evict_expired(self) -> list[ActiveToken]:
        self._entries, expired = split_expired(self._entries, self._clock())
        return expired

    def pending(self) -> list[ActiveToken]:
        """Live entries not currently being validated."""
        now = self._clock()
        return [e for e in self._entries.values() if not e.is_processing and not e.is_expired(now)]

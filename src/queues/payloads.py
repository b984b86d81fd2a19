"""Payloads carried by the validation and monitoring queues."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ValidationRequest:
    address: str
    creator_address: str | None
    discovered_at: datetime


@dataclass(frozen=True)
class MonitorRequest:
    address: str

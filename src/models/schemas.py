"""Pydantic views of persisted rows, shared by the operator API and webhooks."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class TokenOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    name: str
    symbol: str | None = None
    decimals: int
    creator_address: str | None = None
    status: str
    venue: str | None = None
    is_suspicious: bool = False
    discovered_at: datetime | None = None
    updated_at: datetime | None = None


class TradeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    token_address: str
    token_name: str
    tx_hash: str
    side: str
    trade_type: str
    venue: str
    eth_spent: str
    eth_received: str
    raw_token_amount: str
    formatted_token_amount: str
    token_price_usd: str
    eth_price_usd: str
    gas_cost_eth: str
    gas_cost_usd: str
    created_at: datetime | None = None


class PositionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token_address: str
    raw_total_bought: str
    formatted_total_bought: str
    raw_total_sold: str
    formatted_total_sold: str
    raw_remaining: str
    formatted_remaining: str
    total_eth_spent: str
    total_eth_received: str
    total_usd_spent: str
    total_usd_received: str
    total_gas_cost_eth: str
    total_gas_cost_usd: str
    average_entry_price_usd: str
    average_exit_price_usd: str | None = None
    current_pnl_usd: str
    is_active: bool
    last_trade_at: datetime | None = None

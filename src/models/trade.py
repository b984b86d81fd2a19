from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base

# Amounts are stored as strings: raw integers can exceed 2^64 and
# decimal strings must round-trip without float drift.


class Trade(Base):
    """Settled buy or sell. Append-only."""

    __tablename__ = "trades"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_address: Mapped[str] = mapped_column(ForeignKey("tokens.address"))
    token_name: Mapped[str] = mapped_column(String(255))
    tx_hash: Mapped[str] = mapped_column(String(66))
    side: Mapped[str] = mapped_column(String(10))
    trade_type: Mapped[str] = mapped_column(String(20))
    venue: Mapped[str] = mapped_column(String(20))

    eth_spent: Mapped[str] = mapped_column(String(80), default="0")
    eth_received: Mapped[str] = mapped_column(String(80), default="0")
    raw_token_amount: Mapped[str] = mapped_column(String(80), default="0")
    formatted_token_amount: Mapped[str] = mapped_column(String(100), default="0")
    token_price_usd: Mapped[str] = mapped_column(String(80), default="0")
    eth_price_usd: Mapped[str] = mapped_column(String(80), default="0")
    gas_cost_eth: Mapped[str] = mapped_column(String(80), default="0")
    gas_cost_usd: Mapped[str] = mapped_column(String(80), default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_trades_token", "token_address"),
        Index("idx_trades_time", "created_at"),
    )


class Position(Base):
    """Aggregated holding and cost basis for one token."""

    __tablename__ = "positions"

    id: Mapped[int] = mapped_column(primary_key=True)
    token_address: Mapped[str] = mapped_column(ForeignKey("tokens.address"), unique=True)

    raw_total_bought: Mapped[str] = mapped_column(String(80), default="0")
    formatted_total_bought: Mapped[str] = mapped_column(String(100), default="0")
    raw_total_sold: Mapped[str] = mapped_column(String(80), default="0")
    formatted_total_sold: Mapped[str] = mapped_column(String(100), default="0")
    raw_remaining: Mapped[str] = mapped_column(String(80), default="0")
    formatted_remaining: Mapped[str] = mapped_column(String(100), default="0")

    total_eth_spent: Mapped[str] = mapped_column(String(80), default="0")
    total_eth_received: Mapped[str] = mapped_column(String(80), default="0")
    total_usd_spent: Mapped[str] = mapped_column(String(80), default="0")
    total_usd_received: Mapped[str] = mapped_column(String(80), default="0")
    total_gas_cost_eth: Mapped[str] = mapped_column(String(80), default="0")
    total_gas_cost_usd: Mapped[str] = mapped_column(String(80), default="0")

    average_entry_price_usd: Mapped[str] = mapped_column(String(80), default="0")
    average_exit_price_usd: Mapped[str | None] = mapped_column(String(80))
    current_pnl_usd: Mapped[str] = mapped_column(String(80), default="0")

    last_trade_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_active(self) -> bool:
        return int(self.raw_remaining or "0") > 0

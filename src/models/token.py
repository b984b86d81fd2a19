from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class Token(Base):
    """A screened token that survived the security gate."""

    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(primary_key=True)
    address: Mapped[str] = mapped_column(String(42), unique=True)
    name: Mapped[str] = mapped_column(String(255))
    symbol: Mapped[str | None] = mapped_column(String(64))
    decimals: Mapped[int] = mapped_column(default=18)
    creator_address: Mapped[str | None] = mapped_column(String(42))
    status: Mapped[str] = mapped_column(String(20), default="buyable")
    venue: Mapped[str | None] = mapped_column(String(20))
    is_suspicious: Mapped[bool] = mapped_column(Boolean, default=False)
    discovered_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_tokens_status", "status"),)

    def __repr__(self) -> str:
        return f"Token(address={self.address}, symbol={self.symbol}, status={self.status})"

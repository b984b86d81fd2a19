"""Exit-strategy evaluation for open buy trades.

Pure function: the monitor supplies prices and clocks, this decides.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from src.models.enums import TradeType

DOUBLE_EXIT = "double_exit"
EARLY_EXIT = "early_exit"


def check_exit_conditions(
    trade_type: TradeType | str,
    *,
    average_entry_price: Decimal,
    current_price: Decimal,
    discovered_at: datetime | None,
    now: datetime,
    double_exit_multiplier: Decimal | float = 2,
    early_exit_minutes: float = 30,
) -> str | None:
    """Return an exit reason for a buy of ``trade_type``, or None to keep holding.

    doubleExit: price reached ``double_exit_multiplier`` x the position's
    average entry price.
    earlyExit: more than ``early_exit_minutes`` have passed since discovery.
    Other buy types are only sold manually.
    """
    kind = TradeType(trade_type)

    if kind == TradeType.DOUBLE_EXIT:
        if average_entry_price <= 0:
            return None
        target = average_entry_price * Decimal(str(double_exit_multiplier))
        if current_price >= target:
            return DOUBLE_EXIT
        return None

    if kind == TradeType.EARLY_EXIT:
        if discovered_at is None:
            return None
        if now - discovered_at > timedelta(minutes=early_exit_minutes):
            return EARLY_EXIT
        return None

    return None

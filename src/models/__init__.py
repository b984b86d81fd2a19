from src.models.base import Base
from src.models.enums import TokenStatus, TradeSide, TradeType, Venue
from src.models.token import Token
from src.models.trade import Position, Trade

__all__ = [
    "Base",
    "Token",
    "Trade",
    "Position",
    "TokenStatus",
    "TradeSide",
    "TradeType",
    "Venue",
]

from src.trading.venues.base import PoolLiquidity, SwapFill, UnsupportedVenue, VenueAdapter
from src.trading.venues.uniswap_v2 import UniswapV2Venue
from src.trading.venues.uniswap_v3 import UniswapV3Venue

__all__ = [
    "PoolLiquidity",
    "SwapFill",
    "UniswapV2Venue",
    "UniswapV3Venue",
    "UnsupportedVenue",
    "VenueAdapter",
]

"""Closed value sets shared by models, services and the operator API."""

from enum import StrEnum


class TokenStatus(StrEnum):
    VALIDATED = "validated"
    BUYABLE = "buyable"
    SOLD = "sold"
    RUGPULL = "rugpull"
    HONEYPOT = "honeypot"
    ARCHIVED = "archived"


class Venue(StrEnum):
    UNISWAP_V2 = "uniswapv2"
    UNISWAP_V3 = "uniswapv3"
    UNISWAP_V4 = "uniswapv4"
    AERODROME = "aerodrome"
    BALANCER = "balancer"


class TradeSide(StrEnum):
    BUY = "buy"
    SELL = "sell"


class TradeType(StrEnum):
    USD_VALUE = "usdValue"
    DOUBLE_EXIT = "doubleExit"
    EARLY_EXIT = "earlyExit"
    PARTIAL_SELL = "partialSell"
    FULL_SELL = "fullSell"


# Liquidity tie-break order: simpler venues first
VENUE_PRIORITY: tuple[Venue, ...] = (
    Venue.UNISWAP_V2,
    Venue.UNISWAP_V3,
    Venue.UNISWAP_V4,
    Venue.AERODROME,
    Venue.BALANCER,
)

BUY_TRADE_TYPES = frozenset({TradeType.USD_VALUE, TradeType.DOUBLE_EXIT, TradeType.EARLY_EXIT})

# Statuses the monitor keeps re-screening
MONITORABLE_STATUSES = frozenset({TokenStatus.BUYABLE, TokenStatus.VALIDATED, TokenStatus.SOLD})

# Statuses a manual buy is accepted in (sold allows a re-buy)
BUYABLE_STATUSES = MONITORABLE_STATUSES

# Transitions allowed outside of archive (archive is reachable from anything)
ALLOWED_TRANSITIONS: dict[TokenStatus, frozenset[TokenStatus]] = {
    TokenStatus.BUYABLE: frozenset({TokenStatus.SOLD, TokenStatus.RUGPULL, TokenStatus.HONEYPOT, TokenStatus.VALIDATED}),
    TokenStatus.SOLD: frozenset({TokenStatus.BUYABLE, TokenStatus.RUGPULL, TokenStatus.HONEYPOT, TokenStatus.VALIDATED}),
    TokenStatus.VALIDATED: frozenset({TokenStatus.BUYABLE, TokenStatus.RUGPULL, TokenStatus.HONEYPOT}),
    TokenStatus.RUGPULL: frozenset(),
    TokenStatus.HONEYPOT: frozenset(),
    TokenStatus.ARCHIVED: frozenset(),
}


def can_transition(current: TokenStatus, target: TokenStatus) -> bool:
    if current == target:
        return True
    if target == TokenStatus.ARCHIVED:
        return True
    return target in ALLOWED_TRANSITIONS[current]

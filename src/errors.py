"""Exception taxonomy.

Risk outcomes (honeypot, rugpull, missing liquidity) are not exceptions:
they are returned as result dataclasses and drive status transitions.
"""


class SentinelError(Exception):
    pass


# ── Technical ──────────────────────────────────────────────────────────


class TechnicalError(SentinelError):
    """Infrastructure or unexpected failure (RPC, explorer, persistence)."""


class ExplorerError(TechnicalError):
    pass


class QueueError(TechnicalError):
    pass


# ── Domain / validation ────────────────────────────────────────────────


class DomainValidationError(SentinelError):
    """Bad input or a state transition the token does not allow."""


class InvalidAddressError(DomainValidationError):
    pass


class InvalidTradeTypeError(DomainValidationError):
    pass


class InvalidStatusError(DomainValidationError):
    pass


class TokenNotFoundError(DomainValidationError):
    pass


class NoBuyTradeError(DomainValidationError):
    pass


# ── Trade execution ────────────────────────────────────────────────────


class TradeExecutionError(SentinelError):
    """Terminal trade failure, raised after retry classification."""

    def __init__(self, message: str, *, attempts: int = 1, retryable: bool = False) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.retryable = retryable


class VenueNotImplementedError(TradeExecutionError):
    def __init__(self, venue: str, operation: str = "trading") -> None:
        super().__init__(f"{operation} on venue '{venue}' is not implemented")
        self.venue = venue
        self.operation = operation

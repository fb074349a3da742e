class LedgerError(Exception):
    """Base exception for wager ledger errors."""

    code = "ledger_error"
    retryable = False

    def __init__(self, message: str, market_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.market_id = market_id


class InvalidMarketError(LedgerError):
    """Market definition rejected at creation or repricing."""

    code = "invalid_market"


class InvalidStakeError(LedgerError):
    """Stake amount is not a positive whole number of points."""

    code = "invalid_stake"


class InvalidOddsError(LedgerError):
    """Odds string is not a signed nonzero integer."""

    code = "invalid_odds"


class UnknownOptionError(LedgerError):
    """Option is not one of the market's outcomes."""

    code = "unknown_option"


class MarketClosedError(LedgerError):
    """Market no longer accepts stakes."""

    code = "market_closed"


class TooLateError(LedgerError):
    """Stake can no longer be withdrawn."""

    code = "too_late"


class NotFoundError(LedgerError):
    """Market or stake not found."""

    code = "not_found"


class NotAuthorizedError(LedgerError):
    """Actor is not the market creator."""

    code = "not_authorized"


class InvalidTransitionError(LedgerError):
    """Market state machine rejected the transition."""

    code = "invalid_transition"


class AlreadySettledError(InvalidTransitionError):
    """Market already reached a terminal state. Never retry."""

    code = "already_settled"


class RetryableError(LedgerError):
    """Store contention or timeout. Safe to retry with backoff."""

    code = "retryable"
    retryable = True

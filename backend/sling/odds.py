"""American odds conversions and payout math.

All functions are pure. Payouts use exact integer arithmetic and round
down to the nearest whole point:

- negative odds ``-X``: payout = stake * 100 / X + stake
- positive odds ``+X``: payout = stake * X / 100 + stake
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from sling.exceptions import InvalidOddsError, InvalidStakeError

MIN_SMOOTHING_BUFFER = 25.0
SMOOTHING_POOL_FRACTION = 0.05
ODDS_DISPLAY_LIMIT = 1000


def parse_american_odds(odds: str) -> int:
    """Parse an American odds string such as ``"-110"`` or ``"+150"``."""
    if not isinstance(odds, str):
        raise InvalidOddsError(f"Odds must be a string, got {type(odds).__name__}")

    text = odds.strip()
    digits = text[1:] if text[:1] in ("+", "-") else text
    if not (digits.isascii() and digits.isdigit()):
        raise InvalidOddsError(f"Unparseable odds: {odds!r}")

    value = int(text)
    if value == 0:
        raise InvalidOddsError(f"Odds magnitude must be nonzero: {odds!r}")
    return value


def implied_probability(odds: str) -> float:
    """Implied win probability in (0, 1) for an American odds string."""
    value = parse_american_odds(odds)
    if value < 0:
        return -value / (-value + 100)
    return 100 / (value + 100)


def payout(stake: int, odds: str) -> int:
    """Total return (stake included) for a winning stake at the given odds."""
    value = parse_american_odds(odds)
    if isinstance(stake, bool) or not isinstance(stake, int) or stake < 0:
        raise InvalidStakeError(f"Stake must be a non-negative integer, got {stake!r}")
    if stake == 0:
        return 0

    if value < 0:
        return stake * 100 // -value + stake
    return stake * value // 100 + stake


def parimutuel_payout(stake: int, winning_pool: int, losing_pool: int) -> int:
    """
    Proportional share of the losing pool plus the original stake.

    A winner with no losing pool to draw from simply gets the stake back.
    """
    if stake < 0 or winning_pool < 0 or losing_pool < 0:
        raise InvalidStakeError("Stakes and pools must be non-negative")
    if stake == 0:
        return 0
    if winning_pool < stake:
        raise InvalidStakeError(
            f"Winning pool {winning_pool} is smaller than stake {stake}"
        )
    if losing_pool == 0:
        return stake
    return stake + stake * losing_pool // winning_pool


def format_american_odds(probability: float) -> str:
    """Render a probability as display odds, clamped to +/-1000."""
    if probability <= 0:
        return f"+{ODDS_DISPLAY_LIMIT}"
    if probability >= 1:
        return f"-{ODDS_DISPLAY_LIMIT}"

    if probability >= 0.5:
        american = -100 * probability / (1 - probability)
        return f"{max(american, -ODDS_DISPLAY_LIMIT):.0f}"

    american = 100 * (1 - probability) / probability
    return f"+{min(american, ODDS_DISPLAY_LIMIT):.0f}"


def pool_implied_probabilities(
    options: Sequence[str],
    pool_by_option: Mapping[str, int],
    odds: Mapping[str, str] | None = None,
) -> dict[str, float]:
    """
    Display probabilities derived from how the pool is currently split.

    An empty pool falls back to the stored odds, then to equal odds. A
    non-empty pool is smoothed with a buffer of max(25, 5% of the pool)
    spread evenly across options so one early stake cannot pin an option
    at 100%.
    """
    if not options:
        return {}

    total_pool = sum(pool_by_option.get(option, 0) for option in options)
    if total_pool <= 0:
        if odds:
            return {
                option: implied_probability(odds[option])
                for option in options
                if option in odds
            }
        equal = 1.0 / len(options)
        return {option: equal for option in options}

    buffer = max(MIN_SMOOTHING_BUFFER, total_pool * SMOOTHING_POOL_FRACTION)
    per_option_buffer = buffer / len(options)
    smoothed_total = total_pool + buffer

    return {
        option: (pool_by_option.get(option, 0) + per_option_buffer) / smoothed_total
        for option in options
    }

"""Market schema and lifecycle state machine.

    open --settle(winner)--> settled
    open --void()----------> voided
    open --cancel()--------> cancelled

All three outcomes are terminal. Options, odds, and stakes are frozen once
a market leaves ``open``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from enum import Enum

from pydantic import Field, ValidationError, field_validator

from sling.exceptions import (
    InvalidMarketError,
    InvalidOddsError,
    InvalidStakeError,
    InvalidTransitionError,
    UnknownOptionError,
)
from sling.odds import parse_american_odds
from sling.schemas.common import TimestampSchema, generate_market_id
from sling.time_utils import ensure_utc, utc_now


class MarketStatus(str, Enum):
    """Market lifecycle status."""

    OPEN = "open"
    SETTLED = "settled"
    VOIDED = "voided"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not MarketStatus.OPEN


# Statuses whose resolved stakes count toward a member's balance
BALANCE_STATUSES = frozenset({MarketStatus.SETTLED, MarketStatus.VOIDED})


def validate_outcomes(
    options: Sequence[str],
    odds: Mapping[str, str],
) -> tuple[list[str], dict[str, str]]:
    """Check the option list and its odds table, returning normalized copies."""
    if isinstance(options, str) or not isinstance(options, Sequence):
        raise InvalidMarketError(f"Options must be a list of strings, got {type(options).__name__}")
    if not isinstance(odds, Mapping):
        raise InvalidMarketError(f"Odds must map option to odds, got {type(odds).__name__}")

    cleaned = [option.strip() if isinstance(option, str) else option for option in options]

    if len(cleaned) < 2:
        raise InvalidMarketError(f"A market needs at least 2 options, got {len(cleaned)}")
    if any(not isinstance(option, str) or not option for option in cleaned):
        raise InvalidMarketError("Options must be non-empty strings")
    if len(set(cleaned)) != len(cleaned):
        raise InvalidMarketError(f"Options must be distinct: {cleaned}")

    odds_table = {key.strip() if isinstance(key, str) else key: value for key, value in odds.items()}
    if set(odds_table) != set(cleaned):
        missing = sorted(set(cleaned) - set(odds_table))
        extra = sorted(str(key) for key in set(odds_table) - set(cleaned))
        raise InvalidMarketError(
            f"Odds must cover exactly the options (missing={missing}, extra={extra})"
        )

    for option, value in odds_table.items():
        try:
            parse_american_odds(value)
        except InvalidOddsError as e:
            raise InvalidMarketError(f"Invalid odds for option {option!r}: {e.message}") from e

    return cleaned, {option: odds_table[option].strip() for option in cleaned}


class Market(TimestampSchema):
    """A wager with a fixed set of outcomes priced in American odds."""

    id: str = Field(default_factory=generate_market_id)
    community_id: str
    creator_id: str
    title: str = ""
    options: list[str]
    odds: dict[str, str]
    deadline: datetime
    status: MarketStatus = MarketStatus.OPEN
    winner_option: str | None = None
    pool_by_option: dict[str, int] = Field(default_factory=dict)
    total_pool: int = 0
    version: int = 1
    resolved_at: datetime | None = None

    @field_validator("deadline", "created_at", "updated_at", "resolved_at", mode="after")
    @classmethod
    def normalize_timestamps(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @classmethod
    def create(
        cls,
        creator_id: str,
        community_id: str,
        options: Sequence[str],
        odds: Mapping[str, str],
        deadline: datetime,
        title: str = "",
    ) -> Market:
        """Validate and build a new open market."""
        if not creator_id:
            raise InvalidMarketError("Market creator is required")
        if not community_id:
            raise InvalidMarketError("Market community is required")

        cleaned_options, cleaned_odds = validate_outcomes(options, odds)
        try:
            return cls(
                community_id=community_id,
                creator_id=creator_id,
                title=title,
                options=cleaned_options,
                odds=cleaned_odds,
                deadline=deadline,
                pool_by_option={option: 0 for option in cleaned_options},
            )
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise InvalidMarketError(f"Invalid market fields: {fields}") from e

    @property
    def is_open(self) -> bool:
        return self.status is MarketStatus.OPEN

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def accept_stake(self, now: datetime) -> bool:
        """Whether a stake may be escrowed at ``now``. Does not mutate."""
        return self.is_open and ensure_utc(now) < self.deadline

    def odds_for(self, option: str) -> str:
        if option not in self.odds:
            raise UnknownOptionError(f"Unknown option {option!r}", market_id=self.id)
        return self.odds[option]

    def settle(self, winner_option: str) -> None:
        self._require_open("settle")
        if winner_option not in self.options:
            raise UnknownOptionError(
                f"Winner {winner_option!r} is not one of {self.options}",
                market_id=self.id,
            )
        self.winner_option = winner_option
        self._finish(MarketStatus.SETTLED)

    def void(self) -> None:
        self._require_open("void")
        self._finish(MarketStatus.VOIDED)

    def cancel(self) -> None:
        self._require_open("cancel")
        self._finish(MarketStatus.CANCELLED)

    def reprice(self, odds: Mapping[str, str]) -> None:
        """Replace the odds table. Only allowed before the first stake."""
        self._require_open("reprice")
        if self.total_pool > 0:
            raise InvalidTransitionError(
                f"Market {self.id} already has stakes; odds are locked",
                market_id=self.id,
            )
        _, cleaned_odds = validate_outcomes(self.options, odds)
        self.odds = cleaned_odds
        self.updated_at = utc_now()

    def record_stake(self, option: str, amount: int) -> None:
        self._require_open("accept stakes on")
        if option not in self.options:
            raise UnknownOptionError(f"Unknown option {option!r}", market_id=self.id)
        self.pool_by_option[option] = self.pool_by_option.get(option, 0) + amount
        self.total_pool += amount
        self.updated_at = utc_now()

    def release_stake(self, option: str, amount: int) -> None:
        self._require_open("release stakes on")
        current = self.pool_by_option.get(option, 0)
        if amount > current or amount > self.total_pool:
            raise InvalidStakeError(
                f"Cannot release {amount} from option {option!r} holding {current}",
                market_id=self.id,
            )
        self.pool_by_option[option] = current - amount
        self.total_pool -= amount
        self.updated_at = utc_now()

    def _require_open(self, action: str) -> None:
        if not self.is_open:
            raise InvalidTransitionError(
                f"Cannot {action} market {self.id} in status {self.status.value}",
                market_id=self.id,
            )

    def _finish(self, status: MarketStatus) -> None:
        now = utc_now()
        self.status = status
        self.resolved_at = now
        self.updated_at = now

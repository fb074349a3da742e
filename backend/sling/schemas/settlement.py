"""Settlement and balance result schemas."""

from __future__ import annotations

from pydantic import Field

from sling.schemas.common import BaseSchema
from sling.schemas.market import Market, MarketStatus
from sling.schemas.outstanding import OutstandingBalance
from sling.schemas.participation import Participation


class SettlementResult(BaseSchema):
    """Outcome of resolving a market: the terminal market and every stake on it."""

    market: Market
    participations: list[Participation] = Field(default_factory=list)
    outstanding_balances: list[OutstandingBalance] = Field(default_factory=list)

    @property
    def outcome(self) -> MarketStatus:
        return self.market.status

    @property
    def total_staked(self) -> int:
        return sum(p.stake_amount for p in self.participations)

    @property
    def total_paid_out(self) -> int:
        return sum(p.final_payout or 0 for p in self.participations)

    @property
    def winners(self) -> list[Participation]:
        return [p for p in self.participations if p.is_winner]


class MemberBalance(BaseSchema):
    """A member's net points within one community."""

    rank: int
    user_id: str
    net_points: int

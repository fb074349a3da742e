"""Participation (single stake) schema."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator

from sling.schemas.common import BaseSchema, generate_participation_id
from sling.time_utils import ensure_utc, utc_now


class Participation(BaseSchema):
    """
    One escrowed stake on one market option.

    ``is_winner`` and ``final_payout`` stay ``None`` until the market is
    resolved. A refund leaves ``is_winner`` as ``None`` with
    ``final_payout == stake_amount``.
    """

    id: str = Field(default_factory=generate_participation_id)
    market_id: str
    community_id: str
    user_id: str
    chosen_option: str
    stake_amount: int = Field(gt=0)
    is_winner: bool | None = None
    final_payout: int | None = None
    locked_odds: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    resolved_at: datetime | None = None

    @field_validator("created_at", "resolved_at", mode="after")
    @classmethod
    def normalize_timestamps(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @property
    def is_resolved(self) -> bool:
        return self.final_payout is not None

    @property
    def net(self) -> int | None:
        """Points gained or lost once resolved."""
        if self.final_payout is None:
            return None
        return self.final_payout - self.stake_amount

    def resolve_win(self, payout: int) -> None:
        self.is_winner = True
        self.final_payout = payout
        self.resolved_at = utc_now()

    def resolve_loss(self) -> None:
        self.is_winner = False
        self.final_payout = 0
        self.resolved_at = utc_now()

    def refund(self) -> None:
        self.is_winner = None
        self.final_payout = self.stake_amount
        self.resolved_at = utc_now()

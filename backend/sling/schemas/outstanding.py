"""Counterparty balances: who owes whom after a market settles."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field, field_validator

from sling.schemas.common import BaseSchema, generate_outstanding_balance_id
from sling.time_utils import ensure_utc, utc_now


class BalanceStatus(str, Enum):
    """Outstanding balance lifecycle."""

    PENDING = "pending"
    PAID = "paid"
    RESOLVED = "resolved"


class OutstandingBalance(BaseSchema):
    """
    Points ``payer_id`` owes ``payee_id`` from one settled market.

    Each winner's payout is split across the market's losers in proportion
    to their stakes. Records start ``pending`` and are closed as ``paid``
    or ``resolved`` by either party.
    """

    id: str = Field(default_factory=generate_outstanding_balance_id)
    market_id: str
    community_id: str
    payer_id: str
    payee_id: str
    amount: int = Field(gt=0)
    winner_option: str
    market_title: str = ""
    status: BalanceStatus = BalanceStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    resolved_at: datetime | None = None

    @field_validator("created_at", "resolved_at", mode="after")
    @classmethod
    def normalize_timestamps(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @property
    def is_pending(self) -> bool:
        return self.status is BalanceStatus.PENDING

    def close(self, status: BalanceStatus, now: datetime | None = None) -> None:
        self.status = status
        self.resolved_at = now or utc_now()


class CounterpartyBalance(BaseSchema):
    """
    Pending balances between a user and one counterparty, netted.

    ``net_amount`` is positive when the counterparty owes the user and
    negative when the user owes the counterparty.
    """

    user_id: str
    counterparty_id: str
    net_amount: int
    records: list[OutstandingBalance] = Field(default_factory=list)

    @property
    def is_owed(self) -> bool:
        """True when the user owes the counterparty."""
        return self.net_amount < 0

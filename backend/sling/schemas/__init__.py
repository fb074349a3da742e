"""Pydantic schemas for markets, stakes, and settlement results."""

from sling.schemas.common import BaseSchema, TimestampSchema
from sling.schemas.market import BALANCE_STATUSES, Market, MarketStatus
from sling.schemas.outstanding import BalanceStatus, CounterpartyBalance, OutstandingBalance
from sling.schemas.participation import Participation
from sling.schemas.settlement import MemberBalance, SettlementResult

__all__ = [
    "BaseSchema",
    "TimestampSchema",
    "BALANCE_STATUSES",
    "BalanceStatus",
    "CounterpartyBalance",
    "Market",
    "MarketStatus",
    "OutstandingBalance",
    "Participation",
    "MemberBalance",
    "SettlementResult",
]

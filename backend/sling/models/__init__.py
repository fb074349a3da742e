"""Database models module."""

from sling.models.market import MarketRecord
from sling.models.outstanding_balance import OutstandingBalanceRecord
from sling.models.participation import ParticipationRecord

__all__ = [
    "MarketRecord",
    "OutstandingBalanceRecord",
    "ParticipationRecord",
]

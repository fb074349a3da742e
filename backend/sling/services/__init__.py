"""Services module."""

from sling.services.balance_service import BalanceService, fold_balances
from sling.services.market_service import MarketService
from sling.services.outstanding_service import (
    OutstandingBalanceService,
    compute_outstanding_balances,
    group_by_counterparty,
    split_amount,
)
from sling.services.settlement_service import SettlementService
from sling.services.stake_service import StakeService

__all__ = [
    "BalanceService",
    "compute_outstanding_balances",
    "fold_balances",
    "group_by_counterparty",
    "MarketService",
    "OutstandingBalanceService",
    "SettlementService",
    "split_amount",
    "StakeService",
]

"""Wager engine: the public surface of the ledger.

Usage:
    engine = WagerEngine(InMemoryStore())
    market = await engine.create_market("alice", "c1", ["Yes", "No"],
                                        {"Yes": "-110", "No": "+120"}, deadline)
    await engine.place_stake(market.id, "bob", "Yes", 50)
    await engine.settle_market(market.id, "Yes", actor_id="alice")
    await engine.net_balance("c1", "bob")  # 45

Every operation returns a value or raises a ``LedgerError`` subclass.
User identities are opaque strings supplied by the caller's auth layer.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime

from sling.config import Settings, get_settings
from sling.schemas import (
    CounterpartyBalance,
    Market,
    MemberBalance,
    OutstandingBalance,
    Participation,
    SettlementResult,
)
from sling.services import (
    BalanceService,
    MarketService,
    OutstandingBalanceService,
    SettlementService,
    StakeService,
)
from sling.storage.base import Store
from sling.time_utils import utc_now

logger = logging.getLogger(__name__)


class WagerEngine:
    """Explicit engine instance wired to one store."""

    def __init__(
        self,
        store: Store,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.markets = MarketService(store)
        self.stakes = StakeService(store, self.settings.ledger, clock)
        self.settlements = SettlementService(store, self.settings.settlement)
        self.balances = BalanceService(store)
        self.outstanding = OutstandingBalanceService(store)

        logger.info(
            f"Initialized WagerEngine (store={type(store).__name__}, "
            f"payout_model={self.settings.settlement.payout_model})"
        )

    # Markets

    async def create_market(
        self,
        creator_id: str,
        community_id: str,
        options: Sequence[str],
        odds: Mapping[str, str],
        deadline: datetime,
        title: str = "",
    ) -> Market:
        return await self.markets.create_market(
            creator_id, community_id, options, odds, deadline, title
        )

    async def get_market(self, market_id: str) -> Market:
        return await self.markets.get_market(market_id)

    async def reprice_market(
        self, market_id: str, odds: Mapping[str, str], actor_id: str
    ) -> Market:
        return await self.markets.reprice_market(market_id, odds, actor_id)

    async def market_odds(self, market_id: str) -> dict[str, str]:
        return await self.markets.market_odds(market_id)

    # Stakes

    async def place_stake(
        self,
        market_id: str,
        user_id: str,
        chosen_option: str,
        stake_amount: int,
    ) -> Participation:
        return await self.stakes.place_stake(market_id, user_id, chosen_option, stake_amount)

    async def cancel_stake(
        self,
        market_id: str,
        user_id: str,
        participation_id: str | None = None,
    ) -> list[Participation]:
        return await self.stakes.cancel_stake(market_id, user_id, participation_id)

    # Resolution

    async def settle_market(
        self, market_id: str, winner_option: str, actor_id: str
    ) -> SettlementResult:
        return await self.settlements.settle_market(market_id, winner_option, actor_id)

    async def void_market(self, market_id: str, actor_id: str) -> SettlementResult:
        return await self.settlements.void_market(market_id, actor_id)

    async def cancel_market(self, market_id: str, actor_id: str) -> SettlementResult:
        return await self.settlements.cancel_market(market_id, actor_id)

    async def reconcile_unresolved(self, community_id: str | None = None) -> dict[str, int]:
        return await self.settlements.reconcile_unresolved(community_id)

    # Balances

    async def net_balance(self, community_id: str, user_id: str) -> int:
        return await self.balances.net_balance(community_id, user_id)

    async def member_balances(
        self, community_id: str, members: Iterable[str] | None = None
    ) -> dict[str, int]:
        return await self.balances.member_balances(community_id, members)

    async def leaderboard(
        self, community_id: str, members: Iterable[str] | None = None
    ) -> list[MemberBalance]:
        return await self.balances.leaderboard(community_id, members)

    async def total_balance(self, user_id: str) -> int:
        return await self.balances.total_balance(user_id)

    async def transactions(self, community_id: str, user_id: str) -> list[Participation]:
        return await self.balances.transactions(community_id, user_id)

    # Who owes whom

    async def outstanding_balances(
        self, user_id: str, community_id: str | None = None
    ) -> list[CounterpartyBalance]:
        return await self.outstanding.outstanding_balances(user_id, community_id)

    async def balance_history(
        self, user_id: str, community_id: str | None = None
    ) -> list[OutstandingBalance]:
        return await self.outstanding.balance_history(user_id, community_id)

    async def mark_balance_paid(
        self, user_id: str, counterparty_id: str, community_id: str | None = None
    ) -> list[OutstandingBalance]:
        return await self.outstanding.mark_balance_paid(user_id, counterparty_id, community_id)

    async def resolve_outstanding_balance(
        self, user_id: str, counterparty_id: str, community_id: str | None = None
    ) -> list[OutstandingBalance]:
        return await self.outstanding.resolve_outstanding_balance(
            user_id, counterparty_id, community_id
        )

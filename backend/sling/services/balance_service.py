"""Net point balances derived from resolved stakes."""

import logging
from collections.abc import Iterable, Mapping

from sling.schemas import BALANCE_STATUSES, Market, MemberBalance, Participation
from sling.storage.base import Store

logger = logging.getLogger(__name__)


def fold_balances(
    participations: Iterable[Participation],
    markets: Mapping[str, Market],
) -> dict[str, int]:
    """
    Sum ``final_payout - stake_amount`` per user.

    Only stakes on settled or voided markets count. Stakes on open or
    cancelled markets contribute 0, and every user seen gets an entry.
    """
    totals: dict[str, int] = {}
    for participation in participations:
        totals.setdefault(participation.user_id, 0)

        market = markets.get(participation.market_id)
        if market is None or market.status not in BALANCE_STATUSES:
            continue
        if participation.final_payout is None:
            logger.warning(
                f"Stake {participation.id} on {market.status.value} market "
                f"{market.id} has no payout yet; awaiting reconciliation"
            )
            continue

        totals[participation.user_id] += participation.final_payout - participation.stake_amount

    return totals


class BalanceService:
    """
    Read-only balance queries. Nothing is cached; every call refolds the
    stakes it needs.
    """

    def __init__(self, store: Store):
        self.store = store

    async def _fold(self, participations: list[Participation]) -> dict[str, int]:
        markets = await self.store.get_markets(p.market_id for p in participations)
        return fold_balances(participations, markets)

    async def net_balance(self, community_id: str, user_id: str) -> int:
        """Net points for one user within one community."""
        participations = await self.store.find_participations(
            community_id=community_id, user_id=user_id
        )
        balances = await self._fold(participations)
        logger.debug(
            f"Net balance for {user_id} in {community_id}: "
            f"{balances.get(user_id, 0)} over {len(participations)} stakes"
        )
        return balances.get(user_id, 0)

    async def member_balances(
        self,
        community_id: str,
        members: Iterable[str] | None = None,
    ) -> dict[str, int]:
        """
        Net points for every member of a community.

        ``members`` adds zero entries for known members who never staked.
        """
        participations = await self.store.find_participations(community_id=community_id)
        balances = await self._fold(participations)
        for member in members or ():
            balances.setdefault(member, 0)
        return balances

    async def leaderboard(
        self,
        community_id: str,
        members: Iterable[str] | None = None,
    ) -> list[MemberBalance]:
        """Members ranked by net points, highest first."""
        balances = await self.member_balances(community_id, members)
        ordered = sorted(balances.items(), key=lambda item: (-item[1], item[0]))
        return [
            MemberBalance(rank=rank, user_id=user_id, net_points=net_points)
            for rank, (user_id, net_points) in enumerate(ordered, 1)
        ]

    async def total_balance(self, user_id: str) -> int:
        """Net points for a user across all communities."""
        participations = await self.store.find_participations(user_id=user_id)
        balances = await self._fold(participations)
        return balances.get(user_id, 0)

    async def transactions(self, community_id: str, user_id: str) -> list[Participation]:
        """A user's stakes in a community, most recent first."""
        participations = await self.store.find_participations(
            community_id=community_id, user_id=user_id
        )
        return sorted(participations, key=lambda p: p.created_at, reverse=True)

"""Market settlement, voiding, cancellation, and crash recovery."""

import logging
from collections.abc import Iterable

from sling.config import SettlementConfig
from sling.exceptions import (
    AlreadySettledError,
    NotAuthorizedError,
    NotFoundError,
    UnknownOptionError,
)
from sling.odds import parimutuel_payout, payout
from sling.schemas import (
    Market,
    MarketStatus,
    OutstandingBalance,
    Participation,
    SettlementResult,
)
from sling.services.outstanding_service import compute_outstanding_balances
from sling.storage.base import Store, StoreTransaction

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (MarketStatus.SETTLED, MarketStatus.VOIDED, MarketStatus.CANCELLED)


class SettlementService:
    """
    Finalizes markets exactly once.

    Every resolution runs in one store unit: the open-status guard, the
    payout computation, and the writes to the market and all of its stakes
    commit together. Of two concurrent resolutions only one can observe
    ``open``; the other fails with ``AlreadySettledError`` and writes nothing.
    """

    def __init__(self, store: Store, config: SettlementConfig | None = None):
        self.store = store
        self.config = config or SettlementConfig()

    async def settle_market(
        self,
        market_id: str,
        winner_option: str,
        actor_id: str,
    ) -> SettlementResult:
        """
        Declare the winning option and pay out every stake.

        Process:
        1. Lock and read the market, check creator and open status
        2. Read all stakes on it
        3. Winners get the odds payout, losers get 0
        4. Move the market to settled and persist everything together
        """
        async with self.store.transaction(market_id) as tx:
            market = await self._load_open_market(tx, market_id, actor_id, "settle")
            if winner_option not in market.options:
                raise UnknownOptionError(
                    f"Winner {winner_option!r} is not one of {market.options}",
                    market_id=market_id,
                )

            participations = await tx.list_participations()

            if self.config.void_one_sided_markets and self._is_one_sided(participations):
                logger.warning(
                    f"Market {market_id} only has wagers on one side; voiding instead of settling"
                )
                market.void()
            else:
                market.settle(winner_option)

            resolved = self._resolve(market, participations)
            await tx.save_participations(resolved)
            await tx.save_market(market)
            owed = await self._record_outstanding(tx, market, participations)

        result = SettlementResult(
            market=market, participations=participations, outstanding_balances=owed
        )
        logger.info(
            f"Resolved market {market_id} as {market.status.value} "
            f"(winner={market.winner_option!r}, {len(participations)} stakes, "
            f"{result.total_staked} staked, {result.total_paid_out} paid out)"
        )
        return result

    async def void_market(self, market_id: str, actor_id: str) -> SettlementResult:
        """Resolve without a winner and refund every stake."""
        return await self._refund_market(market_id, actor_id, MarketStatus.VOIDED)

    async def cancel_market(self, market_id: str, actor_id: str) -> SettlementResult:
        """Withdraw the market before resolution and refund every stake."""
        return await self._refund_market(market_id, actor_id, MarketStatus.CANCELLED)

    async def reconcile_market(self, market_id: str) -> list[Participation]:
        """
        Finish a resolution that left stakes unresolved.

        A terminal market is authoritative: any stake without a final
        payout is resolved the same way settlement would have, and stakes
        that already carry a payout are left untouched. Returns the stakes
        that were fixed.
        """
        async with self.store.transaction(market_id) as tx:
            market = await tx.get_market()
            if market is None:
                raise NotFoundError(f"Market {market_id} not found", market_id=market_id)
            if market.is_open:
                return []

            participations = await tx.list_participations()
            fixed = self._resolve(market, participations)
            if fixed:
                await tx.save_participations(fixed)
                if not await tx.list_outstanding_balances():
                    await self._record_outstanding(tx, market, participations)

        if fixed:
            logger.warning(
                f"Reconciled {len(fixed)} unresolved stake(s) on {market.status.value} "
                f"market {market_id}"
            )
        return fixed

    async def reconcile_unresolved(self, community_id: str | None = None) -> dict[str, int]:
        """Scan terminal markets and reconcile any with unresolved stakes."""
        repaired: dict[str, int] = {}
        for market in await self.store.find_markets(community_id, TERMINAL_STATUSES):
            stakes = await self.store.find_participations(market_id=market.id)
            if all(p.is_resolved for p in stakes):
                continue
            fixed = await self.reconcile_market(market.id)
            if fixed:
                repaired[market.id] = len(fixed)

        logger.info(f"Reconciliation pass repaired {len(repaired)} market(s)")
        return repaired

    async def _refund_market(
        self,
        market_id: str,
        actor_id: str,
        status: MarketStatus,
    ) -> SettlementResult:
        action = "void" if status is MarketStatus.VOIDED else "cancel"
        async with self.store.transaction(market_id) as tx:
            market = await self._load_open_market(tx, market_id, actor_id, action)
            participations = await tx.list_participations()

            if status is MarketStatus.VOIDED:
                market.void()
            else:
                market.cancel()

            resolved = self._resolve(market, participations)
            await tx.save_participations(resolved)
            await tx.save_market(market)

        logger.info(
            f"Market {market_id} {status.value} by {actor_id}; "
            f"refunded {len(participations)} stake(s)"
        )
        return SettlementResult(market=market, participations=participations)

    async def _load_open_market(
        self,
        tx: StoreTransaction,
        market_id: str,
        actor_id: str,
        action: str,
    ) -> Market:
        market = await tx.get_market()
        if market is None:
            raise NotFoundError(f"Market {market_id} not found", market_id=market_id)
        if market.creator_id != actor_id:
            raise NotAuthorizedError(
                f"Only the creator may {action} market {market_id}",
                market_id=market_id,
            )
        if not market.is_open:
            logger.warning(
                f"Refusing to {action} market {market_id}: already {market.status.value}"
            )
            raise AlreadySettledError(
                f"Market {market_id} is already {market.status.value}",
                market_id=market_id,
            )
        return market

    def _resolve(
        self,
        market: Market,
        participations: list[Participation],
    ) -> list[Participation]:
        """Resolve every unresolved stake in place; returns the ones changed."""
        pending = [p for p in participations if not p.is_resolved]
        if not pending:
            return []

        if market.status is MarketStatus.SETTLED:
            winning_pool = sum(
                p.stake_amount for p in participations if p.chosen_option == market.winner_option
            )
            losing_pool = sum(p.stake_amount for p in participations) - winning_pool

            for participation in pending:
                if participation.chosen_option == market.winner_option:
                    participation.resolve_win(
                        self._winning_payout(market, participation, winning_pool, losing_pool)
                    )
                else:
                    participation.resolve_loss()
        else:
            for participation in pending:
                participation.refund()

        return pending

    async def _record_outstanding(
        self,
        tx: StoreTransaction,
        market: Market,
        participations: list[Participation],
    ) -> list[OutstandingBalance]:
        """Write who-owes-whom records for a settled market in the same unit."""
        if not self.config.record_outstanding_balances:
            return []
        owed = compute_outstanding_balances(market, participations)
        if owed:
            await tx.add_outstanding_balances(owed)
        return owed

    def _winning_payout(
        self,
        market: Market,
        participation: Participation,
        winning_pool: int,
        losing_pool: int,
    ) -> int:
        if self.config.payout_model == "parimutuel":
            return parimutuel_payout(participation.stake_amount, winning_pool, losing_pool)
        return payout(participation.stake_amount, market.odds[market.winner_option])

    @staticmethod
    def _is_one_sided(participations: Iterable[Participation]) -> bool:
        return len({p.chosen_option for p in participations}) <= 1

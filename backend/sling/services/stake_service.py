"""Stake placement and withdrawal."""

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError

from sling.config import LedgerConfig
from sling.exceptions import (
    InvalidStakeError,
    MarketClosedError,
    NotAuthorizedError,
    NotFoundError,
    TooLateError,
    UnknownOptionError,
)
from sling.schemas import Participation
from sling.storage.base import Store
from sling.time_utils import utc_now

logger = logging.getLogger(__name__)


class StakeService:
    """
    Escrows stakes against open markets.

    Reading the market's status and writing the stake happen in the same
    store unit, so a stake can never land on a market that a concurrent
    settlement has already closed.
    """

    def __init__(
        self,
        store: Store,
        config: LedgerConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.config = config or LedgerConfig()
        self.clock = clock

    def _validate_amount(self, stake_amount: int) -> None:
        if isinstance(stake_amount, bool) or not isinstance(stake_amount, int):
            raise InvalidStakeError(f"Stake must be a whole number of points, got {stake_amount!r}")
        if stake_amount <= 0:
            raise InvalidStakeError(f"Stake must be positive, got {stake_amount}")
        if self.config.max_stake is not None and stake_amount > self.config.max_stake:
            raise InvalidStakeError(
                f"Stake {stake_amount} exceeds the limit of {self.config.max_stake}"
            )

    async def place_stake(
        self,
        market_id: str,
        user_id: str,
        chosen_option: str,
        stake_amount: int,
    ) -> Participation:
        """
        Place a stake for a user.

        Process:
        1. Validate the amount
        2. Lock the market and check it accepts stakes now
        3. Check the option exists
        4. Write the participation and grow the market pool
        """
        self._validate_amount(stake_amount)
        if not isinstance(user_id, str) or not user_id:
            raise InvalidStakeError(f"A stake needs a user, got {user_id!r}")

        async with self.store.transaction(market_id) as tx:
            market = await tx.get_market()
            if market is None:
                raise NotFoundError(f"Market {market_id} not found", market_id=market_id)

            now = self.clock()
            if not market.accept_stake(now):
                raise MarketClosedError(
                    f"Market {market_id} is not accepting stakes "
                    f"(status={market.status.value}, deadline={market.deadline.isoformat()})",
                    market_id=market_id,
                )

            if chosen_option not in market.options:
                raise UnknownOptionError(
                    f"Option {chosen_option!r} is not one of {market.options}",
                    market_id=market_id,
                )

            if not self.config.allow_creator_stakes and user_id == market.creator_id:
                raise NotAuthorizedError(
                    f"Creators may not stake on their own market {market_id}",
                    market_id=market_id,
                )

            try:
                participation = Participation(
                    market_id=market.id,
                    community_id=market.community_id,
                    user_id=user_id,
                    chosen_option=chosen_option,
                    stake_amount=stake_amount,
                    locked_odds=market.odds_for(chosen_option),
                    created_at=now,
                )
            except ValidationError as e:
                raise InvalidStakeError(
                    f"Invalid stake on market {market_id}: {e.error_count()} field error(s)",
                    market_id=market_id,
                ) from e
            market.record_stake(chosen_option, stake_amount)

            await tx.add_participation(participation)
            await tx.save_market(market)

        logger.info(
            f"Placed stake {participation.id}: {user_id} {stake_amount} on "
            f"{chosen_option!r} @ {participation.locked_odds} (market {market_id})"
        )
        return participation

    async def cancel_stake(
        self,
        market_id: str,
        user_id: str,
        participation_id: str | None = None,
    ) -> list[Participation]:
        """
        Withdraw a user's own unresolved stakes while the market is open.

        Removes every stake the user holds on the market, or only
        ``participation_id`` when given. Returns the removed stakes.
        """
        async with self.store.transaction(market_id) as tx:
            market = await tx.get_market()
            if market is None:
                raise NotFoundError(f"Market {market_id} not found", market_id=market_id)

            if not market.is_open:
                raise TooLateError(
                    f"Market {market_id} is {market.status.value}; stakes are final",
                    market_id=market_id,
                )

            removed = [
                p
                for p in await tx.list_participations()
                if p.user_id == user_id
                and not p.is_resolved
                and (participation_id is None or p.id == participation_id)
            ]
            if not removed:
                raise NotFoundError(
                    f"No open stake by {user_id} on market {market_id}",
                    market_id=market_id,
                )

            for participation in removed:
                market.release_stake(participation.chosen_option, participation.stake_amount)

            await tx.delete_participations(p.id for p in removed)
            await tx.save_market(market)

        logger.info(
            f"Cancelled {len(removed)} stake(s) by {user_id} on market {market_id} "
            f"({sum(p.stake_amount for p in removed)} points released)"
        )
        return removed

"""Market creation, repricing, and display odds."""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime

from sling.exceptions import NotAuthorizedError, NotFoundError
from sling.odds import format_american_odds, pool_implied_probabilities
from sling.schemas import Market
from sling.storage.base import Store

logger = logging.getLogger(__name__)


class MarketService:
    """
    Creates markets and serves their current odds.
    """

    def __init__(self, store: Store):
        self.store = store

    async def create_market(
        self,
        creator_id: str,
        community_id: str,
        options: Sequence[str],
        odds: Mapping[str, str],
        deadline: datetime,
        title: str = "",
    ) -> Market:
        """Validate and persist a new open market."""
        market = Market.create(
            creator_id=creator_id,
            community_id=community_id,
            options=options,
            odds=odds,
            deadline=deadline,
            title=title,
        )
        await self.store.add_market(market)

        logger.info(
            f"Created market {market.id} in {community_id} by {creator_id}: "
            f"{market.options} @ {market.odds}"
        )
        return market

    async def get_market(self, market_id: str) -> Market:
        market = await self.store.get_market(market_id)
        if market is None:
            raise NotFoundError(f"Market {market_id} not found", market_id=market_id)
        return market

    async def reprice_market(
        self,
        market_id: str,
        odds: Mapping[str, str],
        actor_id: str,
    ) -> Market:
        """Replace a market's odds before anyone has staked on it."""
        async with self.store.transaction(market_id) as tx:
            market = await tx.get_market()
            if market is None:
                raise NotFoundError(f"Market {market_id} not found", market_id=market_id)
            if market.creator_id != actor_id:
                raise NotAuthorizedError(
                    f"Only the creator may reprice market {market_id}",
                    market_id=market_id,
                )

            market.reprice(odds)
            await tx.save_market(market)

        logger.info(f"Repriced market {market_id}: {market.odds}")
        return market

    async def market_odds(self, market_id: str) -> dict[str, str]:
        """
        Current display odds, shifted by how the pool is split.

        These are informational only; settlement always pays the market's
        stored odds.
        """
        market = await self.get_market(market_id)
        probabilities = pool_implied_probabilities(
            market.options, market.pool_by_option, market.odds
        )
        return {
            option: format_american_odds(probability)
            for option, probability in probabilities.items()
        }

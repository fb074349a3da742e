"""
Store interfaces consumed by the ledger services.

A store offers one atomic read-modify-write unit per market
(``transaction(market_id)``) and lock-free reads for everything else.
Writes made through a ``StoreTransaction`` become visible together when
the ``async with`` block exits cleanly, and are discarded if it raises.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from contextlib import AbstractAsyncContextManager

from sling.schemas import (
    BalanceStatus,
    Market,
    MarketStatus,
    OutstandingBalance,
    Participation,
)


class StoreTransaction(ABC):
    """Read-modify-write view of a single market and its stakes."""

    market_id: str

    @abstractmethod
    async def get_market(self) -> Market | None:
        """Read the market under the unit's lock."""

    @abstractmethod
    async def list_participations(self) -> list[Participation]:
        """All stakes on the market, oldest first."""

    @abstractmethod
    async def add_participation(self, participation: Participation) -> None:
        ...

    @abstractmethod
    async def save_participations(self, participations: Sequence[Participation]) -> None:
        ...

    @abstractmethod
    async def delete_participations(self, participation_ids: Iterable[str]) -> None:
        ...

    @abstractmethod
    async def save_market(self, market: Market) -> None:
        ...

    @abstractmethod
    async def list_outstanding_balances(self) -> list[OutstandingBalance]:
        """Outstanding balance records created by this market's settlement."""

    @abstractmethod
    async def add_outstanding_balances(self, balances: Sequence[OutstandingBalance]) -> None:
        ...


class Store(ABC):
    """Backing document store for markets and participations."""

    @abstractmethod
    def transaction(self, market_id: str) -> AbstractAsyncContextManager[StoreTransaction]:
        """
        Open an atomic unit scoped to one market.

        Raises:
            RetryableError: if the unit cannot be acquired or committed
                because of contention or a timeout.
        """

    @abstractmethod
    async def add_market(self, market: Market) -> Market:
        """Persist a brand-new market."""

    @abstractmethod
    async def get_market(self, market_id: str) -> Market | None:
        ...

    @abstractmethod
    async def get_markets(self, market_ids: Iterable[str]) -> dict[str, Market]:
        ...

    @abstractmethod
    async def find_markets(
        self,
        community_id: str | None = None,
        statuses: Iterable[MarketStatus] | None = None,
    ) -> list[Market]:
        ...

    @abstractmethod
    async def find_participations(
        self,
        community_id: str | None = None,
        user_id: str | None = None,
        market_id: str | None = None,
    ) -> list[Participation]:
        """Stakes matching every given filter, oldest first."""

    @abstractmethod
    async def find_outstanding_balances(
        self,
        user_id: str | None = None,
        community_id: str | None = None,
        market_id: str | None = None,
        statuses: Iterable[BalanceStatus] | None = None,
    ) -> list[OutstandingBalance]:
        """Records where ``user_id`` is payer or payee, oldest first."""

    @abstractmethod
    async def close_outstanding_balances(
        self,
        user_id: str,
        counterparty_id: str,
        status: BalanceStatus,
        community_id: str | None = None,
    ) -> list[OutstandingBalance]:
        """
        Atomically move every pending record between two members, in either
        direction, to ``status``. Returns the records that were closed.
        """

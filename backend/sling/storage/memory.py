"""In-process store with per-market asyncio locks.

Documents are copied in and out so callers never share state with the
store, the same way a remote document database behaves.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager

from sling.exceptions import InvalidMarketError, RetryableError
from sling.schemas import (
    BalanceStatus,
    Market,
    MarketStatus,
    OutstandingBalance,
    Participation,
)
from sling.storage.base import Store, StoreTransaction
from sling.time_utils import utc_now

logger = logging.getLogger(__name__)


class _MemoryTransaction(StoreTransaction):
    """Stages writes and applies them to the store on commit."""

    def __init__(self, store: InMemoryStore, market_id: str):
        self.market_id = market_id
        self._store = store
        self._market: Market | None = None
        self._upserts: dict[str, Participation] = {}
        self._deleted: set[str] = set()
        self._balances: dict[str, OutstandingBalance] = {}

    async def get_market(self) -> Market | None:
        if self._market is not None:
            return self._market.model_copy(deep=True)
        market = self._store._markets.get(self.market_id)
        return market.model_copy(deep=True) if market else None

    async def list_participations(self) -> list[Participation]:
        current = {
            p.id: p
            for p in self._store._participations.values()
            if p.market_id == self.market_id
        }
        current.update(self._upserts)
        for participation_id in self._deleted:
            current.pop(participation_id, None)
        rows = sorted(current.values(), key=lambda p: p.created_at)
        return [p.model_copy(deep=True) for p in rows]

    async def add_participation(self, participation: Participation) -> None:
        self._upserts[participation.id] = participation.model_copy(deep=True)
        self._deleted.discard(participation.id)

    async def save_participations(self, participations: Sequence[Participation]) -> None:
        for participation in participations:
            self._upserts[participation.id] = participation.model_copy(deep=True)

    async def delete_participations(self, participation_ids: Iterable[str]) -> None:
        for participation_id in participation_ids:
            self._upserts.pop(participation_id, None)
            self._deleted.add(participation_id)

    async def save_market(self, market: Market) -> None:
        self._market = market.model_copy(deep=True)

    async def list_outstanding_balances(self) -> list[OutstandingBalance]:
        current = {
            b.id: b
            for b in self._store._balances.values()
            if b.market_id == self.market_id
        }
        current.update(self._balances)
        rows = sorted(current.values(), key=lambda b: b.created_at)
        return [b.model_copy(deep=True) for b in rows]

    async def add_outstanding_balances(self, balances: Sequence[OutstandingBalance]) -> None:
        for balance in balances:
            self._balances[balance.id] = balance.model_copy(deep=True)

    def commit(self) -> None:
        if self._market is not None:
            stored = self._store._markets.get(self.market_id)
            self._market.version = (stored.version + 1) if stored else 1
            self._store._markets[self.market_id] = self._market
        for participation_id in self._deleted:
            self._store._participations.pop(participation_id, None)
        self._store._participations.update(self._upserts)
        self._store._balances.update(self._balances)


class InMemoryStore(Store):
    """Dictionary-backed store for tests and single-process deployments."""

    def __init__(self, lock_timeout_seconds: float = 5.0):
        self.lock_timeout_seconds = lock_timeout_seconds
        self._markets: dict[str, Market] = {}
        self._participations: dict[str, Participation] = {}
        self._balances: dict[str, OutstandingBalance] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def transaction(self, market_id: str) -> AsyncIterator[StoreTransaction]:
        lock = self._locks.setdefault(market_id, asyncio.Lock())
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.lock_timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.warning(f"Timed out waiting for market {market_id} lock")
            raise RetryableError(
                f"Market {market_id} is busy, retry later",
                market_id=market_id,
            ) from e

        try:
            unit = _MemoryTransaction(self, market_id)
            yield unit
            unit.commit()
        finally:
            lock.release()

    async def add_market(self, market: Market) -> Market:
        if market.id in self._markets:
            raise InvalidMarketError(f"Market {market.id} already exists", market_id=market.id)
        self._markets[market.id] = market.model_copy(deep=True)
        return market

    async def get_market(self, market_id: str) -> Market | None:
        market = self._markets.get(market_id)
        return market.model_copy(deep=True) if market else None

    async def get_markets(self, market_ids: Iterable[str]) -> dict[str, Market]:
        return {
            market_id: self._markets[market_id].model_copy(deep=True)
            for market_id in set(market_ids)
            if market_id in self._markets
        }

    async def find_markets(
        self,
        community_id: str | None = None,
        statuses: Iterable[MarketStatus] | None = None,
    ) -> list[Market]:
        wanted = set(statuses) if statuses is not None else None
        rows = [
            market
            for market in self._markets.values()
            if (community_id is None or market.community_id == community_id)
            and (wanted is None or market.status in wanted)
        ]
        rows.sort(key=lambda m: m.created_at)
        return [m.model_copy(deep=True) for m in rows]

    async def find_participations(
        self,
        community_id: str | None = None,
        user_id: str | None = None,
        market_id: str | None = None,
    ) -> list[Participation]:
        rows = [
            p
            for p in self._participations.values()
            if (community_id is None or p.community_id == community_id)
            and (user_id is None or p.user_id == user_id)
            and (market_id is None or p.market_id == market_id)
        ]
        rows.sort(key=lambda p: p.created_at)
        return [p.model_copy(deep=True) for p in rows]

    async def find_outstanding_balances(
        self,
        user_id: str | None = None,
        community_id: str | None = None,
        market_id: str | None = None,
        statuses: Iterable[BalanceStatus] | None = None,
    ) -> list[OutstandingBalance]:
        wanted = set(statuses) if statuses is not None else None
        rows = [
            b
            for b in self._balances.values()
            if (user_id is None or user_id in (b.payer_id, b.payee_id))
            and (community_id is None or b.community_id == community_id)
            and (market_id is None or b.market_id == market_id)
            and (wanted is None or b.status in wanted)
        ]
        rows.sort(key=lambda b: b.created_at)
        return [b.model_copy(deep=True) for b in rows]

    async def close_outstanding_balances(
        self,
        user_id: str,
        counterparty_id: str,
        status: BalanceStatus,
        community_id: str | None = None,
    ) -> list[OutstandingBalance]:
        # No await between the scan and the writes, so this is atomic
        parties = {user_id, counterparty_id}
        now = utc_now()
        closed = []
        for balance in self._balances.values():
            if (
                balance.is_pending
                and {balance.payer_id, balance.payee_id} == parties
                and (community_id is None or balance.community_id == community_id)
            ):
                balance.close(status, now)
                closed.append(balance.model_copy(deep=True))

        closed.sort(key=lambda b: b.created_at)
        return closed

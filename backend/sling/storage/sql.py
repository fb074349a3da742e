"""SQLAlchemy-backed store.

Each ledger unit is one database transaction. The market row is read
``FOR UPDATE`` on PostgreSQL; on SQLite every transaction starts with
``BEGIN IMMEDIATE`` (see ``serialize_sqlite_transactions``). The row also
carries a ``version`` column, so an interleaved write to the same market
fails at commit with ``StaleDataError`` instead of being lost. Driver
contention errors surface as ``RetryableError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from sling.database.session import create_session_factory, get_db_session
from sling.exceptions import InvalidMarketError, NotFoundError, RetryableError
from sling.models import MarketRecord, OutstandingBalanceRecord, ParticipationRecord
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

RETRYABLE_DB_ERRORS = (
    OperationalError,
    StaleDataError,
    PoolTimeoutError,
    asyncio.TimeoutError,
)


def _market_fields(market: Market) -> dict[str, Any]:
    # version is owned by the mapper
    data = market.model_dump(exclude={"version"})
    data["status"] = market.status.value
    return data


def _participation_fields(participation: Participation) -> dict[str, Any]:
    return participation.model_dump()


def _balance_fields(balance: OutstandingBalance) -> dict[str, Any]:
    data = balance.model_dump()
    data["status"] = balance.status.value
    return data


def _apply(record: Any, fields: dict[str, Any]) -> None:
    for key, value in fields.items():
        setattr(record, key, value)


class _SqlTransaction(StoreTransaction):
    def __init__(self, session: AsyncSession, market_id: str):
        self.market_id = market_id
        self._session = session
        self._record: MarketRecord | None = None

    async def _load_record(self) -> MarketRecord | None:
        if self._record is None:
            result = await self._session.execute(
                select(MarketRecord)
                .where(MarketRecord.id == self.market_id)
                .with_for_update()
            )
            self._record = result.scalar_one_or_none()
        return self._record

    async def get_market(self) -> Market | None:
        record = await self._load_record()
        return Market.model_validate(record) if record is not None else None

    async def list_participations(self) -> list[Participation]:
        result = await self._session.execute(
            select(ParticipationRecord)
            .where(ParticipationRecord.market_id == self.market_id)
            .order_by(ParticipationRecord.created_at, ParticipationRecord.id)
        )
        return [Participation.model_validate(row) for row in result.scalars().all()]

    async def add_participation(self, participation: Participation) -> None:
        self._session.add(ParticipationRecord(**_participation_fields(participation)))

    async def save_participations(self, participations: Sequence[Participation]) -> None:
        for participation in participations:
            record = await self._session.get(ParticipationRecord, participation.id)
            if record is None:
                raise NotFoundError(
                    f"Participation {participation.id} not found",
                    market_id=self.market_id,
                )
            _apply(record, _participation_fields(participation))

    async def delete_participations(self, participation_ids: Iterable[str]) -> None:
        ids = list(participation_ids)
        if not ids:
            return
        await self._session.execute(
            delete(ParticipationRecord).where(ParticipationRecord.id.in_(ids))
        )

    async def save_market(self, market: Market) -> None:
        record = await self._load_record()
        if record is None:
            raise NotFoundError(f"Market {self.market_id} not found", market_id=self.market_id)
        _apply(record, _market_fields(market))

    async def list_outstanding_balances(self) -> list[OutstandingBalance]:
        result = await self._session.execute(
            select(OutstandingBalanceRecord)
            .where(OutstandingBalanceRecord.market_id == self.market_id)
            .order_by(OutstandingBalanceRecord.created_at, OutstandingBalanceRecord.id)
        )
        return [OutstandingBalance.model_validate(row) for row in result.scalars().all()]

    async def add_outstanding_balances(self, balances: Sequence[OutstandingBalance]) -> None:
        self._session.add_all(OutstandingBalanceRecord(**_balance_fields(b)) for b in balances)


class SqlAlchemyStore(Store):
    """Store backed by any SQLAlchemy async engine (PostgreSQL, SQLite)."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def transaction(self, market_id: str) -> AsyncIterator[StoreTransaction]:
        session = self._session_factory()
        try:
            async with session.begin():
                yield _SqlTransaction(session, market_id)
        except RETRYABLE_DB_ERRORS as e:
            logger.warning(f"Contention on market {market_id}: {type(e).__name__}: {e}")
            raise RetryableError(
                f"Market {market_id} was modified concurrently, retry later",
                market_id=market_id,
            ) from e
        finally:
            await session.close()

    async def add_market(self, market: Market) -> Market:
        try:
            async with get_db_session(self._session_factory) as db:
                record = MarketRecord(**_market_fields(market))
                db.add(record)
                await db.commit()
                market.version = record.version
        except IntegrityError as e:
            raise InvalidMarketError(
                f"Market {market.id} already exists", market_id=market.id
            ) from e
        except RETRYABLE_DB_ERRORS as e:
            raise RetryableError(f"Could not store market {market.id}: {e}") from e
        return market

    async def get_market(self, market_id: str) -> Market | None:
        async with get_db_session(self._session_factory) as db:
            record = await db.get(MarketRecord, market_id)
            return Market.model_validate(record) if record is not None else None

    async def get_markets(self, market_ids: Iterable[str]) -> dict[str, Market]:
        ids = list(set(market_ids))
        if not ids:
            return {}
        async with get_db_session(self._session_factory) as db:
            result = await db.execute(select(MarketRecord).where(MarketRecord.id.in_(ids)))
            return {
                record.id: Market.model_validate(record)
                for record in result.scalars().all()
            }

    async def find_markets(
        self,
        community_id: str | None = None,
        statuses: Iterable[MarketStatus] | None = None,
    ) -> list[Market]:
        query = select(MarketRecord)
        if community_id is not None:
            query = query.where(MarketRecord.community_id == community_id)
        if statuses is not None:
            query = query.where(MarketRecord.status.in_([s.value for s in statuses]))
        query = query.order_by(MarketRecord.created_at)

        async with get_db_session(self._session_factory) as db:
            result = await db.execute(query)
            return [Market.model_validate(record) for record in result.scalars().all()]

    async def find_participations(
        self,
        community_id: str | None = None,
        user_id: str | None = None,
        market_id: str | None = None,
    ) -> list[Participation]:
        query = select(ParticipationRecord)
        if community_id is not None:
            query = query.where(ParticipationRecord.community_id == community_id)
        if user_id is not None:
            query = query.where(ParticipationRecord.user_id == user_id)
        if market_id is not None:
            query = query.where(ParticipationRecord.market_id == market_id)
        query = query.order_by(ParticipationRecord.created_at, ParticipationRecord.id)

        async with get_db_session(self._session_factory) as db:
            result = await db.execute(query)
            return [Participation.model_validate(row) for row in result.scalars().all()]

    async def find_outstanding_balances(
        self,
        user_id: str | None = None,
        community_id: str | None = None,
        market_id: str | None = None,
        statuses: Iterable[BalanceStatus] | None = None,
    ) -> list[OutstandingBalance]:
        query = select(OutstandingBalanceRecord)
        if user_id is not None:
            query = query.where(
                or_(
                    OutstandingBalanceRecord.payer_id == user_id,
                    OutstandingBalanceRecord.payee_id == user_id,
                )
            )
        if community_id is not None:
            query = query.where(OutstandingBalanceRecord.community_id == community_id)
        if market_id is not None:
            query = query.where(OutstandingBalanceRecord.market_id == market_id)
        if statuses is not None:
            query = query.where(
                OutstandingBalanceRecord.status.in_([s.value for s in statuses])
            )
        query = query.order_by(OutstandingBalanceRecord.created_at, OutstandingBalanceRecord.id)

        async with get_db_session(self._session_factory) as db:
            result = await db.execute(query)
            return [OutstandingBalance.model_validate(row) for row in result.scalars().all()]

    async def close_outstanding_balances(
        self,
        user_id: str,
        counterparty_id: str,
        status: BalanceStatus,
        community_id: str | None = None,
    ) -> list[OutstandingBalance]:
        query = select(OutstandingBalanceRecord).where(
            OutstandingBalanceRecord.status == BalanceStatus.PENDING.value,
            or_(
                and_(
                    OutstandingBalanceRecord.payer_id == user_id,
                    OutstandingBalanceRecord.payee_id == counterparty_id,
                ),
                and_(
                    OutstandingBalanceRecord.payer_id == counterparty_id,
                    OutstandingBalanceRecord.payee_id == user_id,
                ),
            ),
        )
        if community_id is not None:
            query = query.where(OutstandingBalanceRecord.community_id == community_id)
        query = query.order_by(
            OutstandingBalanceRecord.created_at, OutstandingBalanceRecord.id
        ).with_for_update()

        session = self._session_factory()
        try:
            async with session.begin():
                result = await session.execute(query)
                records = result.scalars().all()
                now = utc_now()
                for record in records:
                    record.status = status.value
                    record.resolved_at = now
            return [OutstandingBalance.model_validate(record) for record in records]
        except RETRYABLE_DB_ERRORS as e:
            logger.warning(
                f"Contention closing balances between {user_id} and {counterparty_id}: {e}"
            )
            raise RetryableError(
                f"Balances between {user_id} and {counterparty_id} are busy, retry later"
            ) from e
        finally:
            await session.close()

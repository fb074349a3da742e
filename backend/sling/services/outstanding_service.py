"""Who owes whom: counterparty balances written at settlement."""

import logging
from collections.abc import Sequence

from sling.exceptions import NotFoundError
from sling.schemas import (
    BalanceStatus,
    CounterpartyBalance,
    Market,
    MarketStatus,
    OutstandingBalance,
    Participation,
)
from sling.storage.base import Store

logger = logging.getLogger(__name__)


def split_amount(amount: int, weights: Sequence[int]) -> list[int]:
    """
    Split ``amount`` into whole points proportional to ``weights``.

    Floors each share, then hands the leftover points to the largest
    remainders (earliest first on ties) so the shares always sum to
    ``amount``. Zero total weight splits evenly.
    """
    if not weights:
        return []
    total = sum(weights)
    if total <= 0:
        weights = [1] * len(weights)
        total = len(weights)

    shares = [amount * w // total for w in weights]
    leftover = amount - sum(shares)
    by_remainder = sorted(
        range(len(weights)), key=lambda i: (-(amount * weights[i] % total), i)
    )
    for i in by_remainder[:leftover]:
        shares[i] += 1
    return shares


def compute_outstanding_balances(
    market: Market,
    participations: Sequence[Participation],
) -> list[OutstandingBalance]:
    """
    Records for a settled market: each winner's payout is owed by the
    losers in proportion to their stakes.

    A member never owes themselves, and several stakes between the same
    two members on one market collapse into one record.
    """
    if market.status is not MarketStatus.SETTLED:
        return []

    owed: dict[tuple[str, str], int] = {}
    for winner in participations:
        if not winner.is_winner or not winner.final_payout:
            continue

        losers = [
            p
            for p in participations
            if p.chosen_option != market.winner_option and p.user_id != winner.user_id
        ]
        if not losers:
            continue

        shares = split_amount(winner.final_payout, [p.stake_amount for p in losers])
        for loser, share in zip(losers, shares):
            key = (loser.user_id, winner.user_id)
            owed[key] = owed.get(key, 0) + share

    return [
        OutstandingBalance(
            market_id=market.id,
            community_id=market.community_id,
            payer_id=payer_id,
            payee_id=payee_id,
            amount=amount,
            winner_option=market.winner_option,
            market_title=market.title,
            created_at=market.resolved_at or market.updated_at,
        )
        for (payer_id, payee_id), amount in owed.items()
        if amount > 0
    ]


def group_by_counterparty(
    user_id: str,
    balances: Sequence[OutstandingBalance],
) -> list[CounterpartyBalance]:
    """
    Net a user's records per counterparty.

    Ordered from the largest amount owed to the user down to the largest
    amount the user owes.
    """
    grouped: dict[str, CounterpartyBalance] = {}
    for balance in balances:
        if balance.payee_id == user_id:
            counterparty_id, signed = balance.payer_id, balance.amount
        elif balance.payer_id == user_id:
            counterparty_id, signed = balance.payee_id, -balance.amount
        else:
            continue

        entry = grouped.setdefault(
            counterparty_id,
            CounterpartyBalance(user_id=user_id, counterparty_id=counterparty_id, net_amount=0),
        )
        entry.net_amount += signed
        entry.records.append(balance)

    return sorted(grouped.values(), key=lambda b: (-b.net_amount, b.counterparty_id))


class OutstandingBalanceService:
    """
    Queries and closes the who-owes-whom records.

    Records are written by ``SettlementService`` inside the settlement
    unit; this service only reads them and moves them out of ``pending``.
    """

    def __init__(self, store: Store):
        self.store = store

    async def outstanding_balances(
        self,
        user_id: str,
        community_id: str | None = None,
    ) -> list[CounterpartyBalance]:
        """Pending balances for a user, netted per counterparty."""
        records = await self.store.find_outstanding_balances(
            user_id=user_id,
            community_id=community_id,
            statuses=[BalanceStatus.PENDING],
        )
        grouped = group_by_counterparty(user_id, records)
        logger.debug(
            f"{user_id} has {len(records)} pending record(s) with {len(grouped)} counterparties"
        )
        return grouped

    async def balance_history(
        self,
        user_id: str,
        community_id: str | None = None,
    ) -> list[OutstandingBalance]:
        """Paid and resolved records for a user, most recently closed first."""
        records = await self.store.find_outstanding_balances(
            user_id=user_id,
            community_id=community_id,
            statuses=[BalanceStatus.PAID, BalanceStatus.RESOLVED],
        )
        return sorted(records, key=lambda b: b.resolved_at or b.created_at, reverse=True)

    async def mark_balance_paid(
        self,
        user_id: str,
        counterparty_id: str,
        community_id: str | None = None,
    ) -> list[OutstandingBalance]:
        """Close every pending record between two members as paid."""
        return await self._close(user_id, counterparty_id, BalanceStatus.PAID, community_id)

    async def resolve_outstanding_balance(
        self,
        user_id: str,
        counterparty_id: str,
        community_id: str | None = None,
    ) -> list[OutstandingBalance]:
        """Close every pending record between two members as resolved."""
        return await self._close(user_id, counterparty_id, BalanceStatus.RESOLVED, community_id)

    async def _close(
        self,
        user_id: str,
        counterparty_id: str,
        status: BalanceStatus,
        community_id: str | None,
    ) -> list[OutstandingBalance]:
        closed = await self.store.close_outstanding_balances(
            user_id, counterparty_id, status, community_id
        )
        if not closed:
            raise NotFoundError(
                f"No pending balance between {user_id} and {counterparty_id}"
            )

        net = sum(b.amount if b.payee_id == user_id else -b.amount for b in closed)
        logger.info(
            f"Closed {len(closed)} record(s) between {user_id} and {counterparty_id} "
            f"as {status.value} (net {net:+d} for {user_id})"
        )
        return closed

"""
Unit Tests: Outstanding balances

Tests for the who-owes-whom records written at settlement.

Test cases:
- Whole-point proportional splitting always sums to the amount
- A settled market makes each loser owe each winner a share of the payout
- Void, cancel, and one-sided markets create no records
- Netting per counterparty and its ordering
- Marking paid / resolved closes both directions exactly once
- Reconciliation writes records a crash left out
"""

import asyncio

import pytest

from sling.config import SettlementConfig
from sling.exceptions import NotFoundError
from sling.schemas import BalanceStatus, OutstandingBalance
from sling.services import group_by_counterparty, split_amount

ODDS = {"Yes": "-110", "No": "+120"}


def _owed(result) -> dict[tuple[str, str], int]:
    return {(b.payer_id, b.payee_id): b.amount for b in result.outstanding_balances}


@pytest.mark.parametrize(
    "amount,weights,expected",
    [
        (95, [30, 10], [71, 24]),
        (10, [1, 1, 1], [4, 3, 3]),
        (38, [30, 10], [29, 9]),
        (5, [0, 0], [3, 2]),
        (0, [4, 1], [0, 0]),
        (7, [], []),
    ],
)
def test_split_amount(amount, weights, expected) -> None:
    shares = split_amount(amount, weights)
    assert shares == expected
    assert sum(shares) == (amount if weights else 0)


def test_loser_owes_winner_after_settlement(engine, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], ODDS, deadline, title="Rain tomorrow?"
        )
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U2", "No", 30)

        result = await engine.settle_market(market.id, "Yes", "creator")
        assert _owed(result) == {("U2", "U1"): 95}
        record = result.outstanding_balances[0]
        assert record.status is BalanceStatus.PENDING
        assert record.market_title == "Rain tomorrow?"
        assert record.winner_option == "Yes"

        [owes] = await engine.outstanding_balances("U2")
        assert owes.counterparty_id == "U1"
        assert owes.net_amount == -95
        assert owes.is_owed is True

        [owed] = await engine.outstanding_balances("U1", community_id="c1")
        assert owed.counterparty_id == "U2"
        assert owed.net_amount == 95
        assert owed.is_owed is False

        assert await engine.outstanding_balances("U1", community_id="c2") == []

    asyncio.run(run())


def test_payouts_split_across_losers_by_stake(engine, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market("creator", "c1", ["Yes", "No"], ODDS, deadline)
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U4", "Yes", 20)
        await engine.place_stake(market.id, "U2", "No", 30)
        await engine.place_stake(market.id, "U3", "No", 10)

        result = await engine.settle_market(market.id, "Yes", "creator")
        assert _owed(result) == {
            ("U2", "U1"): 71,
            ("U3", "U1"): 24,
            ("U2", "U4"): 29,
            ("U3", "U4"): 9,
        }
        winners = {p.user_id: p.final_payout for p in result.participations if p.is_winner}
        assert winners == {"U1": 95, "U4": 38}

    asyncio.run(run())


def test_member_never_owes_themselves(engine, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market("creator", "c1", ["Yes", "No"], ODDS, deadline)
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U1", "No", 10)
        await engine.place_stake(market.id, "U2", "No", 30)

        result = await engine.settle_market(market.id, "Yes", "creator")
        assert _owed(result) == {("U2", "U1"): 95}

    asyncio.run(run())


@pytest.mark.parametrize("action", ["void", "cancel"])
def test_refunds_create_no_records(action, engine, store, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market("creator", "c1", ["Yes", "No"], ODDS, deadline)
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U2", "No", 30)

        if action == "void":
            result = await engine.void_market(market.id, "creator")
        else:
            result = await engine.cancel_market(market.id, "creator")

        assert result.outstanding_balances == []
        assert await store.find_outstanding_balances(market_id=market.id) == []

    asyncio.run(run())


def test_one_sided_market_creates_no_records(make_engine, store, deadline) -> None:
    async def run() -> None:
        plain = make_engine()
        market = await plain.create_market("creator", "c1", ["Yes", "No"], ODDS, deadline)
        await plain.place_stake(market.id, "U1", "Yes", 50)
        await plain.place_stake(market.id, "U2", "Yes", 20)
        result = await plain.settle_market(market.id, "Yes", "creator")
        assert result.outstanding_balances == []

        voiding = make_engine(settlement=SettlementConfig(void_one_sided_markets=True))
        other = await voiding.create_market("creator", "c1", ["Yes", "No"], ODDS, deadline)
        await voiding.place_stake(other.id, "U1", "No", 50)
        result = await voiding.settle_market(other.id, "No", "creator")
        assert result.outstanding_balances == []

        assert await store.find_outstanding_balances() == []

    asyncio.run(run())


def test_recording_can_be_disabled(make_engine, store, deadline) -> None:
    engine = make_engine(settlement=SettlementConfig(record_outstanding_balances=False))

    async def run() -> None:
        market = await engine.create_market("creator", "c1", ["Yes", "No"], ODDS, deadline)
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U2", "No", 30)

        result = await engine.settle_market(market.id, "Yes", "creator")
        assert result.outstanding_balances == []
        assert await engine.outstanding_balances("U1") == []
        assert await engine.net_balance("c1", "U1") == 45

    asyncio.run(run())


def test_group_by_counterparty_nets_and_orders() -> None:
    def record(payer: str, payee: str, amount: int, market_id: str) -> OutstandingBalance:
        return OutstandingBalance(
            market_id=market_id, community_id="c1", payer_id=payer,
            payee_id=payee, amount=amount, winner_option="Yes",
        )

    grouped = group_by_counterparty(
        "U1",
        [
            record("U2", "U1", 95, "m1"),
            record("U1", "U2", 20, "m2"),
            record("U1", "U3", 40, "m3"),
            record("U4", "U1", 10, "m4"),
            record("U5", "U6", 99, "m5"),
        ],
    )

    assert [(g.counterparty_id, g.net_amount) for g in grouped] == [
        ("U2", 75),
        ("U4", 10),
        ("U3", -40),
    ]
    assert len(grouped[0].records) == 2
    assert all(g.user_id == "U1" for g in grouped)


def test_mark_paid_closes_both_directions(engine, deadline) -> None:
    async def run() -> None:
        first = await engine.create_market("creator", "c1", ["Yes", "No"], ODDS, deadline)
        await engine.place_stake(first.id, "U1", "Yes", 50)
        await engine.place_stake(first.id, "U2", "No", 30)
        await engine.settle_market(first.id, "Yes", "creator")

        second = await engine.create_market("creator", "c1", ["Yes", "No"], ODDS, deadline)
        await engine.place_stake(second.id, "U1", "Yes", 10)
        await engine.place_stake(second.id, "U2", "No", 10)
        await engine.settle_market(second.id, "No", "creator")

        [pending] = await engine.outstanding_balances("U1")
        assert pending.net_amount == 95 - 22
        assert len(pending.records) == 2

        closed = await engine.mark_balance_paid("U2", "U1")
        assert len(closed) == 2
        assert all(b.status is BalanceStatus.PAID for b in closed)
        assert all(b.resolved_at is not None for b in closed)

        assert await engine.outstanding_balances("U1") == []
        assert await engine.outstanding_balances("U2") == []
        history = await engine.balance_history("U1")
        assert {b.market_id for b in history} == {first.id, second.id}

        with pytest.raises(NotFoundError):
            await engine.mark_balance_paid("U1", "U2")

    asyncio.run(run())


def test_resolve_only_touches_one_pair(engine, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market("creator", "c1", ["Yes", "No"], ODDS, deadline)
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U2", "No", 30)
        await engine.place_stake(market.id, "U3", "No", 10)
        await engine.settle_market(market.id, "Yes", "creator")

        [closed] = await engine.resolve_outstanding_balance("U1", "U3")
        assert closed.status is BalanceStatus.RESOLVED
        assert closed.payer_id == "U3"

        [remaining] = await engine.outstanding_balances("U1")
        assert (remaining.counterparty_id, remaining.net_amount) == ("U2", 71)
        [history] = await engine.balance_history("U3")
        assert history.id == closed.id

        with pytest.raises(NotFoundError):
            await engine.resolve_outstanding_balance("U3", "U1")
        with pytest.raises(NotFoundError):
            await engine.mark_balance_paid("U1", "U2", community_id="c2")

    asyncio.run(run())


def test_reconcile_writes_missing_records(engine, store, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market("creator", "c1", ["Yes", "No"], ODDS, deadline)
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U2", "No", 30)

        # Market written as settled but nothing else was
        store._markets[market.id].settle("Yes")
        assert await engine.outstanding_balances("U1") == []

        assert await engine.reconcile_unresolved() == {market.id: 2}
        [owed] = await engine.outstanding_balances("U1")
        assert (owed.counterparty_id, owed.net_amount) == ("U2", 95)

        assert await engine.reconcile_unresolved() == {}
        assert len(await store.find_outstanding_balances(market_id=market.id)) == 1

    asyncio.run(run())

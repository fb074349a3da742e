"""
Unit Tests: Settlement

Tests for market resolution and payouts.

Test cases:
- Winning stakes pay the fixed-odds payout, losing stakes pay 0
- Void and cancel refund every stake exactly
- Only the creator may resolve
- Two concurrent resolutions: exactly one wins
- Reconciliation after a crash mid-settlement
- Pari-mutuel and one-sided void configuration
"""

import asyncio

import pytest

from sling.config import SettlementConfig
from sling.exceptions import (
    AlreadySettledError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
    UnknownOptionError,
)
from sling.schemas import MarketStatus


def test_settlement_scenario(engine, store, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U2", "No", 30)

        result = await engine.settle_market(market.id, "Yes", "creator")
        assert result.outcome is MarketStatus.SETTLED
        assert result.total_staked == 80
        assert result.total_paid_out == 95

        by_user = {p.user_id: p for p in await store.find_participations(market_id=market.id)}
        assert by_user["U1"].final_payout == 95
        assert by_user["U1"].is_winner is True
        assert by_user["U2"].final_payout == 0
        assert by_user["U2"].is_winner is False

        assert await engine.net_balance("c1", "U1") == 45
        assert await engine.net_balance("c1", "U2") == -30

    asyncio.run(run())


def test_fixed_odds_does_not_conserve_points(engine, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["A", "B"], {"A": "-110", "B": "-110"}, deadline
        )
        await engine.place_stake(market.id, "A", "A", 100)
        await engine.place_stake(market.id, "B", "B", 100)
        await engine.settle_market(market.id, "A", "creator")

        assert await engine.member_balances("c1") == {"A": 90, "B": -100}

    asyncio.run(run())


def test_settled_market_is_final(engine, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.settle_market(market.id, "Yes", "creator")

        with pytest.raises(AlreadySettledError) as exc_info:
            await engine.settle_market(market.id, "No", "creator")
        assert exc_info.value.code == "already_settled"
        assert isinstance(exc_info.value, InvalidTransitionError)
        with pytest.raises(AlreadySettledError):
            await engine.void_market(market.id, "creator")
        with pytest.raises(AlreadySettledError):
            await engine.cancel_market(market.id, "creator")

        stored = await engine.get_market(market.id)
        assert stored.status is MarketStatus.SETTLED
        assert stored.winner_option == "Yes"
        assert await engine.net_balance("c1", "U1") == 45

    asyncio.run(run())


def test_settle_guards(engine, store, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        await engine.place_stake(market.id, "U1", "Yes", 50)

        with pytest.raises(NotAuthorizedError):
            await engine.settle_market(market.id, "Yes", "U1")
        with pytest.raises(NotAuthorizedError):
            await engine.void_market(market.id, "U1")
        with pytest.raises(UnknownOptionError):
            await engine.settle_market(market.id, "Maybe", "creator")
        with pytest.raises(NotFoundError):
            await engine.settle_market("mkt_missing", "Yes", "creator")

        stored = await engine.get_market(market.id)
        assert stored.status is MarketStatus.OPEN
        stakes = await store.find_participations(market_id=market.id)
        assert all(not p.is_resolved for p in stakes)

    asyncio.run(run())


def test_concurrent_settlement_has_one_winner(engine, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U2", "No", 30)

        outcomes = await asyncio.gather(
            engine.settle_market(market.id, "Yes", "creator"),
            engine.settle_market(market.id, "No", "creator"),
            return_exceptions=True,
        )

        successes = [o for o in outcomes if not isinstance(o, BaseException)]
        failures = [o for o in outcomes if isinstance(o, BaseException)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], AlreadySettledError)

        stored = await engine.get_market(market.id)
        assert stored.winner_option == successes[0].market.winner_option
        total = await engine.net_balance("c1", "U1") + await engine.net_balance("c1", "U2")
        assert total in (45 - 30, -50 + 36)

    asyncio.run(run())


def test_concurrent_settle_and_void_have_one_winner(engine, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        await engine.place_stake(market.id, "U1", "Yes", 50)

        outcomes = await asyncio.gather(
            engine.void_market(market.id, "creator"),
            engine.settle_market(market.id, "Yes", "creator"),
            return_exceptions=True,
        )
        assert sum(isinstance(o, AlreadySettledError) for o in outcomes) == 1

    asyncio.run(run())


@pytest.mark.parametrize("action", ["void", "cancel"])
def test_refund_returns_every_stake(action, engine, store, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U2", "No", 30)
        await engine.place_stake(market.id, "U1", "No", 7)

        if action == "void":
            result = await engine.void_market(market.id, "creator")
            assert result.outcome is MarketStatus.VOIDED
        else:
            result = await engine.cancel_market(market.id, "creator")
            assert result.outcome is MarketStatus.CANCELLED

        assert result.market.winner_option is None
        assert result.total_paid_out == result.total_staked == 87

        for stake in await store.find_participations(market_id=market.id):
            assert stake.final_payout == stake.stake_amount
            assert stake.is_winner is None

        assert await engine.member_balances("c1") == {"U1": 0, "U2": 0}

    asyncio.run(run())


def test_settle_market_without_stakes(engine, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        result = await engine.settle_market(market.id, "No", "creator")
        assert result.outcome is MarketStatus.SETTLED
        assert result.participations == []

    asyncio.run(run())


def test_reconcile_after_interrupted_settlement(engine, store, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U2", "No", 30)

        # Market written as settled but the stakes never were
        store._markets[market.id].settle("Yes")
        assert await engine.net_balance("c1", "U1") == 0

        repaired = await engine.reconcile_unresolved()
        assert repaired == {market.id: 2}
        assert await engine.net_balance("c1", "U1") == 45
        assert await engine.net_balance("c1", "U2") == -30

        assert await engine.reconcile_unresolved("c1") == {}

    asyncio.run(run())


def test_reconcile_leaves_resolved_stakes_alone(engine, store, deadline) -> None:
    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.settle_market(market.id, "Yes", "creator")

        fixed = await engine.settlements.reconcile_market(market.id)
        assert fixed == []
        assert await engine.net_balance("c1", "U1") == 45

        open_market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        await engine.place_stake(open_market.id, "U1", "No", 10)
        assert await engine.settlements.reconcile_market(open_market.id) == []

    asyncio.run(run())


def test_parimutuel_payouts(make_engine, deadline) -> None:
    engine = make_engine(settlement=SettlementConfig(payout_model="parimutuel"))

    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        await engine.place_stake(market.id, "U1", "Yes", 60)
        await engine.place_stake(market.id, "U2", "Yes", 40)
        await engine.place_stake(market.id, "U3", "No", 50)

        result = await engine.settle_market(market.id, "Yes", "creator")
        payouts = {p.user_id: p.final_payout for p in result.participations}
        assert payouts == {"U1": 90, "U2": 60, "U3": 0}
        assert sum((await engine.member_balances("c1")).values()) == 0

    asyncio.run(run())


def test_one_sided_market_is_voided_when_configured(make_engine, deadline) -> None:
    engine = make_engine(settlement=SettlementConfig(void_one_sided_markets=True))

    async def run() -> None:
        market = await engine.create_market(
            "creator", "c1", ["Yes", "No"], {"Yes": "-110", "No": "+120"}, deadline
        )
        await engine.place_stake(market.id, "U1", "Yes", 50)
        await engine.place_stake(market.id, "U2", "Yes", 20)

        result = await engine.settle_market(market.id, "Yes", "creator")
        assert result.outcome is MarketStatus.VOIDED
        assert result.market.winner_option is None
        assert await engine.member_balances("c1") == {"U1": 0, "U2": 0}

    asyncio.run(run())

"""Sling ledger CLI entry point."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

from dotenv import load_dotenv

env_file = Path.cwd() / ".env"
load_dotenv(env_file)

from sling import __version__
from sling.config import get_settings
from sling.database import create_engine_from_config, create_tables
from sling.engine import WagerEngine
from sling.exceptions import LedgerError
from sling.schemas import SettlementResult
from sling.storage import SqlAlchemyStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


def _run_with_engine(operation: Callable[[WagerEngine], Awaitable[int]]) -> int:
    """Open the configured database, run one ledger operation, and clean up."""
    settings = get_settings()

    async def run() -> int:
        db_engine = create_engine_from_config(settings.database)
        try:
            _init_logfire(db_engine)
            return await operation(WagerEngine(SqlAlchemyStore(db_engine), settings))
        finally:
            await db_engine.dispose()

    try:
        return asyncio.run(run())
    except LedgerError as e:
        logger.error(f"{e.code}: {e.message}")
        print(f"\n❌ {e.message}\n")
        return 1


def _init_logfire(db_engine=None) -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from sling.observability import initialize_logfire

        initialize_logfire(get_settings(), db_engine)
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def _print_result(result: SettlementResult) -> None:
    market = result.market
    print(f"\n✓ Market {market.id} is {market.status.value}\n")
    if market.winner_option is not None:
        print(f"Winner: {market.winner_option}")
    print(f"Stakes: {len(result.participations)}")
    print(f"Total staked: {result.total_staked}")
    print(f"Total paid out: {result.total_paid_out}\n")


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create the ledger tables."""
    settings = get_settings()

    async def run() -> None:
        db_engine = create_engine_from_config(settings.database)
        try:
            await create_tables(db_engine)
        finally:
            await db_engine.dispose()

    try:
        asyncio.run(run())
        logger.info(f"Created ledger tables at {settings.database.url}")
        print(f"\n✓ Ledger tables ready\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to create tables: {e}", exc_info=True)
        print(f"\n❌ Failed to create tables: {e}\n")
        return 1


def cmd_balance(args: argparse.Namespace) -> int:
    """Show one member's net points in a community."""

    async def run(engine: WagerEngine) -> int:
        net = await engine.net_balance(args.community, args.user)
        print(f"{args.user}: {net:+d}")
        return 0

    return _run_with_engine(run)


def cmd_balances(args: argparse.Namespace) -> int:
    """Show the community leaderboard."""

    async def run(engine: WagerEngine) -> int:
        board = await engine.leaderboard(args.community)
        print(f"\n=== Balances: {args.community} ===\n")
        for entry in board:
            print(f"{entry.rank:>3}. {entry.user_id}: {entry.net_points:+d}")
        if not board:
            print("No stakes yet")
        print()
        return 0

    return _run_with_engine(run)


def cmd_settle(args: argparse.Namespace) -> int:
    """Declare a market's winning option."""

    async def run(engine: WagerEngine) -> int:
        _print_result(await engine.settle_market(args.market, args.option, args.actor))
        return 0

    return _run_with_engine(run)


def cmd_void(args: argparse.Namespace) -> int:
    """Void a market and refund every stake."""

    async def run(engine: WagerEngine) -> int:
        _print_result(await engine.void_market(args.market, args.actor))
        return 0

    return _run_with_engine(run)


def cmd_cancel(args: argparse.Namespace) -> int:
    """Cancel a market and refund every stake."""

    async def run(engine: WagerEngine) -> int:
        _print_result(await engine.cancel_market(args.market, args.actor))
        return 0

    return _run_with_engine(run)


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Resolve stakes left behind on finished markets."""

    async def run(engine: WagerEngine) -> int:
        repaired = await engine.reconcile_unresolved(args.community)
        for market_id, count in repaired.items():
            print(f"  • {market_id}: {count} stake(s) resolved")
        if not repaired:
            print("Nothing to reconcile")
        return 0

    return _run_with_engine(run)


def cmd_owed(args: argparse.Namespace) -> int:
    """Show who owes a member and whom the member owes."""

    async def run(engine: WagerEngine) -> int:
        grouped = await engine.outstanding_balances(args.user, args.community)
        print(f"\n=== Outstanding: {args.user} ===\n")
        for entry in grouped:
            direction = "owes you" if entry.net_amount > 0 else "you owe"
            print(f"  • {entry.counterparty_id}: {direction} {abs(entry.net_amount)}")
        if not grouped:
            print("All square")
        print()
        return 0

    return _run_with_engine(run)


def cmd_mark_paid(args: argparse.Namespace) -> int:
    """Close every pending balance between two members."""

    async def run(engine: WagerEngine) -> int:
        if args.resolve:
            closed = await engine.resolve_outstanding_balance(
                args.user, args.counterparty, args.community
            )
        else:
            closed = await engine.mark_balance_paid(args.user, args.counterparty, args.community)
        print(f"✅ Closed {len(closed)} record(s) between {args.user} and {args.counterparty}")
        return 0

    return _run_with_engine(run)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="sling",
        description="Sling wager settlement and balance ledger",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init-db",
        help="Create ledger tables",
    )
    parser_init.set_defaults(func=cmd_init_db)

    parser_balance = subparsers.add_parser(
        "balance",
        help="Net points for one member of a community",
    )
    parser_balance.add_argument("community", help="Community ID")
    parser_balance.add_argument("user", help="User ID")
    parser_balance.set_defaults(func=cmd_balance)

    parser_balances = subparsers.add_parser(
        "balances",
        help="Ranked net points for every member of a community",
    )
    parser_balances.add_argument("community", help="Community ID")
    parser_balances.set_defaults(func=cmd_balances)

    parser_settle = subparsers.add_parser(
        "settle",
        help="Declare a market's winning option and pay out",
    )
    parser_settle.add_argument("market", help="Market ID")
    parser_settle.add_argument("option", help="Winning option")
    parser_settle.add_argument("--actor", required=True, help="Market creator ID")
    parser_settle.set_defaults(func=cmd_settle)

    parser_void = subparsers.add_parser(
        "void",
        help="Void a market and refund every stake",
    )
    parser_void.add_argument("market", help="Market ID")
    parser_void.add_argument("--actor", required=True, help="Market creator ID")
    parser_void.set_defaults(func=cmd_void)

    parser_cancel = subparsers.add_parser(
        "cancel",
        help="Cancel a market and refund every stake",
    )
    parser_cancel.add_argument("market", help="Market ID")
    parser_cancel.add_argument("--actor", required=True, help="Market creator ID")
    parser_cancel.set_defaults(func=cmd_cancel)

    parser_reconcile = subparsers.add_parser(
        "reconcile",
        help="Resolve stakes left unresolved on finished markets",
    )
    parser_reconcile.add_argument("--community", default=None, help="Limit to one community")
    parser_reconcile.set_defaults(func=cmd_reconcile)

    parser_owed = subparsers.add_parser(
        "owed",
        help="Pending who-owes-whom balances for one member",
    )
    parser_owed.add_argument("user", help="User ID")
    parser_owed.add_argument("--community", default=None, help="Limit to one community")
    parser_owed.set_defaults(func=cmd_owed)

    parser_paid = subparsers.add_parser(
        "mark-paid",
        help="Close pending balances between two members",
    )
    parser_paid.add_argument("user", help="User ID")
    parser_paid.add_argument("counterparty", help="Counterparty user ID")
    parser_paid.add_argument("--community", default=None, help="Limit to one community")
    parser_paid.add_argument(
        "--resolve", action="store_true", help="Mark as resolved instead of paid"
    )
    parser_paid.set_defaults(func=cmd_mark_paid)

    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    logging.getLogger().setLevel(get_settings().log_level.upper())
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

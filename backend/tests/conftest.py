"""Shared fixtures for ledger tests."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sling.config import LedgerConfig, SettlementConfig, Settings
from sling.engine import WagerEngine
from sling.storage import InMemoryStore


def make_settings(
    ledger: LedgerConfig | None = None,
    settlement: SettlementConfig | None = None,
) -> Settings:
    return Settings(
        ledger=ledger or LedgerConfig(),
        settlement=settlement or SettlementConfig(),
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore(lock_timeout_seconds=1.0)


@pytest.fixture
def make_engine(store: InMemoryStore):
    """Build an engine over the shared store with custom config sections."""

    def factory(clock=None, **sections) -> WagerEngine:
        if clock is None:
            return WagerEngine(store, make_settings(**sections))
        return WagerEngine(store, make_settings(**sections), clock=clock)

    return factory


@pytest.fixture
def engine(make_engine) -> WagerEngine:
    return make_engine()


@pytest.fixture
def deadline() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=1)

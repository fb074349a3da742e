"""Storage layer for the wager ledger.

This package provides:
- Store / StoreTransaction interfaces (one atomic unit per market)
- InMemoryStore: asyncio-locked dictionaries, used in tests
- SqlAlchemyStore: SQLAlchemy asyncio with optimistic market versions
"""

from .base import Store, StoreTransaction
from .memory import InMemoryStore
from .sql import SqlAlchemyStore

__all__ = [
    "Store",
    "StoreTransaction",
    "InMemoryStore",
    "SqlAlchemyStore",
]

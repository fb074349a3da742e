"""
Database module initialization.
Exports database components for use throughout the application.
"""

from sling.database.base import Base
from sling.database.session import (
    create_engine_from_config,
    create_session_factory,
    create_tables,
    get_db_session,
)

__all__ = [
    "Base",
    "create_engine_from_config",
    "create_session_factory",
    "create_tables",
    "get_db_session",
]

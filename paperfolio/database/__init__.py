"""
Paperfolio Database Package
"""

from paperfolio.database.connection import (
    Base,
    check_database_health,
    close_database,
    get_db_context,
    get_db_session,
    get_engine,
    get_session_maker,
    init_database,
)

__all__ = [
    "Base",
    "check_database_health",
    "close_database",
    "get_db_context",
    "get_db_session",
    "get_engine",
    "get_session_maker",
    "init_database",
]

"""
Infrastructure module: Database and request correlation.
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    build_engine,
    build_session_factory,
    get_db_context,
    safe_commit,
)

__all__ = [
    "engine",
    "SessionLocal",
    "build_engine",
    "build_session_factory",
    "get_db_context",
    "safe_commit",
]

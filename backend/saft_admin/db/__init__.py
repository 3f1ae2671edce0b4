"""Database package with engine and session management."""

from saft_admin.db.session import create_engine, create_session_maker, task_db_session

__all__ = [
    "create_engine",
    "create_session_maker",
    "task_db_session",
]

"""ghmirror_database - Mirror models and session management."""

from ghmirror_database.session import (
    async_session_factory,
    create_schema,
    get_async_session_factory,
)

__all__ = [
    "async_session_factory",
    "create_schema",
    "get_async_session_factory",
]

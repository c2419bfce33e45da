from .base import Database, PostQuery
from .postgres import PostgresDatabase
from .sqlite import SqliteDatabase

from ..logging_setup import get_logger

logger = get_logger(__name__)

SQLITE_PREFIX = "sqlite:"


def is_postgres_connection_string(location: str) -> bool:
    return location.startswith("postgres://") or location.startswith("postgresql://")


def create_database(location: str) -> Database:
    """Pick the backend from the shape of ``location``.

    ``postgres://`` and ``postgresql://`` URLs open a PostgreSQL pool; anything
    else is a SQLite file path, optionally prefixed with ``sqlite:``.
    """
    if is_postgres_connection_string(location):
        logger.info("database_backend_selected", backend="postgres")
        return PostgresDatabase(location)

    if location.startswith(SQLITE_PREFIX):
        location = location[len(SQLITE_PREFIX):]
    logger.info("database_backend_selected", backend="sqlite", location=location)
    return SqliteDatabase(location)


__all__ = [
    "Database",
    "PostQuery",
    "PostgresDatabase",
    "SqliteDatabase",
    "create_database",
    "is_postgres_connection_string",
]

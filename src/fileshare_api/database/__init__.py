"""PostgreSQL access: connection pool, transactions and schema migrations."""

from fileshare_api.database.connection import (
    DatabaseConnection,
    create_database_connection,
    get_database,
    reset_database,
)

__all__ = [
    "DatabaseConnection",
    "create_database_connection",
    "get_database",
    "reset_database",
]

"""Schema for the `users` and `files` tables, applied in order and recorded in `schema_migrations`."""

import logging
from typing import List, NamedTuple

from fileshare_api.database.connection import DatabaseConnection

logger = logging.getLogger(__name__)


class Migration(NamedTuple):
    id: int
    name: str
    sql: str


CREATE_MIGRATIONS_TABLE = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        id INTEGER PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        executed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP NOT NULL
    )
"""

CREATE_USERS_TABLE = """
    CREATE EXTENSION IF NOT EXISTS "uuid-ossp";

    CREATE TABLE IF NOT EXISTS users (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        email VARCHAR(255) UNIQUE NOT NULL,
        provider VARCHAR(50) NOT NULL CHECK (provider IN ('google', 'microsoft', 'cognito')),
        provider_id VARCHAR(255) NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP NOT NULL,
        last_login_at TIMESTAMP,
        CONSTRAINT unique_provider_user UNIQUE (provider, provider_id)
    );

    CREATE INDEX IF NOT EXISTS idx_users_email ON users(email);
    CREATE INDEX IF NOT EXISTS idx_users_provider ON users(provider, provider_id);
    CREATE INDEX IF NOT EXISTS idx_users_created_at ON users(created_at);
"""

CREATE_FILES_TABLE = """
    CREATE TABLE IF NOT EXISTS files (
        id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
        user_id UUID NOT NULL,
        file_name VARCHAR(500) NOT NULL,
        file_size BIGINT NOT NULL CHECK (file_size > 0),
        mime_type VARCHAR(100) NOT NULL,
        s3_key VARCHAR(1024) NOT NULL UNIQUE,
        s3_bucket VARCHAR(255) NOT NULL,
        uploaded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP NOT NULL,
        metadata JSONB,
        CONSTRAINT fk_user FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_files_user_id ON files(user_id);
    CREATE INDEX IF NOT EXISTS idx_files_uploaded_at ON files(uploaded_at);
    CREATE INDEX IF NOT EXISTS idx_files_s3_key ON files(s3_key);
    CREATE INDEX IF NOT EXISTS idx_files_mime_type ON files(mime_type);
    CREATE INDEX IF NOT EXISTS idx_files_metadata ON files USING GIN (metadata);
"""

MIGRATIONS: List[Migration] = [
    Migration(1, "create_users_table", CREATE_USERS_TABLE),
    Migration(2, "create_files_table", CREATE_FILES_TABLE),
]


def get_executed_migrations(db: DatabaseConnection) -> List[int]:
    rows = db.query("SELECT id FROM schema_migrations ORDER BY id")
    return [row["id"] for row in rows]


def run_migrations(db: DatabaseConnection) -> List[Migration]:
    """
    Apply every migration that has not run yet, each in its own transaction.

    :param db: A connected database.
    :return: The migrations applied by this call.
    """
    db.query(CREATE_MIGRATIONS_TABLE)
    executed = set(get_executed_migrations(db))

    applied = []
    for migration in MIGRATIONS:
        if migration.id in executed:
            continue
        logger.info("Running migration %03d_%s", migration.id, migration.name)
        with db.transaction() as tx:
            tx.query(migration.sql)
            tx.query(
                "INSERT INTO schema_migrations (id, name) VALUES (%s, %s)",
                (migration.id, migration.name),
            )
        applied.append(migration)

    if not applied:
        logger.info("No pending migrations")
    return applied

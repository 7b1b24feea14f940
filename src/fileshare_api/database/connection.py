"""PostgreSQL connection pool shared by every request handled in a process."""

import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

import boto3
import psycopg2
from botocore.exceptions import BotoCoreError, ClientError
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from fileshare_api.errors import DatabaseError
from fileshare_api.settings import Settings, get_settings

try:
    from mypy_boto3_secretsmanager import SecretsManagerClient
except ImportError:
    ...

logger = logging.getLogger(__name__)

Params = Optional[Sequence[Any]]


def _execute(conn, sql: str, params: Params) -> List[Dict[str, Any]]:
    with conn.cursor(cursor_factory=RealDictCursor) as cursor:
        cursor.execute(sql, params)
        if cursor.description is None:
            return []
        return [dict(row) for row in cursor.fetchall()]


def _rollback(conn) -> None:
    # a connection the server dropped cannot be rolled back; the caller's error still stands
    try:
        conn.rollback()
    except psycopg2.Error as err:
        logger.warning("Rollback failed: %s", err)


def _putconn(pool, conn) -> None:
    """Return the connection to the pool, discarding it if it was closed."""
    pool.putconn(conn, close=bool(conn.closed))


class TransactionConnection:
    """Query interface bound to a single connection inside `DatabaseConnection.transaction()`."""

    def __init__(self, conn):
        self._conn = conn

    def query(self, sql: str, params: Params = None) -> List[Dict[str, Any]]:
        try:
            return _execute(self._conn, sql, params)
        except psycopg2.Error as err:
            logger.error("Transaction query failed: %s", err)
            raise DatabaseError(f"Query execution failed: {err}") from err

    def query_one(self, sql: str, params: Params = None) -> Optional[Dict[str, Any]]:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def transaction(self):
        raise DatabaseError("Nested transactions are not supported")


class DatabaseConnection:
    """
    Pooled PostgreSQL connection.

    Credentials come from the Secrets Manager secret named by `DB_SECRET_NAME`
    when set, otherwise from `DATABASE_URL`. Rows are returned as plain dicts.

    :param settings: Application settings. Defaults to `get_settings()`.
    :param secrets_client: An optional boto3 Secrets Manager client. If not provided, one will be created.
    :param pool_factory: Callable building the pool, `ThreadedConnectionPool` unless overridden.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        secrets_client: Optional["SecretsManagerClient"] = None,
        pool_factory=ThreadedConnectionPool,
    ):
        self.settings = settings or get_settings()
        self._secrets_client = secrets_client
        self._pool_factory = pool_factory
        self._pool = None
        self._lock = threading.Lock()
        self._local = threading.local()

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    def connect(self) -> None:
        """Create the pool and test one connection. Calling it again is a no-op."""
        with self._lock:
            if self._pool is not None:
                return

            params = self._connection_params()
            try:
                pool = self._pool_factory(1, self.settings.db_max_connections, **params)
                conn = pool.getconn()
                try:
                    _execute(conn, "SELECT 1", None)
                    conn.commit()
                finally:
                    _putconn(pool, conn)
            except psycopg2.Error as err:
                logger.error("Failed to connect to database: %s", err)
                raise DatabaseError(f"Failed to connect to database: {err}") from err

            self._pool = pool
            logger.info("Database connection pool created (max %s connections)", self.settings.db_max_connections)

    def disconnect(self) -> None:
        with self._lock:
            if self._pool is None:
                return
            self._pool.closeall()
            self._pool = None
            logger.info("Database connection pool closed")

    def query(self, sql: str, params: Params = None) -> List[Dict[str, Any]]:
        """
        Run a parameterized statement (`%s` placeholders) and commit it.

        :param sql: The SQL statement.
        :param params: Positional parameters for the placeholders.
        :return: The returned rows as dicts; empty for statements without a result set.
        """
        pool = self._require_pool()
        conn = self._getconn(pool)
        try:
            rows = _execute(conn, sql, params)
            conn.commit()
            return rows
        except psycopg2.Error as err:
            _rollback(conn)
            logger.error("Query failed: %s", err)
            raise DatabaseError(f"Query execution failed: {err}") from err
        finally:
            _putconn(pool, conn)

    def query_one(self, sql: str, params: Params = None) -> Optional[Dict[str, Any]]:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    @contextmanager
    def transaction(self) -> Iterator[TransactionConnection]:
        """
        Run several statements on one connection, committing only if the block succeeds.

        Usage:
            with db.transaction() as tx:
                tx.query("UPDATE ...", (...))
                tx.query("INSERT ...", (...))
        """
        if getattr(self._local, "in_transaction", False):
            raise DatabaseError("Nested transactions are not supported")

        pool = self._require_pool()
        conn = self._getconn(pool)
        self._local.in_transaction = True
        try:
            yield TransactionConnection(conn)
            conn.commit()
        except Exception:
            _rollback(conn)
            raise
        finally:
            self._local.in_transaction = False
            _putconn(pool, conn)

    def is_healthy(self) -> bool:
        try:
            self.query("SELECT 1")
            return True
        except DatabaseError as err:
            logger.warning("Database health check failed: %s", err.message)
            return False

    def _require_pool(self):
        if self._pool is None:
            raise DatabaseError("Database not connected. Call connect() first.")
        return self._pool

    @staticmethod
    def _getconn(pool):
        try:
            return pool.getconn()
        except psycopg2.Error as err:
            raise DatabaseError(f"Failed to acquire database connection: {err}") from err

    def _connection_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"connect_timeout": self.settings.db_connect_timeout}

        if self.settings.use_secrets_manager:
            credentials = self._fetch_secret_credentials()
            params.update(
                host=credentials["host"],
                port=int(credentials.get("port", 5432)),
                dbname=credentials.get("database") or credentials.get("dbname"),
                user=credentials["username"],
                password=credentials["password"],
            )
        elif self.settings.database_url:
            params["dsn"] = self.settings.database_url
        else:
            raise DatabaseError("No database configuration found. Set DATABASE_URL or DB_SECRET_NAME.")

        if self.settings.db_ssl:
            params["sslmode"] = "require"
        return params

    def _fetch_secret_credentials(self) -> Dict[str, Any]:
        secrets_client = self._secrets_client or boto3.client(
            "secretsmanager",
            region_name=self.settings.aws_region,
            endpoint_url=self.settings.aws_endpoint_url,
        )
        try:
            response = secrets_client.get_secret_value(SecretId=self.settings.db_secret_name)
            credentials = json.loads(response["SecretString"])
        except (ClientError, BotoCoreError, KeyError, ValueError) as err:
            logger.error("Failed to retrieve database credentials from %s: %s", self.settings.db_secret_name, err)
            raise DatabaseError(f"Failed to retrieve database credentials: {err}") from err

        missing = [key for key in ("host", "username", "password") if not credentials.get(key)]
        if missing:
            raise DatabaseError(f"Database secret is missing fields: {', '.join(missing)}")
        return credentials


def create_database_connection(settings: Optional[Settings] = None) -> DatabaseConnection:
    return DatabaseConnection(settings=settings)


_database: Optional[DatabaseConnection] = None
_database_lock = threading.Lock()


def get_database(settings: Optional[Settings] = None) -> DatabaseConnection:
    """Return the process-wide connection, connecting it on first use."""
    global _database
    with _database_lock:
        if _database is None:
            _database = create_database_connection(settings)
    _database.connect()
    return _database


def reset_database() -> None:
    global _database
    with _database_lock:
        if _database is not None:
            _database.disconnect()
        _database = None

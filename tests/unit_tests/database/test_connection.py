import json
from unittest.mock import MagicMock

import boto3
import psycopg2
import pytest

from fileshare_api.database.connection import DatabaseConnection
from fileshare_api.errors import DatabaseError
from tests.fixtures.settings import make_settings

TEST_SECRET_NAME = "fileshare/test/db"


class FakePool:
    """Records what `ThreadedConnectionPool` would have been built with and hands out one mock connection."""

    def __init__(self, minconn, maxconn, **params):
        self.minconn = minconn
        self.maxconn = maxconn
        self.params = params
        self.conn = MagicMock()
        self.conn.closed = 0
        self.cursor = self.conn.cursor.return_value.__enter__.return_value
        self.cursor.description = [("id",)]
        self.cursor.fetchall.return_value = [{"id": 1}]
        self.returned = 0
        self.discarded = 0
        self.closed = False

    def getconn(self):
        return self.conn

    def putconn(self, conn, close=False):
        self.returned += 1
        if close:
            self.discarded += 1

    def closeall(self):
        self.closed = True


@pytest.fixture
def pools():
    return []


@pytest.fixture
def pool_factory(pools):
    def _factory(minconn, maxconn, **params):
        pool = FakePool(minconn, maxconn, **params)
        pools.append(pool)
        return pool

    return _factory


@pytest.fixture
def db(settings, pool_factory) -> DatabaseConnection:
    db = DatabaseConnection(settings=settings, pool_factory=pool_factory)
    db.connect()
    return db


def test_query_before_connect_fails(settings, pool_factory):
    db = DatabaseConnection(settings=settings, pool_factory=pool_factory)
    with pytest.raises(DatabaseError, match="Database not connected"):
        db.query("SELECT 1")


def test_connect_uses_database_url(db, pools, settings):
    assert db.is_connected
    pool = pools[0]
    assert pool.minconn == 1
    assert pool.maxconn == settings.db_max_connections
    assert pool.params == {"connect_timeout": 5, "dsn": settings.database_url}


def test_connect_is_idempotent(db, pools):
    db.connect()
    assert len(pools) == 1


def test_connect_with_ssl(pool_factory, pools):
    db = DatabaseConnection(settings=make_settings(db_ssl=True), pool_factory=pool_factory)
    db.connect()
    assert pools[0].params["sslmode"] == "require"


def test_connect_without_configuration(pool_factory):
    db = DatabaseConnection(settings=make_settings(database_url=None), pool_factory=pool_factory)
    with pytest.raises(DatabaseError, match="No database configuration found"):
        db.connect()


def test_connect_failure_is_wrapped():
    def failing_factory(*args, **kwargs):
        raise psycopg2.OperationalError("could not connect to server")

    db = DatabaseConnection(settings=make_settings(), pool_factory=failing_factory)
    with pytest.raises(DatabaseError, match="Failed to connect to database"):
        db.connect()
    assert not db.is_connected


def test_connect_with_secrets_manager(mocked_aws, pool_factory, pools):
    secrets_client = boto3.client("secretsmanager")
    secrets_client.create_secret(
        Name=TEST_SECRET_NAME,
        SecretString=json.dumps(
            {"host": "db.internal", "port": 6543, "database": "fileshare", "username": "app", "password": "s3cret"}
        ),
    )

    db = DatabaseConnection(settings=make_settings(db_secret_name=TEST_SECRET_NAME), pool_factory=pool_factory)
    db.connect()

    assert pools[0].params == {
        "connect_timeout": 5,
        "host": "db.internal",
        "port": 6543,
        "dbname": "fileshare",
        "user": "app",
        "password": "s3cret",
    }


def test_secret_takes_precedence_over_database_url(mocked_aws, pool_factory, pools):
    boto3.client("secretsmanager").create_secret(
        Name=TEST_SECRET_NAME,
        SecretString=json.dumps({"host": "db.internal", "dbname": "fileshare", "username": "app", "password": "pw"}),
    )

    db = DatabaseConnection(settings=make_settings(db_secret_name=TEST_SECRET_NAME), pool_factory=pool_factory)
    db.connect()

    assert "dsn" not in pools[0].params
    assert pools[0].params["port"] == 5432


def test_missing_secret(mocked_aws, pool_factory):
    db = DatabaseConnection(settings=make_settings(db_secret_name="does/not/exist"), pool_factory=pool_factory)
    with pytest.raises(DatabaseError, match="Failed to retrieve database credentials"):
        db.connect()


def test_query_returns_rows_and_commits(db, pools):
    pool = pools[0]
    rows = db.query("SELECT id FROM files WHERE user_id = %s", ("u1",))

    assert rows == [{"id": 1}]
    pool.cursor.execute.assert_called_with("SELECT id FROM files WHERE user_id = %s", ("u1",))
    pool.conn.commit.assert_called()
    # one for the connection test, one for the query
    assert pool.returned == 2


def test_query_without_result_set(db, pools):
    pools[0].cursor.description = None
    assert db.query("UPDATE users SET email = %s", ("a@b.c",)) == []
    assert db.query_one("UPDATE users SET email = %s", ("a@b.c",)) is None


def test_query_error_rolls_back(db, pools):
    pool = pools[0]
    pool.cursor.execute.side_effect = psycopg2.IntegrityError("duplicate key value violates unique constraint")

    with pytest.raises(DatabaseError, match="Query execution failed"):
        db.query("INSERT INTO users (email) VALUES (%s)", ("a@b.c",))

    pool.conn.rollback.assert_called_once()
    assert pool.returned == 2


def test_transaction_commits(db, pools):
    pool = pools[0]
    pool.conn.commit.reset_mock()

    with db.transaction() as tx:
        tx.query("DELETE FROM files WHERE user_id = %s", ("u1",))
        tx.query("DELETE FROM users WHERE id = %s", ("u1",))

    assert pool.cursor.execute.call_count == 3
    pool.conn.commit.assert_called_once()
    pool.conn.rollback.assert_not_called()


def test_transaction_rolls_back_on_error(db, pools):
    pool = pools[0]
    pool.conn.commit.reset_mock()

    with pytest.raises(RuntimeError):
        with db.transaction() as tx:
            tx.query("DELETE FROM files WHERE user_id = %s", ("u1",))
            raise RuntimeError("boom")

    pool.conn.rollback.assert_called_once()
    pool.conn.commit.assert_not_called()


def test_nested_transaction_is_rejected(db):
    with db.transaction() as tx:
        with pytest.raises(DatabaseError, match="Nested transactions are not supported"):
            with db.transaction():
                pass
        with pytest.raises(DatabaseError, match="Nested transactions are not supported"):
            tx.transaction()


def test_is_healthy(db, pools):
    assert db.is_healthy()
    pools[0].cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")
    assert not db.is_healthy()


def test_disconnect(db, pools):
    db.disconnect()
    assert pools[0].closed
    assert not db.is_connected
    with pytest.raises(DatabaseError, match="Database not connected"):
        db.query("SELECT 1")


def test_dropped_connection_is_mapped_and_discarded(db, pools):
    pool = pools[0]
    pool.cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection unexpectedly")
    pool.conn.rollback.side_effect = psycopg2.InterfaceError("connection already closed")
    pool.conn.closed = 2

    with pytest.raises(DatabaseError, match="Query execution failed: server closed the connection"):
        db.query("SELECT id FROM files")

    assert pool.discarded == 1


def test_transaction_with_dropped_connection_keeps_original_error(db, pools):
    pool = pools[0]
    pool.cursor.execute.side_effect = psycopg2.OperationalError("terminating connection due to administrator command")
    pool.conn.rollback.side_effect = psycopg2.InterfaceError("connection already closed")
    pool.conn.closed = 2

    with pytest.raises(DatabaseError, match="terminating connection"):
        with db.transaction() as tx:
            tx.query("DELETE FROM files WHERE user_id = %s", ("u1",))

    assert pool.discarded == 1


def test_healthy_connection_goes_back_to_pool(db, pools):
    db.query("SELECT 1")
    assert pools[0].discarded == 0

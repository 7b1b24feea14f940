from datetime import datetime
from unittest.mock import MagicMock

import pytest
from psycopg2.extras import Json

from fileshare_api.errors import DatabaseError
from fileshare_api.repositories.factory import get_repository_factory, reset_repository_factory
from fileshare_api.repositories.file_repository import FileRepository
from fileshare_api.repositories.user_repository import UserRepository
from fileshare_api.schemas import NewFileRecord
from tests.consts import TEST_BUCKET_NAME, TEST_USER_ID

FILE_ID = "3f1c7a52-3f44-4c51-8d7b-2f1f8f1f4b7e"
FILE_ROW = {
    "id": FILE_ID,
    "user_id": TEST_USER_ID,
    "file_name": "report.pdf",
    "file_size": 2048,
    "mime_type": "application/pdf",
    "s3_key": f"uploads/{TEST_USER_ID}/1700000000000-abc-report.pdf",
    "s3_bucket": TEST_BUCKET_NAME,
    "uploaded_at": datetime(2024, 1, 1, 12, 0),
    "metadata": {"category": "finance"},
}


@pytest.fixture
def db():
    db = MagicMock()
    db.query_one.return_value = FILE_ROW
    db.query.return_value = [FILE_ROW]
    return db


@pytest.fixture
def repository(db):
    return FileRepository(db)


def new_file(**overrides):
    values = dict(
        user_id=TEST_USER_ID,
        file_name="report.pdf",
        file_size=2048,
        mime_type="application/pdf",
        s3_key=FILE_ROW["s3_key"],
        s3_bucket=TEST_BUCKET_NAME,
        metadata={"category": "finance"},
    )
    values.update(overrides)
    return NewFileRecord(**values)


def test_create_wraps_metadata_as_json(repository, db):
    record = repository.create(new_file())

    assert record.id == FILE_ID
    params = db.query_one.call_args.args[1]
    assert isinstance(params[-1], Json)
    assert params[:6] == (TEST_USER_ID, "report.pdf", 2048, "application/pdf", FILE_ROW["s3_key"], TEST_BUCKET_NAME)


def test_create_without_metadata(repository, db):
    repository.create(new_file(metadata=None))
    assert db.query_one.call_args.args[1][-1] is None


def test_create_failure(repository, db):
    db.query_one.return_value = None
    with pytest.raises(DatabaseError, match="Failed to create file record"):
        repository.create(new_file())


def test_find_by_user_id_paginated(repository, db):
    db.query_one.return_value = {"count": 7}

    files, total = repository.find_by_user_id_paginated(TEST_USER_ID, limit=5, offset=5)

    assert total == 7
    assert [f.id for f in files] == [FILE_ID]
    sql, params = db.query.call_args.args
    assert "ORDER BY uploaded_at DESC" in sql
    assert "LIMIT %s OFFSET %s" in sql
    assert params == (TEST_USER_ID, 5, 5)


def test_find_by_s3_key(repository, db):
    record = repository.find_by_s3_key(FILE_ROW["s3_key"])
    assert record.metadata == {"category": "finance"}


def test_get_total_storage_by_user(repository, db):
    db.query_one.return_value = {"total": 4096}
    assert repository.get_total_storage_by_user(TEST_USER_ID) == 4096


def test_delete_by_user_id_counts_rows(repository, db):
    db.query.return_value = [{"id": "a"}, {"id": "b"}]
    assert repository.delete_by_user_id(TEST_USER_ID) == 2


def test_update_metadata_is_wrapped(repository, db):
    repository.update(FILE_ID, {"metadata": {"category": "legal"}, "file_name": "contract.pdf"})

    sql, params = db.query_one.call_args.args
    assert sql.startswith("UPDATE files SET metadata = %s, file_name = %s WHERE id = %s")
    assert isinstance(params[0], Json)
    assert params[1:] == ("contract.pdf", FILE_ID)


def test_repository_factory_is_shared():
    reset_repository_factory()
    db = MagicMock()
    try:
        factory = get_repository_factory(db)
        assert get_repository_factory(MagicMock()) is factory
        assert isinstance(factory.create_file_repository(), FileRepository)
        assert isinstance(factory.create_user_repository(), UserRepository)
        assert factory.create_user_repository().db is db
    finally:
        reset_repository_factory()

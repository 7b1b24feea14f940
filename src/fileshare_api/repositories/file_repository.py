from typing import List, Optional, Tuple

from psycopg2.extras import Json

from fileshare_api.errors import DatabaseError
from fileshare_api.repositories.base import BaseRepository
from fileshare_api.schemas import FileRecord, NewFileRecord

FILE_COLUMNS = "id, user_id, file_name, file_size, mime_type, s3_key, s3_bucket, uploaded_at, metadata"


class FileRepository(BaseRepository[FileRecord]):
    """Metadata rows for objects stored in S3."""

    table = "files"
    model = FileRecord
    resource_name = "File"
    select_columns = FILE_COLUMNS
    filter_columns = {
        "user_id": "user_id",
        "mime_type": "mime_type",
        "s3_bucket": "s3_bucket",
    }
    update_columns = {
        "file_name": "file_name",
        "file_size": "file_size",
        "mime_type": "mime_type",
        "s3_key": "s3_key",
        "s3_bucket": "s3_bucket",
        "metadata": "metadata",
    }
    order_by = "uploaded_at DESC"

    def _prepare_changes(self, changes):
        if changes.get("metadata") is not None:
            return {**changes, "metadata": Json(changes["metadata"])}
        return changes

    def create(self, data: NewFileRecord) -> FileRecord:
        sql = f"""
            INSERT INTO files (user_id, file_name, file_size, mime_type, s3_key, s3_bucket, metadata)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {FILE_COLUMNS}
        """
        row = self.db.query_one(
            sql,
            (
                data.user_id,
                data.file_name,
                data.file_size,
                data.mime_type,
                data.s3_key,
                data.s3_bucket,
                Json(data.metadata) if data.metadata is not None else None,
            ),
        )
        if row is None:
            raise DatabaseError("Failed to create file record")
        return self._to_model(row)

    def find_by_user_id(self, user_id: str) -> List[FileRecord]:
        sql = f"SELECT {FILE_COLUMNS} FROM files WHERE user_id = %s ORDER BY uploaded_at DESC"
        return self._to_models(self.db.query(sql, (user_id,)))

    def find_by_user_id_paginated(self, user_id: str, limit: int, offset: int) -> Tuple[List[FileRecord], int]:
        """
        One page of a user's files, newest first.

        :return: The page and the user's total file count.
        """
        count_row = self.db.query_one("SELECT COUNT(*) AS count FROM files WHERE user_id = %s", (user_id,))
        total = int(count_row["count"]) if count_row else 0

        sql = f"""
            SELECT {FILE_COLUMNS}
            FROM files
            WHERE user_id = %s
            ORDER BY uploaded_at DESC
            LIMIT %s OFFSET %s
        """
        files = self._to_models(self.db.query(sql, (user_id, limit, offset)))
        return files, total

    def find_by_s3_key(self, s3_key: str) -> Optional[FileRecord]:
        sql = f"SELECT {FILE_COLUMNS} FROM files WHERE s3_key = %s"
        return self._to_model(self.db.query_one(sql, (s3_key,)))

    def get_total_storage_by_user(self, user_id: str) -> int:
        row = self.db.query_one(
            "SELECT COALESCE(SUM(file_size), 0) AS total FROM files WHERE user_id = %s",
            (user_id,),
        )
        return int(row["total"]) if row else 0

    def delete_by_user_id(self, user_id: str) -> int:
        rows = self.db.query("DELETE FROM files WHERE user_id = %s RETURNING id", (user_id,))
        return len(rows)

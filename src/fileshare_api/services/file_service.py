import logging
from typing import Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from fileshare_api.errors import (
    AppError,
    AuthorizationError,
    DatabaseError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from fileshare_api.repositories.file_repository import FileRepository
from fileshare_api.s3.read_objects import generate_presigned_download_url
from fileshare_api.sanitization import is_uuid, sanitize_integer
from fileshare_api.schemas import (
    DEFAULT_LIST_FILES_LIMIT,
    MAX_LIST_FILES_LIMIT,
    FileMetadataResponse,
    FileRecord,
    ListFilesResponse,
    PresignedUrlResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_PRESIGNED_URL_EXPIRATION = 3600
MAX_PRESIGNED_URL_EXPIRATION = 604800


def _parse_int(value: Optional[str], minimum: int) -> Optional[int]:
    try:
        return sanitize_integer(value, minimum=minimum)
    except ValidationError:
        return None


def parse_pagination(limit: Optional[str], offset: Optional[str]) -> Tuple[int, int]:
    """`limit` defaults to 50 and is capped at 100; `offset` defaults to 0."""
    page_size = DEFAULT_LIST_FILES_LIMIT
    if limit:
        parsed = _parse_int(limit, minimum=1)
        if parsed is None:
            raise ValidationError("Invalid limit parameter: must be a positive integer")
        page_size = min(parsed, MAX_LIST_FILES_LIMIT)

    start = 0
    if offset:
        parsed = _parse_int(offset, minimum=0)
        if parsed is None:
            raise ValidationError("Invalid offset parameter: must be a non-negative integer")
        start = parsed

    return page_size, start


def parse_expiration(
    expires_in: Optional[str],
    default: int = DEFAULT_PRESIGNED_URL_EXPIRATION,
    maximum: int = MAX_PRESIGNED_URL_EXPIRATION,
) -> int:
    if not expires_in:
        return default
    parsed = _parse_int(expires_in, minimum=1)
    if parsed is None:
        raise ValidationError("Invalid expiresIn parameter: must be a positive integer")
    return min(parsed, maximum)


def validate_file_id(file_id: Optional[str]) -> str:
    if not file_id:
        raise ValidationError("File ID is required")
    if not is_uuid(file_id):
        raise ValidationError("Invalid file ID format")
    return file_id


class FileService:
    """Read access to a user's own files."""

    def __init__(
        self,
        file_repository: FileRepository,
        s3_client=None,
        default_expiration: int = DEFAULT_PRESIGNED_URL_EXPIRATION,
        max_expiration: int = MAX_PRESIGNED_URL_EXPIRATION,
    ):
        self.file_repository = file_repository
        self.s3_client = s3_client
        self.default_expiration = default_expiration
        self.max_expiration = max_expiration

    def list_user_files(self, user_id: str, limit: Optional[str] = None, offset: Optional[str] = None) -> ListFilesResponse:
        page_size, start = parse_pagination(limit, offset)
        try:
            files, total = self.file_repository.find_by_user_id_paginated(user_id, page_size, start)
        except Exception as err:
            logger.error("Failed to list files for user %s: %s", user_id, err)
            raise DatabaseError("Failed to retrieve user files", {"error": str(err)}) from err

        logger.info("Listed %d of %d files for user %s", len(files), total, user_id)
        return ListFilesResponse(files=[FileMetadataResponse.from_record(f) for f in files], total=total)

    def get_owned_file(self, user_id: str, file_id: str) -> FileRecord:
        """
        Load a file row and check it belongs to `user_id`.

        :raises NotFoundError: no such file.
        :raises AuthorizationError: the file belongs to someone else.
        """
        validate_file_id(file_id)
        try:
            record = self.file_repository.find_by_id(file_id)
        except AppError:
            raise
        except Exception as err:
            logger.error("Failed to load file %s: %s", file_id, err)
            raise DatabaseError("Failed to retrieve file metadata", {"error": str(err)}) from err

        if record is None:
            raise NotFoundError("File")
        if record.user_id != user_id:
            logger.warning("User %s tried to access file %s owned by another user", user_id, file_id)
            raise AuthorizationError("You do not have permission to access this file")
        return record

    def get_file_metadata(self, user_id: str, file_id: str) -> FileMetadataResponse:
        return FileMetadataResponse.from_record(self.get_owned_file(user_id, file_id))

    def create_presigned_url(self, user_id: str, file_id: str, expires_in: Optional[str] = None) -> PresignedUrlResponse:
        validate_file_id(file_id)
        lifetime = parse_expiration(expires_in, self.default_expiration, self.max_expiration)
        record = self.get_owned_file(user_id, file_id)

        try:
            url = generate_presigned_download_url(
                bucket_name=record.s3_bucket,
                object_key=record.s3_key,
                file_name=record.file_name,
                expires_in=lifetime,
                s3_client=self.s3_client,
            )
        except (ClientError, BotoCoreError) as err:
            logger.error("Failed to presign %s: %s", record.s3_key, err)
            raise ExternalServiceError("S3", "Failed to generate presigned URL", {"error": str(err)}) from err

        logger.info("Presigned %s for user %s (%ss)", file_id, user_id, lifetime)
        return PresignedUrlResponse(url=url, expires_in=lifetime)

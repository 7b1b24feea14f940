"""Upload pipeline: parse the request, validate the file, store it in S3, record its metadata."""

import base64
import binascii
import json
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote, unquote

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request
from starlette.datastructures import UploadFile

from fileshare_api.errors import DatabaseError, ExternalServiceError, ValidationError
from fileshare_api.repositories.file_repository import FileRepository
from fileshare_api.s3.delete_objects import delete_s3_object
from fileshare_api.s3.write_objects import upload_s3_object
from fileshare_api.sanitization import sanitize_file_name
from fileshare_api.schemas import FileUploadData, FileUploadResponse, NewFileRecord

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 50 * 1024 * 1024

ALLOWED_MIME_TYPES = [
    # Images
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
    # Documents
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/csv",
    # Archives
    "application/zip",
    "application/x-zip-compressed",
    "application/x-rar-compressed",
    # Other
    "application/json",
    "application/xml",
    "text/xml",
]

DEFAULT_MIME_TYPE = "application/octet-stream"
RESERVED_FORM_FIELDS = ("file", "fileName", "mimeType")
# printable ASCII other than "%" is kept as is
METADATA_SAFE_CHARS = " " + string.punctuation.replace("%", "")

_KEY_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


###########################
# --- Request parsing --- #
###########################

def _decode_json_value(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        return value


async def read_upload_request(request: Request) -> FileUploadData:
    """
    Pull the uploaded file out of a request.

    Accepts `multipart/form-data` (first file part; other fields become metadata),
    a raw body described by `x-file-name` / `x-mime-type` / `x-metadata` headers
    (or the matching query params), or otherwise a JSON body
    `{fileName, fileContent (base64), mimeType?, metadata?}` whatever its content type.
    """
    content_type = request.headers.get("content-type", "")

    if "multipart/form-data" in content_type:
        return await _parse_multipart(request)

    body = await request.body()
    if not body:
        raise ValidationError("No file data provided")

    if "application/json" in content_type or not _describes_raw_body(request.headers, request.query_params):
        return parse_json_body(body)

    return parse_raw_body(body, request.headers, request.query_params)


def _describes_raw_body(headers: Mapping[str, str], query_params: Mapping[str, str]) -> bool:
    return bool(headers.get("x-file-name") or query_params.get("fileName"))


def _decode_base64(value: Any) -> bytes:
    # clients wrap base64 at 76 columns and sometimes drop the padding
    if isinstance(value, bytes):
        value = value.decode("ascii")
    compact = "".join(value.split())
    compact += "=" * (-len(compact) % 4)
    return base64.b64decode(compact, validate=True)


async def _parse_multipart(request: Request) -> FileUploadData:
    if "boundary=" not in request.headers.get("content-type", ""):
        raise ValidationError("Missing boundary in multipart/form-data")

    form = await request.form()
    upload: Optional[UploadFile] = None
    metadata: Dict[str, Any] = {}
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if upload is None:
                upload = value
            continue
        if key not in RESERVED_FORM_FIELDS:
            metadata[key] = _decode_json_value(value)

    if upload is None:
        raise ValidationError("No file found in multipart request")

    content = await upload.read()
    return FileUploadData(
        file_name=upload.filename or "",
        file_size=len(content),
        mime_type=upload.content_type or DEFAULT_MIME_TYPE,
        content=content,
        metadata=metadata or None,
    )


def parse_json_body(body: bytes) -> FileUploadData:
    try:
        payload = json.loads(body)
    except ValueError:
        raise ValidationError("Invalid request body format")

    if not isinstance(payload, dict):
        raise ValidationError("Invalid request body format")
    if not payload.get("fileName") or not payload.get("fileContent"):
        raise ValidationError("Missing required fields: fileName and fileContent")

    if not isinstance(payload["fileContent"], str):
        raise ValidationError("Invalid request body format")
    try:
        content = _decode_base64(payload["fileContent"])
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid request body format")

    metadata = payload.get("metadata")
    return FileUploadData(
        file_name=payload["fileName"],
        file_size=len(content),
        mime_type=payload.get("mimeType") or DEFAULT_MIME_TYPE,
        content=content,
        metadata=metadata if isinstance(metadata, dict) else None,
    )


def parse_raw_body(body: bytes, headers: Mapping[str, str], query_params: Mapping[str, str]) -> FileUploadData:
    """
    The body is the file itself, unless `x-content-encoding: base64` says it is base64 encoded.
    """
    content = body
    if headers.get("x-content-encoding", "").strip().lower() == "base64":
        try:
            content = _decode_base64(body)
        except (binascii.Error, ValueError):
            raise ValidationError("Invalid request body format")

    file_name = headers.get("x-file-name") or query_params.get("fileName") or "unnamed-file"
    mime_type = headers.get("x-mime-type") or query_params.get("mimeType") or DEFAULT_MIME_TYPE
    raw_metadata = headers.get("x-metadata") or query_params.get("metadata")

    metadata = None
    if raw_metadata:
        decoded = _decode_json_value(raw_metadata)
        if isinstance(decoded, dict):
            metadata = decoded
        else:
            logger.warning("Ignoring upload metadata that is not a JSON object")

    return FileUploadData(
        file_name=unquote(file_name),
        file_size=len(content),
        mime_type=mime_type,
        content=content,
        metadata=metadata,
    )


##################################
# --- Validation and storage --- #
##################################

def validate_file(data: FileUploadData, max_file_size: int = MAX_FILE_SIZE) -> None:
    """Reject the upload with the first rule it breaks."""
    if data.file_size == 0:
        raise ValidationError("File is empty")

    if data.file_size > max_file_size:
        raise ValidationError(f"File size exceeds maximum allowed size of {max_file_size / 1024 / 1024:g}MB")

    if data.mime_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(
            f"File type '{data.mime_type}' is not allowed. Allowed types: {', '.join(ALLOWED_MIME_TYPES)}"
        )

    if not data.file_name or not data.file_name.strip():
        raise ValidationError("File name is required")

    if ".." in data.file_name or "/" in data.file_name or "\\" in data.file_name:
        raise ValidationError("Invalid file name: path traversal detected")


def build_s3_key(user_id: str, file_name: str) -> str:
    """`uploads/<user_id>/<epoch_ms>-<random>-<file name with unsafe chars replaced>`."""
    timestamp = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_KEY_SUFFIX_ALPHABET) for _ in range(13))
    return f"uploads/{user_id}/{timestamp}-{suffix}-{sanitize_file_name(file_name)}"


def _object_metadata(data: FileUploadData, user_id: str) -> Dict[str, str]:
    """S3 user metadata must be ASCII, so values are percent-encoded."""
    metadata = {
        "original-filename": quote(data.file_name, safe=METADATA_SAFE_CHARS),
        "uploaded-by": user_id,
        "upload-timestamp": datetime.now(timezone.utc).isoformat(),
    }
    for key, value in (data.metadata or {}).items():
        text = value if isinstance(value, str) else json.dumps(value)
        metadata[quote(str(key), safe="")] = quote(text, safe=METADATA_SAFE_CHARS)
    return metadata


class FileUploadService:
    def __init__(
        self,
        file_repository: FileRepository,
        bucket_name: str,
        max_file_size: int = MAX_FILE_SIZE,
        s3_client=None,
    ):
        self.file_repository = file_repository
        self.bucket_name = bucket_name
        self.max_file_size = max_file_size
        self.s3_client = s3_client

    def upload(self, user_id: str, data: FileUploadData) -> FileUploadResponse:
        """
        Validate, store in S3, then record the metadata row.

        If the row cannot be written the S3 object is deleted again before
        the `DatabaseError` propagates.
        """
        validate_file(data, self.max_file_size)

        s3_key = build_s3_key(user_id, data.file_name)
        try:
            upload_s3_object(
                bucket_name=self.bucket_name,
                object_key=s3_key,
                file_content=data.content,
                content_type=data.mime_type,
                metadata=_object_metadata(data, user_id),
                s3_client=self.s3_client,
            )
        except (ClientError, BotoCoreError) as err:
            logger.error("S3 upload failed for user %s, key %s: %s", user_id, s3_key, err)
            raise ExternalServiceError("S3", "Failed to upload file to storage", {"error": str(err)}) from err

        try:
            record = self.file_repository.create(
                NewFileRecord(
                    user_id=user_id,
                    file_name=data.file_name,
                    file_size=data.file_size,
                    mime_type=data.mime_type,
                    s3_key=s3_key,
                    s3_bucket=self.bucket_name,
                    metadata=data.metadata,
                )
            )
        except Exception as err:
            logger.error("Failed to store metadata for %s: %s", s3_key, err)
            self._remove_orphan(s3_key)
            raise DatabaseError("Failed to store file metadata", {"error": str(err)}) from err

        logger.info("User %s uploaded %s (%d bytes) as %s", user_id, data.file_name, data.file_size, record.id)
        return FileUploadResponse(file_id=record.id, file_name=data.file_name, uploaded_at=record.uploaded_at)

    def _remove_orphan(self, s3_key: str) -> None:
        try:
            delete_s3_object(self.bucket_name, s3_key, s3_client=self.s3_client)
        except (ClientError, BotoCoreError) as err:
            logger.error("Could not remove orphaned object %s: %s", s3_key, err)

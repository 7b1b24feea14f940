import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from fileshare_api.client.api_client import ApiClient
from fileshare_api.client.errors import ApiError, FileUploadError
from fileshare_api.schemas import ValidationResult

MAX_FILE_SIZE = 50 * 1024 * 1024
MAX_FILE_NAME_LENGTH = 255

SUPPORTED_MIME_TYPES = [
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
    "application/zip",
    "application/x-zip-compressed",
]


class FileUploadClient:
    """Checks files locally before handing them to `ApiClient.upload_file`."""

    def __init__(self, api_client: ApiClient):
        self.api_client = api_client

    def validate_file(self, file_name: Optional[str], size: int, mime_type: Optional[str]) -> ValidationResult:
        """Collect every rule the file breaks, not just the first."""
        errors: List[str] = []

        if size == 0:
            errors.append("File is empty")
        elif size > MAX_FILE_SIZE:
            errors.append(f"File size exceeds maximum allowed size of {MAX_FILE_SIZE // (1024 * 1024)}MB")

        if mime_type not in SUPPORTED_MIME_TYPES:
            errors.append(f"File type '{mime_type}' is not supported. Supported types: images and documents")

        if not file_name or not file_name.strip():
            errors.append("File name is required")
        elif len(file_name) > MAX_FILE_NAME_LENGTH:
            errors.append("File name is too long (maximum 255 characters)")

        return ValidationResult(is_valid=not errors, errors=errors)

    def upload_file(
        self,
        file_name: str,
        content: bytes,
        mime_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Validate, then upload.

        :raises FileUploadError: `VALIDATION_ERROR` before anything is sent, `UPLOAD_ERROR` if the API call fails.
        """
        validation = self.validate_file(file_name, len(content), mime_type)
        if not validation.is_valid:
            raise FileUploadError("VALIDATION_ERROR", ", ".join(validation.errors))

        try:
            response = self.api_client.upload_file(file_name, content, mime_type, metadata)
        except ApiError as err:
            raise FileUploadError("UPLOAD_ERROR", err.message, err) from err

        return {"file_id": response["fileId"], "message": response.get("message")}

    def upload_path(self, path: Union[str, Path], metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Upload a file from disk, guessing its MIME type from the extension."""
        path = Path(path)
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return self.upload_file(path.name, path.read_bytes(), mime_type, metadata)

    def get_supported_file_types(self) -> List[str]:
        return list(SUPPORTED_MIME_TYPES)

    def get_max_file_size(self) -> int:
        return MAX_FILE_SIZE

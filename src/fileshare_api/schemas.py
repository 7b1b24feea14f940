####################################
# --- Request/response schemas --- #
####################################

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_LIST_FILES_LIMIT = 50
MAX_LIST_FILES_LIMIT = 100


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IdentityProvider(str, Enum):
    """Identity providers a user can sign in with."""
    GOOGLE = "google"
    MICROSOFT = "microsoft"
    COGNITO = "cognito"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


######################
# --- Table rows --- #
######################

class User(CamelModel):
    """Row of the `users` table."""
    id: str
    email: str
    provider: IdentityProvider
    provider_id: str
    created_at: datetime
    last_login_at: Optional[datetime] = None


class NewUser(CamelModel):
    """Values for inserting a user. `id` defaults to a generated UUID."""
    email: str
    provider: IdentityProvider
    provider_id: str
    last_login_at: Optional[datetime] = None
    id: Optional[str] = None


class FileRecord(CamelModel):
    """Row of the `files` table."""
    id: str
    user_id: str
    file_name: str
    file_size: int
    mime_type: str
    s3_key: str
    s3_bucket: str
    uploaded_at: datetime
    metadata: Optional[Dict[str, Any]] = None


class NewFileRecord(CamelModel):
    user_id: str
    file_name: str
    file_size: int = Field(gt=0)
    mime_type: str
    s3_key: str
    s3_bucket: str
    metadata: Optional[Dict[str, Any]] = None


########################
# --- API payloads --- #
########################

class FileUploadData(BaseModel):
    """A file pulled out of an upload request, before validation."""
    file_name: str
    file_size: int
    mime_type: str
    content: bytes
    metadata: Optional[Dict[str, Any]] = None


class FileUploadResponse(CamelModel):
    """Response model for `POST /files/upload`."""
    file_id: str
    file_name: str
    uploaded_at: datetime
    message: str = "File uploaded successfully"

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "fileId": "3f1c7a52-3f44-4c51-8d7b-2f1f8f1f4b7e",
                "fileName": "report.pdf",
                "uploadedAt": "2024-01-01T12:34:56",
                "message": "File uploaded successfully",
            }
        }
    )


class FileMetadataResponse(CamelModel):
    """Response model for `GET /api/files/:id` and the items of `GET /api/files`."""
    id: str
    file_name: str
    file_size: int
    mime_type: str
    uploaded_at: datetime
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileMetadataResponse":
        return cls(
            id=record.id,
            file_name=record.file_name,
            file_size=record.file_size,
            mime_type=record.mime_type,
            uploaded_at=record.uploaded_at,
            metadata=record.metadata,
        )


class ListFilesResponse(CamelModel):
    """Response model for `GET /api/files`."""
    files: List[FileMetadataResponse]
    total: int


class PresignedUrlResponse(CamelModel):
    """Response model for `POST /api/files/:id/presigned-url`."""
    url: str
    expires_in: int


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[Any] = None


class TokenValidationResult(CamelModel):
    is_valid: bool
    user_id: Optional[str] = None
    email: Optional[str] = None
    error: Optional[str] = None
    claims: Dict[str, Any] = Field(default_factory=dict, exclude=True)


class AuthenticatedUser(CamelModel):
    """Identity attached to a request once its bearer token checks out."""
    user_id: str
    email: Optional[str] = None
    claims: Dict[str, Any] = Field(default_factory=dict, exclude=True)
    token: Optional[str] = Field(default=None, exclude=True)


class TokenValidationResponse(CamelModel):
    """Response model for `GET /auth/validate`."""
    user_id: str
    email: Optional[str] = None
    message: str = "Token is valid"


class ValidationResult(CamelModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)


class ComponentHealth(CamelModel):
    status: HealthStatus
    message: Optional[str] = None
    response_time: Optional[float] = None


class HealthCheckResponse(CamelModel):
    status: HealthStatus
    timestamp: datetime
    uptime: float
    version: str
    components: Dict[str, ComponentHealth]

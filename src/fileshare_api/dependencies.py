"""FastAPI dependencies wiring settings, the database, repositories and services into routes."""

from typing import Optional

from fastapi import Depends, Header, Request

from fileshare_api.aws_clients import get_s3_client
from fileshare_api.database.connection import DatabaseConnection, get_database
from fileshare_api.errors import AuthenticationError
from fileshare_api.repositories.factory import get_repository_factory
from fileshare_api.repositories.file_repository import FileRepository
from fileshare_api.repositories.user_repository import UserRepository
from fileshare_api.schemas import AuthenticatedUser
from fileshare_api.services.auth_service import AuthService, strip_bearer
from fileshare_api.services.file_service import FileService
from fileshare_api.services.upload_service import FileUploadService
from fileshare_api.services.user_service import UserService
from fileshare_api.settings import Settings


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(settings: Settings = Depends(get_app_settings)) -> DatabaseConnection:
    return get_database(settings)


def get_file_repository(db: DatabaseConnection = Depends(get_db)) -> FileRepository:
    return get_repository_factory(db).create_file_repository()


def get_user_repository(db: DatabaseConnection = Depends(get_db)) -> UserRepository:
    return get_repository_factory(db).create_user_repository()


def get_auth_service(request: Request) -> AuthService:
    """One `AuthService` per app so its JWKS cache outlives a single request."""
    auth_service = getattr(request.app.state, "auth_service", None)
    if auth_service is None:
        auth_service = AuthService(settings=request.app.state.settings)
        request.app.state.auth_service = auth_service
    return auth_service


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthenticatedUser:
    """
    Authenticate the request from its `Authorization` header.

    The header may hold the bare token or `Bearer <token>`.
    """
    if not authorization or not authorization.strip():
        raise AuthenticationError("Authorization header is required", code="AUTHENTICATION_REQUIRED")

    result = auth_service.validate_token(authorization)
    if not result.is_valid or not result.user_id:
        raise AuthenticationError(result.error or "Invalid token", code="INVALID_TOKEN")

    return AuthenticatedUser(
        user_id=result.user_id,
        email=result.email,
        claims=result.claims,
        token=strip_bearer(authorization),
    )


def get_user_service(
    user_repository: UserRepository = Depends(get_user_repository),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserService:
    return UserService(user_repository, auth_service)


def get_upload_service(
    settings: Settings = Depends(get_app_settings),
    file_repository: FileRepository = Depends(get_file_repository),
) -> FileUploadService:
    return FileUploadService(
        file_repository=file_repository,
        bucket_name=settings.s3_bucket_name,
        max_file_size=settings.max_file_size_bytes,
        s3_client=get_s3_client(settings),
    )


def get_file_service(
    settings: Settings = Depends(get_app_settings),
    file_repository: FileRepository = Depends(get_file_repository),
) -> FileService:
    return FileService(
        file_repository=file_repository,
        s3_client=get_s3_client(settings),
        default_expiration=settings.presigned_url_expiration,
        max_expiration=settings.presigned_url_max_expiration,
    )

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Request, status

from fileshare_api.dependencies import (
    get_current_user,
    get_file_service,
    get_upload_service,
    get_user_service,
)
from fileshare_api.responses import created_response, success_response
from fileshare_api.schemas import (
    AuthenticatedUser,
    FileMetadataResponse,
    FileUploadResponse,
    ListFilesResponse,
    PresignedUrlResponse,
)
from fileshare_api.services.file_service import FileService
from fileshare_api.services.upload_service import FileUploadService, read_upload_request, validate_file
from fileshare_api.services.user_service import UserService

router = APIRouter()


@router.post(
    "/files/upload",
    status_code=status.HTTP_201_CREATED,
    responses={status.HTTP_201_CREATED: {"model": FileUploadResponse}},
)
async def upload_file(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    upload_service: FileUploadService = Depends(get_upload_service),
    user_service: UserService = Depends(get_user_service),
):
    """
    Upload a file for the authenticated user.

    Accepts `multipart/form-data`, a JSON body with base64 `fileContent`,
    or a raw body described by `x-file-name` / `x-mime-type` / `x-metadata` headers.
    The file is stored in S3 under `uploads/<user id>/` and its metadata in PostgreSQL.
    """
    data = await read_upload_request(request)
    validate_file(data, upload_service.max_file_size)
    user_service.ensure_user(user)

    result = upload_service.upload(user.user_id, data)
    return created_response(result)


@router.get("/api/files", responses={status.HTTP_200_OK: {"model": ListFilesResponse}})
async def list_files(
    limit: Optional[str] = Query(None, description="Page size, 1-100 (default 50)"),
    offset: Optional[str] = Query(None, description="Number of files to skip (default 0)"),
    user: AuthenticatedUser = Depends(get_current_user),
    file_service: FileService = Depends(get_file_service),
):
    """List the authenticated user's files, newest first."""
    return success_response(file_service.list_user_files(user.user_id, limit, offset))


@router.get("/api/files/{file_id}", responses={status.HTTP_200_OK: {"model": FileMetadataResponse}})
async def get_file_metadata(
    file_id: str = Path(..., description="ID of the file"),
    user: AuthenticatedUser = Depends(get_current_user),
    file_service: FileService = Depends(get_file_service),
):
    return success_response(file_service.get_file_metadata(user.user_id, file_id))


@router.post(
    "/api/files/{file_id}/presigned-url",
    responses={status.HTTP_200_OK: {"model": PresignedUrlResponse}},
)
async def create_presigned_url(
    file_id: str = Path(..., description="ID of the file"),
    expires_in: Optional[str] = Query(None, alias="expiresIn", description="URL lifetime in seconds, max 7 days"),
    user: AuthenticatedUser = Depends(get_current_user),
    file_service: FileService = Depends(get_file_service),
):
    """Create a time-limited download URL for one of the user's files."""
    return success_response(file_service.create_presigned_url(user.user_id, file_id, expires_in))

from fileshare_api.client.api_client import ApiClient
from fileshare_api.client.auth import CognitoAuthClient
from fileshare_api.client.errors import ApiError, AuthenticationError, FileUploadError
from fileshare_api.client.upload import FileUploadClient

__all__ = [
    "ApiClient",
    "ApiError",
    "AuthenticationError",
    "CognitoAuthClient",
    "FileUploadClient",
    "FileUploadError",
]

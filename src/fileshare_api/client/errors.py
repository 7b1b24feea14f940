from typing import Any, Optional


class ApiError(Exception):
    """A request to the Fileshare API failed. `status_code` is 0 when no response arrived."""

    def __init__(self, status_code: int, code: str, message: str, original_error: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.original_error = original_error

    def __repr__(self) -> str:
        return f"ApiError(status_code={self.status_code}, code={self.code!r}, message={self.message!r})"


class AuthenticationError(Exception):
    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.message = message
        self.code = code


class FileUploadError(Exception):
    def __init__(self, code: str, message: str, original_error: Optional[Any] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.original_error = original_error

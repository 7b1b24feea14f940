"""HTTP client for the Fileshare API with token refresh and retries."""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Protocol

import requests

from fileshare_api.client.errors import ApiError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30
MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 1.0


class TokenProvider(Protocol):
    def get_token(self) -> Optional[str]:
        ...

    def refresh_token(self) -> Any:
        ...


class ApiClient:
    """
    Thin wrapper over a `requests.Session` that talks to the Fileshare API.

    - Each attempt carries `Authorization: Bearer <token>` when `auth` yields a token.
    - A 401 triggers one `auth.refresh_token()` and a retry.
    - Connection failures and 5xx responses other than 501 are retried up to
      `max_retries` times, waiting `retry_delay * attempt` seconds in between.

    Usage:
        client = ApiClient("https://api.example.com", auth=CognitoAuthClient(settings))
        files = client.get_user_files()
    """

    def __init__(
        self,
        base_url: str,
        auth: Optional[TokenProvider] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = auth
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    def _auth_headers(self) -> Dict[str, str]:
        if self.auth is None:
            return {}
        try:
            token = self.auth.get_token()
        except Exception as err:  # pylint: disable=broad-except
            # the API answers 401 if the route needs a token
            logger.warning("Could not get auth token, sending request without it: %s", err)
            return {}
        return {"Authorization": f"Bearer {token}"} if token else {}

    @staticmethod
    def _should_retry(status_code: int) -> bool:
        return status_code >= 500 and status_code != 501

    def request(self, method: str, endpoint: str, headers: Optional[Dict[str, str]] = None, **kwargs) -> Any:
        """
        Send a request and return the decoded body, unwrapping `{"success": true, "data": ...}`.

        :raises ApiError: once retries and the token refresh are exhausted.
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        attempt = 0
        refreshed = False

        while True:
            request_headers = {**(headers or {}), **self._auth_headers()}
            try:
                response = self.session.request(method, url, headers=request_headers, timeout=self.timeout, **kwargs)
            except requests.RequestException as err:
                if attempt < self.max_retries:
                    attempt += 1
                    logger.warning("%s %s failed (%s), retry %d/%d", method, url, err, attempt, self.max_retries)
                    self._sleep(self.retry_delay * attempt)
                    continue
                raise ApiError(0, "NETWORK_ERROR", "Network error. Please check your connection.", err) from err

            if response.status_code == 401 and not refreshed and self.auth is not None:
                refreshed = True
                try:
                    self.auth.refresh_token()
                except Exception as err:  # pylint: disable=broad-except
                    raise ApiError(401, "AUTH_ERROR", "Authentication failed. Please log in again.", err) from err
                continue

            if self._should_retry(response.status_code) and attempt < self.max_retries:
                attempt += 1
                logger.warning(
                    "%s %s returned %d, retry %d/%d", method, url, response.status_code, attempt, self.max_retries
                )
                self._sleep(self.retry_delay * attempt)
                continue

            if response.status_code >= 400:
                raise self._to_api_error(response)
            return self._unwrap(response)

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _unwrap(self, response: requests.Response) -> Any:
        body = self._decode(response)
        if isinstance(body, dict) and body.get("success") is True and "data" in body:
            return body["data"]
        return body

    def _to_api_error(self, response: requests.Response) -> ApiError:
        body = self._decode(response)
        body = body if isinstance(body, dict) else {}
        return ApiError(
            response.status_code,
            body.get("error") or "API_ERROR",
            body.get("message") or response.reason or "An error occurred",
            response,
        )

    def get(self, endpoint: str, **kwargs) -> Any:
        return self.request("GET", endpoint, **kwargs)

    def post(self, endpoint: str, data: Any = None, **kwargs) -> Any:
        if data is not None:
            kwargs["json"] = data
        return self.request("POST", endpoint, **kwargs)

    def put(self, endpoint: str, data: Any = None, **kwargs) -> Any:
        if data is not None:
            kwargs["json"] = data
        return self.request("PUT", endpoint, **kwargs)

    def delete(self, endpoint: str, **kwargs) -> Any:
        return self.request("DELETE", endpoint, **kwargs)

    def upload_file(
        self,
        file_name: str,
        content: bytes,
        mime_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Upload as `multipart/form-data`; metadata values travel as extra form fields."""
        form = {
            key: value if isinstance(value, str) else json.dumps(value)
            for key, value in (metadata or {}).items()
            if value is not None
        }
        return self.request("POST", "/files/upload", files={"file": (file_name, content, mime_type)}, data=form)

    def get_user_files(self, limit: Optional[int] = None, offset: Optional[int] = None) -> Dict[str, Any]:
        params = {key: value for key, value in (("limit", limit), ("offset", offset)) if value is not None}
        return self.get("/api/files", params=params)

    def list_all_files(self, page_size: int = 100) -> List[Dict[str, Any]]:
        files: List[Dict[str, Any]] = []
        while True:
            page = self.get_user_files(limit=page_size, offset=len(files))
            files.extend(page["files"])
            if not page["files"] or len(files) >= page["total"]:
                return files

    def get_file_metadata(self, file_id: str) -> Dict[str, Any]:
        return self.get(f"/api/files/{file_id}")

    def get_presigned_url(self, file_id: str, expires_in: Optional[int] = None) -> Dict[str, Any]:
        params = {"expiresIn": expires_in} if expires_in is not None else None
        return self.post(f"/api/files/{file_id}/presigned-url", params=params)

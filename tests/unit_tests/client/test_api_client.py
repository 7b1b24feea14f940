import json
from unittest.mock import MagicMock

import pytest
import requests

from fileshare_api.client.api_client import ApiClient
from fileshare_api.client.errors import ApiError

BASE_URL = "https://api.example.com/"


def make_response(status_code: int, body=None, reason: str = "") -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response.reason = reason
    response._content = json.dumps(body).encode() if body is not None else b""
    return response


class FakeAuth:
    def __init__(self, token="token-1", refreshed_token="token-2", fail_refresh=False):
        self.token = token
        self.refreshed_token = refreshed_token
        self.fail_refresh = fail_refresh
        self.refresh_calls = 0

    def get_token(self):
        return self.token

    def refresh_token(self):
        self.refresh_calls += 1
        if self.fail_refresh:
            raise RuntimeError("refresh token revoked")
        self.token = self.refreshed_token
        return self.token


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def api_client(session, sleeps):
    return ApiClient(BASE_URL, auth=FakeAuth(), session=session, sleep=sleeps.append)


def sent_headers(session, call_index=-1):
    return session.request.call_args_list[call_index].kwargs["headers"]


def test_unwraps_success_envelope(api_client, session):
    session.request.return_value = make_response(200, {"success": True, "data": {"files": [], "total": 0}})

    assert api_client.get("/api/files") == {"files": [], "total": 0}

    method, url = session.request.call_args.args
    assert (method, url) == ("GET", "https://api.example.com/api/files")
    assert sent_headers(session)["Authorization"] == "Bearer token-1"


def test_without_token_sends_no_authorization(session, sleeps):
    client = ApiClient(BASE_URL, auth=FakeAuth(token=None), session=session, sleep=sleeps.append)
    session.request.return_value = make_response(200, {"ready": True})

    assert client.get("/ready") == {"ready": True}
    assert "Authorization" not in sent_headers(session)


def test_server_errors_are_retried_then_raised(api_client, session, sleeps):
    session.request.return_value = make_response(500, {"error": "INTERNAL_ERROR", "message": "boom"})

    with pytest.raises(ApiError) as exc_info:
        api_client.get("/api/files")

    assert session.request.call_count == 4
    assert sleeps == [1.0, 2.0, 3.0]
    assert exc_info.value.status_code == 500
    assert exc_info.value.code == "INTERNAL_ERROR"
    assert exc_info.value.message == "boom"


def test_server_error_then_success(api_client, session, sleeps):
    session.request.side_effect = [
        make_response(502, reason="Bad Gateway"),
        make_response(200, {"success": True, "data": {"ok": 1}}),
    ]

    assert api_client.get("/api/files") == {"ok": 1}
    assert sleeps == [1.0]


def test_not_implemented_is_not_retried(api_client, session):
    session.request.return_value = make_response(501, reason="Not Implemented")

    with pytest.raises(ApiError) as exc_info:
        api_client.get("/api/files")

    assert session.request.call_count == 1
    assert exc_info.value.code == "API_ERROR"
    assert exc_info.value.message == "Not Implemented"


def test_client_errors_are_not_retried(api_client, session):
    session.request.return_value = make_response(404, {"error": "NOT_FOUND", "message": "File not found"})

    with pytest.raises(ApiError) as exc_info:
        api_client.get_file_metadata("9b2f6c1e-7d3a-4e5b-8c9d-0a1b2c3d4e5f")

    assert session.request.call_count == 1
    assert exc_info.value.status_code == 404
    assert exc_info.value.code == "NOT_FOUND"


def test_unauthorized_refreshes_once(session, sleeps):
    auth = FakeAuth()
    client = ApiClient(BASE_URL, auth=auth, session=session, sleep=sleeps.append)
    session.request.side_effect = [
        make_response(401, {"error": "INVALID_TOKEN", "message": "Token has expired"}),
        make_response(200, {"success": True, "data": {"userId": "u1"}}),
    ]

    assert client.get("/auth/validate") == {"userId": "u1"}
    assert auth.refresh_calls == 1
    assert sent_headers(session, 0)["Authorization"] == "Bearer token-1"
    assert sent_headers(session, 1)["Authorization"] == "Bearer token-2"


def test_unauthorized_twice_raises_without_second_refresh(session, sleeps):
    auth = FakeAuth()
    client = ApiClient(BASE_URL, auth=auth, session=session, sleep=sleeps.append)
    session.request.return_value = make_response(401, {"error": "INVALID_TOKEN", "message": "Token has expired"})

    with pytest.raises(ApiError) as exc_info:
        client.get("/auth/validate")

    assert auth.refresh_calls == 1
    assert session.request.call_count == 2
    assert exc_info.value.status_code == 401
    assert exc_info.value.code == "INVALID_TOKEN"


def test_failed_refresh_raises_auth_error(session, sleeps):
    client = ApiClient(BASE_URL, auth=FakeAuth(fail_refresh=True), session=session, sleep=sleeps.append)
    session.request.return_value = make_response(401, {"error": "INVALID_TOKEN", "message": "Token has expired"})

    with pytest.raises(ApiError) as exc_info:
        client.get("/api/files")

    assert exc_info.value.status_code == 401
    assert exc_info.value.code == "AUTH_ERROR"
    assert exc_info.value.message == "Authentication failed. Please log in again."


def test_network_errors_are_retried(api_client, session, sleeps):
    session.request.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(ApiError) as exc_info:
        api_client.get("/api/files")

    assert session.request.call_count == 4
    assert sleeps == [1.0, 2.0, 3.0]
    assert exc_info.value.status_code == 0
    assert exc_info.value.code == "NETWORK_ERROR"


def test_upload_file_sends_multipart(api_client, session):
    session.request.return_value = make_response(
        201, {"success": True, "data": {"fileId": "f1", "message": "File uploaded successfully"}}
    )

    result = api_client.upload_file("notes.txt", b"hello", "text/plain", {"category": "personal", "tags": ["a"]})

    assert result["fileId"] == "f1"
    kwargs = session.request.call_args.kwargs
    assert kwargs["files"] == {"file": ("notes.txt", b"hello", "text/plain")}
    assert kwargs["data"] == {"category": "personal", "tags": '["a"]'}


def test_get_user_files_passes_pagination(api_client, session):
    session.request.return_value = make_response(200, {"success": True, "data": {"files": [], "total": 0}})

    api_client.get_user_files(limit=10, offset=20)

    assert session.request.call_args.kwargs["params"] == {"limit": 10, "offset": 20}


def test_list_all_files_follows_pages(api_client, session):
    session.request.side_effect = [
        make_response(200, {"success": True, "data": {"files": [{"id": "a"}, {"id": "b"}], "total": 3}}),
        make_response(200, {"success": True, "data": {"files": [{"id": "c"}], "total": 3}}),
    ]

    files = api_client.list_all_files(page_size=2)

    assert [f["id"] for f in files] == ["a", "b", "c"]
    assert session.request.call_args_list[1].kwargs["params"] == {"limit": 2, "offset": 2}


def test_get_presigned_url(api_client, session):
    session.request.return_value = make_response(
        200, {"success": True, "data": {"url": "https://s3.example.com/x", "expiresIn": 60}}
    )

    result = api_client.get_presigned_url("f1", expires_in=60)

    assert result["expiresIn"] == 60
    method, url = session.request.call_args.args
    assert (method, url) == ("POST", "https://api.example.com/api/files/f1/presigned-url")
    assert session.request.call_args.kwargs["params"] == {"expiresIn": 60}


def test_put_and_delete(api_client, session):
    session.request.side_effect = [make_response(200, {"success": True, "data": {"updated": True}}), make_response(204)]

    assert api_client.put("/api/files/f1", {"fileName": "renamed.txt"}) == {"updated": True}
    assert api_client.delete("/api/files/f1") is None

    put_call, delete_call = session.request.call_args_list
    assert put_call.args[0] == "PUT"
    assert put_call.kwargs["json"] == {"fileName": "renamed.txt"}
    assert delete_call.args == ("DELETE", "https://api.example.com/api/files/f1")

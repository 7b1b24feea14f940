from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from fileshare_api import cli as cli_module
from fileshare_api.cli import StaticTokenProvider, _build_client, cli
from fileshare_api.client.errors import ApiError, AuthenticationError
from tests.consts import TEST_BUCKET_NAME


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def api_client(monkeypatch) -> MagicMock:
    client = MagicMock()
    monkeypatch.setattr(cli_module, "_build_client", lambda token, email, password: client)
    return client


@pytest.fixture(autouse=True)
def cli_environment(monkeypatch):
    monkeypatch.setenv("S3_BUCKET_NAME", TEST_BUCKET_NAME)
    monkeypatch.setenv("API_URL", "http://testserver")
    for name in ("FILESHARE_TOKEN", "FILESHARE_EMAIL", "FILESHARE_PASSWORD"):
        monkeypatch.delenv(name, raising=False)


def test_show_config(runner):
    result = runner.invoke(cli, ["show-config"])

    assert result.exit_code == 0
    assert "Current Configuration:" in result.output
    assert f"S3 Bucket: {TEST_BUCKET_NAME}" in result.output
    assert "API URL: http://testserver" in result.output


def test_client_command_requires_credentials(runner):
    result = runner.invoke(cli, ["list-files"])

    assert result.exit_code == 2
    assert "Provide --token, or --email and --password" in result.output


def test_build_client_with_token():
    client = _build_client("abc", None, None)

    assert isinstance(client.auth, StaticTokenProvider)
    assert client.auth.get_token() == "abc"
    with pytest.raises(AuthenticationError):
        client.auth.refresh_token()


def test_presign(runner, api_client):
    api_client.get_presigned_url.return_value = {"url": "https://s3.example.com/signed", "expiresIn": 300}

    result = runner.invoke(cli, ["presign", "f1", "--expires-in", "300", "--token", "abc"])

    assert result.exit_code == 0
    assert result.output.splitlines() == ["https://s3.example.com/signed", "Expires in 300 seconds"]
    api_client.get_presigned_url.assert_called_once_with("f1", expires_in=300)


def test_file_info_api_error(runner, api_client):
    api_client.get_file_metadata.side_effect = ApiError(404, "NOT_FOUND", "File not found")

    result = runner.invoke(cli, ["file-info", "f1", "--token", "abc"])

    assert result.exit_code == 1
    assert "NOT_FOUND: File not found" in result.output


def test_list_files_prints_json(runner, api_client):
    api_client.get_user_files.return_value = {"files": [], "total": 0}

    result = runner.invoke(cli, ["list-files", "--limit", "5"], env={"FILESHARE_TOKEN": "abc"})

    assert result.exit_code == 0
    assert '"total": 0' in result.output
    api_client.get_user_files.assert_called_once_with(limit=5, offset=None)


def test_upload(runner, api_client, tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello")
    api_client.upload_file.return_value = {"fileId": "f1", "message": "File uploaded successfully"}

    result = runner.invoke(cli, ["upload", str(path), "--metadata", '{"folder": "inbox"}', "--token", "abc"])

    assert result.exit_code == 0
    assert f"Uploaded {path} as f1" in result.output
    api_client.upload_file.assert_called_once_with("notes.txt", b"hello", "text/plain", {"folder": "inbox"})


def test_upload_rejected_locally(runner, api_client, tmp_path):
    path = tmp_path / "empty.txt"
    path.write_bytes(b"")

    result = runner.invoke(cli, ["upload", str(path), "--token", "abc"])

    assert result.exit_code == 1
    assert "VALIDATION_ERROR: File is empty" in result.output
    api_client.upload_file.assert_not_called()

# cli.py
import json
import logging

import click

from fileshare_api.client.api_client import ApiClient
from fileshare_api.client.auth import CognitoAuthClient
from fileshare_api.client.errors import ApiError, AuthenticationError, FileUploadError
from fileshare_api.client.upload import FileUploadClient
from fileshare_api.settings import get_settings

logger = logging.getLogger(__name__)


class StaticTokenProvider:
    """Token passed on the command line; it cannot be refreshed."""

    def __init__(self, token: str):
        self.token = token

    def get_token(self):
        return self.token

    def refresh_token(self):
        raise AuthenticationError("A token given with --token cannot be refreshed", "REFRESH_ERROR")


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option("--log-level", default="WARNING", show_default=True, help="Logging level for CLI output")
def cli(log_level):
    """Fileshare API: server management and API client commands"""
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s [%(name)s] %(message)s")


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  App: {settings.app_name} {settings.app_version}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  S3 Bucket: {settings.s3_bucket_name}")
    if settings.use_secrets_manager:
        print(f"  Database: Secrets Manager secret {settings.db_secret_name}")
    else:
        print(f"  Database: {'DATABASE_URL' if settings.database_url else 'not configured'}")
    print(f"  DB SSL: {settings.db_ssl}")
    print(f"  Cognito User Pool: {settings.cognito_user_pool_id}")
    print(f"  Cognito Client ID: {settings.cognito_client_id}")
    print(f"  Cognito Domain: {settings.cognito_domain}")
    print(f"  API URL: {settings.api_url}")


@cli.command()
def migrate():
    """Create or update the database schema"""
    from fileshare_api.database.connection import create_database_connection
    from fileshare_api.database.migrations import run_migrations

    db = create_database_connection(get_settings())
    db.connect()
    try:
        applied = run_migrations(db)
    finally:
        db.disconnect()

    if applied:
        for migration in applied:
            print(f"✅ Applied {migration.id:03d}_{migration.name}")
    else:
        print("Database schema is up to date")


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host, port, reload):
    """Run the API locally with uvicorn"""
    import uvicorn

    uvicorn.run("fileshare_api.main:create_app", factory=True, host=host, port=port, reload=reload)


###############################
# --- API client commands --- #
###############################

def _build_client(token, email, password) -> ApiClient:
    settings = get_settings()
    if token:
        auth = StaticTokenProvider(token)
    elif email and password:
        auth = CognitoAuthClient(settings)
        auth.sign_in(email, password)
    else:
        raise click.UsageError("Provide --token, or --email and --password")
    return ApiClient(settings.api_url, auth=auth)


def client_options(command):
    command = click.option("--password", envvar="FILESHARE_PASSWORD", help="Cognito password")(command)
    command = click.option("--email", envvar="FILESHARE_EMAIL", help="Cognito user name (email)")(command)
    command = click.option("--token", envvar="FILESHARE_TOKEN", help="Cognito access token")(command)
    return command


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--metadata", help="JSON object stored with the file")
@client_options
def upload(path, metadata, token, email, password):
    """Upload a file"""
    try:
        client = FileUploadClient(_build_client(token, email, password))
        result = client.upload_path(path, json.loads(metadata) if metadata else None)
    except (FileUploadError, AuthenticationError) as err:
        raise click.ClickException(f"{err.code}: {err.message}")
    print(f"✅ Uploaded {path} as {result['file_id']}")


@cli.command()
@click.option("--limit", type=int, help="Page size (max 100)")
@click.option("--offset", type=int, help="Number of files to skip")
@client_options
def list_files(limit, offset, token, email, password):
    """List your files"""
    try:
        _echo_json(_build_client(token, email, password).get_user_files(limit=limit, offset=offset))
    except (ApiError, AuthenticationError) as err:
        raise click.ClickException(f"{err.code}: {err.message}")


@cli.command()
@click.argument("file_id")
@client_options
def file_info(file_id, token, email, password):
    """Show a file's metadata"""
    try:
        _echo_json(_build_client(token, email, password).get_file_metadata(file_id))
    except (ApiError, AuthenticationError) as err:
        raise click.ClickException(f"{err.code}: {err.message}")


@cli.command()
@click.argument("file_id")
@click.option("--expires-in", type=int, help="URL lifetime in seconds (max 7 days)")
@client_options
def presign(file_id, expires_in, token, email, password):
    """Create a download URL for a file"""
    try:
        result = _build_client(token, email, password).get_presigned_url(file_id, expires_in=expires_in)
    except (ApiError, AuthenticationError) as err:
        raise click.ClickException(f"{err.code}: {err.message}")
    print(result["url"])
    print(f"Expires in {result['expiresIn']} seconds")


if __name__ == "__main__":
    cli()

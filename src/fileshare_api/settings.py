# src/fileshare_api/settings.py
from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Single source of truth for all application settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from fileshare_api.settings import get_settings
        settings = get_settings()
        bucket_name = settings.s3_bucket_name
    """

    # Application Settings
    app_name: str = Field(
        default="fileshare-api",
        description="Application name"
    )

    app_version: str = Field(
        default="1.0.0",
        description="Version reported by the health endpoint"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    cors_allow_origins: List[str] = Field(
        default=["*"],
        description="Origins allowed by the CORS middleware"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        validation_alias=AliasChoices("AWS_REGION", "AWS_DEFAULT_REGION", "aws_region"),
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        description="Override endpoint for LocalStack/moto server"
    )

    # S3 Configuration
    s3_bucket_name: str = Field(
        default="fileshare-uploads",
        description="S3 bucket for uploaded files"
    )

    max_file_size_bytes: int = Field(
        default=50 * 1024 * 1024,
        description="Largest accepted upload"
    )

    presigned_url_expiration: int = Field(
        default=3600,
        description="Default lifetime of presigned download URLs in seconds"
    )

    presigned_url_max_expiration: int = Field(
        default=604800,
        description="Upper bound for requested presigned URL lifetimes (7 days)"
    )

    # Database Configuration
    database_url: Optional[str] = Field(
        default=None,
        description="PostgreSQL connection string for local development"
    )

    db_secret_name: Optional[str] = Field(
        default=None,
        description="Secrets Manager secret holding the database credentials"
    )

    db_ssl: bool = Field(
        default=False,
        description="Require SSL/TLS for database connections"
    )

    db_max_connections: int = Field(
        default=10,
        description="Maximum connections held by the pool"
    )

    db_connect_timeout: int = Field(
        default=5,
        description="Connection timeout in seconds"
    )

    # Cognito Configuration
    cognito_user_pool_id: Optional[str] = Field(default=None)
    cognito_client_id: Optional[str] = Field(default=None)
    cognito_client_secret: Optional[str] = Field(default=None)
    cognito_domain: Optional[str] = Field(
        default=None,
        description="Hosted UI domain, e.g. myapp.auth.us-east-1.amazoncognito.com"
    )
    cognito_redirect_uri: str = Field(
        default="http://localhost:3000",
        description="OAuth redirect URI registered on the app client"
    )

    # Client Configuration
    api_url: str = Field(
        default="http://localhost:8000",
        description="Base URL used by the Python API client"
    )

    @property
    def use_secrets_manager(self) -> bool:
        return bool(self.db_secret_name)

    @property
    def cognito_issuer(self) -> str:
        return f"https://cognito-idp.{self.aws_region}.amazonaws.com/{self.cognito_user_pool_id}"

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()

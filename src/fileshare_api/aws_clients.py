"""boto3 client construction shared by the S3, Secrets Manager and Cognito code paths."""

import base64
import hashlib
import hmac
import logging
from typing import Any, Optional

import boto3

from fileshare_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def get_aws_client(service_name: str, settings: Optional[Settings] = None) -> Any:
    """
    Create a boto3 client for `service_name` using the configured region.

    `AWS_ENDPOINT_URL` redirects every client to LocalStack or a moto server.
    """
    settings = settings or get_settings()
    client_kwargs = {"region_name": settings.aws_region}
    if settings.aws_endpoint_url:
        client_kwargs["endpoint_url"] = settings.aws_endpoint_url

    logger.debug("Creating %s client in %s", service_name, settings.aws_region)
    return boto3.client(service_name, **client_kwargs)


def get_s3_client(settings: Optional[Settings] = None) -> Any:
    return get_aws_client("s3", settings)


def get_cognito_client(settings: Optional[Settings] = None) -> Any:
    return get_aws_client("cognito-idp", settings)


def cognito_secret_hash(username: str, client_id: str, client_secret: str) -> str:
    """`SECRET_HASH` Cognito expects from app clients that have a secret."""
    digest = hmac.new(
        client_secret.encode("utf-8"),
        msg=(username + client_id).encode("utf-8"),
        digestmod=hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("utf-8")

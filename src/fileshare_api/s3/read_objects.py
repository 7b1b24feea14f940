"""Functions for reading objects from an S3 bucket--the "R" in CRUD."""

import re
from typing import Optional
from urllib.parse import quote

from botocore.exceptions import ClientError

from fileshare_api.aws_clients import get_s3_client

try:
    from mypy_boto3_s3 import S3Client
except ImportError:
    ...

DEFAULT_PRESIGNED_URL_EXPIRATION = 3600


def attachment_disposition(file_name: str) -> str:
    """`Content-Disposition` with an ASCII `filename` and the exact name in RFC 6266 `filename*`."""
    fallback = re.sub(r"[^\x20-\x7e]|[\"\\]", "_", file_name)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name, safe='')}"


def object_exists_in_s3(bucket_name: str, object_key: str, s3_client: Optional["S3Client"] = None) -> bool:
    """
    Check if an object exists in the S3 bucket using head_object.

    :param bucket_name: Name of the S3 bucket.
    :param object_key: Key of the object to check.
    :param s3_client: An optional boto3 S3 client. If not provided, one will be created.
    :return: True if the object exists, False otherwise.
    """
    s3_client = s3_client or get_s3_client()
    try:
        s3_client.head_object(Bucket=bucket_name, Key=object_key)
        return True
    except ClientError as err:
        if err.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
            return False
        raise


def generate_presigned_download_url(
    bucket_name: str,
    object_key: str,
    file_name: str,
    expires_in: int = DEFAULT_PRESIGNED_URL_EXPIRATION,
    s3_client: Optional["S3Client"] = None,
) -> str:
    """
    Presign a `get_object` request that downloads the object as an attachment.

    :param bucket_name: Name of the S3 bucket.
    :param object_key: Key of the object to download.
    :param file_name: Name offered to the browser in `Content-Disposition`.
    :param expires_in: Lifetime of the URL in seconds.
    :param s3_client: An optional boto3 S3 client. If not provided, one will be created.
    """
    s3_client = s3_client or get_s3_client()
    return s3_client.generate_presigned_url(
        "get_object",
        Params={
            "Bucket": bucket_name,
            "Key": object_key,
            "ResponseContentDisposition": attachment_disposition(file_name),
        },
        ExpiresIn=expires_in,
    )

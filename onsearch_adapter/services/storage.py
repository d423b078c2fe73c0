# =============================================================================
# On-Search Adapter - Object Storage Service
# =============================================================================
"""
S3-compatible object storage for raw payloads.

Talks to MinIO (or any S3 API) through boto3. The bucket is ensured once
at construction. Uploads return the object key rather than a URL, so the
pointer event does not depend on a backend's addressing scheme. Retries
are disabled: a failed upload is reported to the caller as-is.
"""

from functools import lru_cache
from typing import Any, Optional

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from ..config import Settings, get_settings
from ..errors import ErrorKind, StorageError
from ..models import PointerEvent


# Configure structured logger
logger = structlog.get_logger(__name__)

# Client error codes that mean the store cannot be reached or will not
# accept our credentials, as opposed to rejecting this particular write.
_UNAVAILABLE_CODES = frozenset({
    "AccessDenied",
    "ExpiredToken",
    "InvalidAccessKeyId",
    "InvalidToken",
    "ServiceUnavailable",
    "SignatureDoesNotMatch",
    "SlowDown",
})
_MISSING_BUCKET_CODES = frozenset({"404", "NoSuchBucket", "NotFound"})

_UNAVAILABLE_EXCEPTIONS = (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)


def create_s3_client(settings: Settings) -> Any:
    """
    Create a boto3 S3 client for the configured endpoint.

    Args:
        settings: Application settings with endpoint and credentials

    Returns:
        Boto3 S3 client.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.storage_access_key,
        aws_secret_access_key=settings.storage_secret_key,
        region_name=settings.storage_region,
    )
    return session.client(
        "s3",
        endpoint_url=settings.storage_endpoint_url,
        config=Config(
            connect_timeout=settings.storage_timeout_seconds,
            read_timeout=settings.storage_timeout_seconds,
            retries={"max_attempts": 1, "mode": "standard"},
            s3={"addressing_style": "path"},
        ),
    )


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def classify_storage_error(error: Exception) -> ErrorKind:
    """Map a boto3/botocore exception to a storage error kind."""
    if isinstance(error, _UNAVAILABLE_EXCEPTIONS):
        return ErrorKind.STORAGE_UNAVAILABLE
    if isinstance(error, ClientError) and _error_code(error) in _UNAVAILABLE_CODES:
        return ErrorKind.STORAGE_UNAVAILABLE
    return ErrorKind.STORAGE_WRITE_FAILED


class ObjectStore:
    """
    Object store client bound to one bucket.

    Safe to share between concurrent requests: boto3 clients are
    thread-safe and pool their own connections.

    Attributes:
        bucket: Bucket receiving payloads
        storage_kind: Backend label written into pointer events
        _client: Underlying boto3 S3 client
    """

    def __init__(self, client: Any, bucket: str, storage_kind: str = "minio") -> None:
        """
        Initialize the store and make sure the bucket exists.

        Args:
            client: Boto3 S3 client
            bucket: Bucket name
            storage_kind: Backend label for pointer events

        Raises:
            StorageError: If the bucket cannot be checked or created
        """
        self._client = client
        self._bucket = bucket
        self._storage_kind = storage_kind

        self.ensure_bucket(bucket)

        logger.info(
            "object_store_initialized",
            bucket=bucket,
            storage_kind=storage_kind,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def storage_kind(self) -> str:
        return self._storage_kind

    def ensure_bucket(self, name: str) -> None:
        """
        Create the bucket if it does not exist.

        Idempotent and safe to race with other processes: a bucket that
        appears between the existence check and the create call counts
        as success.
        """
        try:
            self._client.head_bucket(Bucket=name)
            return
        except ClientError as e:
            if _error_code(e) not in _MISSING_BUCKET_CODES:
                raise self._storage_error(e, "failed to check bucket", bucket=name) from e
        except BotoCoreError as e:
            raise self._storage_error(e, "failed to check bucket", bucket=name) from e

        try:
            self._client.create_bucket(Bucket=name)
            logger.info("bucket_created", bucket=name)
        except ClientError as e:
            if _error_code(e) != "BucketAlreadyOwnedByYou":
                raise self._storage_error(e, "failed to create bucket", bucket=name) from e
        except BotoCoreError as e:
            raise self._storage_error(e, "failed to create bucket", bucket=name) from e

    def upload(self, key: str, data: bytes, content_type: str = "application/json") -> str:
        """
        Store bytes under a key.

        Args:
            key: Object key
            data: Raw bytes
            content_type: MIME type recorded on the object

        Returns:
            str: The key the object was stored under (equal to ``key``)

        Raises:
            StorageError: STORAGE_UNAVAILABLE or STORAGE_WRITE_FAILED
        """
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentLength=len(data),
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._storage_error(e, "failed to upload object", bucket=self._bucket, key=key) from e

        logger.info(
            "object_uploaded",
            bucket=self._bucket,
            object_key=key,
            size_bytes=len(data),
        )
        return key

    def download(self, key: str, bucket: Optional[str] = None) -> bytes:
        """
        Read an object back.

        Args:
            key: Object key
            bucket: Bucket to read from (the configured bucket by default)

        Returns:
            bytes: Object contents
        """
        bucket = bucket or self._bucket
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise self._storage_error(e, "failed to read object", bucket=bucket, key=key) from e

    def resolve_pointer(self, event: PointerEvent) -> bytes:
        """Fetch the payload a pointer event refers to."""
        return self.download(event.object_key, bucket=event.bucket)

    def _storage_error(self, error: Exception, message: str, **fields: str) -> StorageError:
        kind = classify_storage_error(error)
        logger.error(
            "storage_operation_failed",
            error=str(error),
            error_type=type(error).__name__,
            kind=kind.value,
            **fields,
        )
        return StorageError(kind, message, str(error))


@lru_cache
def get_object_store() -> ObjectStore:
    """
    Get cached object store instance.

    Uses LRU cache to maintain a single client (and connection pool)
    across all requests.

    Returns:
        ObjectStore: Store bound to the configured bucket
    """
    settings = get_settings()
    return ObjectStore(
        client=create_s3_client(settings),
        bucket=settings.storage_bucket,
        storage_kind=settings.storage_kind,
    )

# =============================================================================
# On-Search Adapter - Pub/Sub Publisher Service
# =============================================================================
"""
Google Cloud Pub/Sub publisher service.

Publishes pointer events with an ordering key (the transaction id), so
all events of one transaction are delivered in order. Every publish waits
for the server acknowledgement within a bounded deadline; there is no
fire-and-forget path.
"""

import asyncio
import concurrent.futures
from functools import lru_cache
from typing import Dict, Optional

import structlog
from google.api_core import exceptions as gcp_exceptions
from google.cloud import pubsub_v1

from ..config import get_settings
from ..errors import ErrorKind, PublishError


# Configure structured logger
logger = structlog.get_logger(__name__)


class PubSubPublisher:
    """
    Async-compatible Pub/Sub publisher.

    Wraps the synchronous Google Cloud Pub/Sub client in an
    async-friendly interface suitable for FastAPI.

    Attributes:
        project_id: GCP project identifier
        timeout_seconds: Deadline for the server acknowledgement
        _publisher: Underlying synchronous publisher client
    """

    def __init__(
        self,
        project_id: str,
        timeout_seconds: float = 10.0,
        publisher: Optional[pubsub_v1.PublisherClient] = None,
    ) -> None:
        """
        Initialize the Pub/Sub publisher.

        Args:
            project_id: GCP project identifier
            timeout_seconds: Deadline for one acknowledged publish
            publisher: Pre-built client (created lazily when omitted)
        """
        self.project_id = project_id
        self.timeout_seconds = timeout_seconds
        self._publisher = publisher

        logger.info(
            "pubsub_publisher_initialized",
            project_id=project_id,
            timeout_seconds=timeout_seconds,
        )

    def _get_publisher(self) -> pubsub_v1.PublisherClient:
        """
        Lazily initialize the publisher client.

        Message ordering must be enabled on the client for ordering keys
        to be accepted.

        Returns:
            PublisherClient: Initialized Pub/Sub publisher
        """
        if self._publisher is None:
            self._publisher = pubsub_v1.PublisherClient(
                publisher_options=pubsub_v1.types.PublisherOptions(
                    enable_message_ordering=True,
                ),
            )
        return self._publisher

    def publish_sync(
        self,
        topic: str,
        key: str,
        value: bytes,
        attributes: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Publish one message and block until it is acknowledged.

        Args:
            topic: Topic name
            key: Ordering key
            value: Message body
            attributes: Optional message attributes for filtering

        Returns:
            str: The message ID assigned by Pub/Sub

        Raises:
            PublishError: PUBLISH_TIMEOUT if no acknowledgement arrives in
                time, PUBLISH_FAILED for any other failure
        """
        publisher = self._get_publisher()
        topic_path = publisher.topic_path(self.project_id, topic)

        try:
            future = publisher.publish(
                topic_path,
                data=value,
                ordering_key=key,
                **(attributes or {}),
            )
            message_id = future.result(timeout=self.timeout_seconds)

        except concurrent.futures.TimeoutError as e:
            self._resume(publisher, topic_path, key)
            logger.error(
                "pubsub_publish_timeout",
                topic_path=topic_path,
                ordering_key=key,
                timeout_seconds=self.timeout_seconds,
            )
            raise PublishError(
                ErrorKind.PUBLISH_TIMEOUT,
                "timed out waiting for publish acknowledgement",
                f"no acknowledgement within {self.timeout_seconds}s",
            ) from e

        except gcp_exceptions.NotFound as e:
            self._resume(publisher, topic_path, key)
            logger.error(
                "pubsub_topic_not_found",
                topic_path=topic_path,
                error=str(e),
            )
            raise PublishError(
                ErrorKind.PUBLISH_FAILED,
                f"Topic not found: {topic_path}",
                str(e),
            ) from e

        except gcp_exceptions.PermissionDenied as e:
            self._resume(publisher, topic_path, key)
            logger.error(
                "pubsub_permission_denied",
                topic_path=topic_path,
                error=str(e),
            )
            raise PublishError(
                ErrorKind.PUBLISH_FAILED,
                "Permission denied for Pub/Sub publish",
                str(e),
            ) from e

        except Exception as e:
            self._resume(publisher, topic_path, key)
            logger.error(
                "pubsub_publish_failed",
                topic_path=topic_path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PublishError(
                ErrorKind.PUBLISH_FAILED,
                "failed to publish message",
                str(e),
            ) from e

        logger.info(
            "message_published",
            message_id=message_id,
            topic_path=topic_path,
            ordering_key=key,
            size_bytes=len(value),
        )
        return message_id

    async def publish(
        self,
        topic: str,
        key: str,
        value: bytes,
        attributes: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Publish a message to Pub/Sub asynchronously.

        Runs the blocking publish-and-wait in a thread pool to avoid
        blocking the event loop.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self.publish_sync(topic, key, value, attributes),
        )

    def close(self) -> None:
        """Flush pending messages and stop the client, if one was created."""
        if self._publisher is not None:
            self._publisher.stop()
            logger.info("pubsub_publisher_stopped", project_id=self.project_id)

    @staticmethod
    def _resume(publisher: pubsub_v1.PublisherClient, topic_path: str, key: str) -> None:
        # a failed publish pauses its ordering key until resumed
        try:
            publisher.resume_publish(topic_path, key)
        except Exception as e:
            logger.warning(
                "pubsub_resume_failed",
                topic_path=topic_path,
                ordering_key=key,
                error=str(e),
            )


@lru_cache
def get_publisher() -> PubSubPublisher:
    """
    Get cached Pub/Sub publisher instance.

    Uses LRU cache to maintain a single publisher instance
    across all requests.

    Returns:
        PubSubPublisher: Configured publisher instance
    """
    settings = get_settings()
    return PubSubPublisher(
        project_id=settings.gcp_project_id,
        timeout_seconds=settings.publish_timeout_seconds,
    )

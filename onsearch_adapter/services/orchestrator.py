# =============================================================================
# On-Search Adapter - Ingestion Orchestrator
# =============================================================================
"""
on_search ingestion pipeline.

Runs one payload through:

    received -> context_extraction -> validation -> storage -> publish -> done

A pointer event is only built after the upload succeeded. When the
publish fails the stored object is left in place; nothing is rolled back.
Every failure leaves ``ingest`` as IngestionFailed carrying the stage that
was in progress.

Extraction and validation are CPU bound on large catalogs, so they run in
the default executor like the blocking storage and publish calls. All
four steps share the request deadline.
"""

import asyncio
from datetime import datetime, timezone, tzinfo
from functools import lru_cache, partial
from typing import Any, Awaitable, Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from ..config import get_settings
from ..errors import (
    AdapterError,
    ErrorKind,
    IngestionFailed,
    PublishError,
    Stage,
    StorageError,
)
from ..models import IngestionResult, PointerEvent, build_object_key
from .envelope import extract_context
from .pubsub import PubSubPublisher, get_publisher
from .registry import SchemaRegistry, get_schema_registry
from .storage import ObjectStore, get_object_store


logger = structlog.get_logger(__name__)

PAYLOAD_CONTENT_TYPE = "application/json"


def resolve_timezone(name: str) -> tzinfo:
    """
    Load an IANA timezone, falling back to UTC when it is unavailable.

    Args:
        name: Zone name, e.g. "Asia/Kolkata"

    Returns:
        tzinfo: The zone, or UTC
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning("timezone_fallback", timezone=name, fallback="UTC", error=str(e))
        return timezone.utc


def _deadline_exceeded() -> AdapterError:
    return AdapterError(
        ErrorKind.UNEXPECTED_INTERNAL_FAULT,
        "request deadline exceeded",
    )


class OnSearchIngestor:
    """
    Sequences extraction, validation, storage and publish for one payload.

    Holds no per-request state; one instance serves all requests.

    Attributes:
        topic: Pub/Sub topic receiving pointer events
        storage_timeout_seconds: Deadline for one upload
        publish_timeout_seconds: Deadline for one acknowledged publish
        request_timeout_seconds: Deadline for the whole pipeline
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        store: ObjectStore,
        publisher: PubSubPublisher,
        topic: str,
        timezone_name: str = "Asia/Kolkata",
        storage_timeout_seconds: float = 10.0,
        publish_timeout_seconds: float = 10.0,
        request_timeout_seconds: float = 30.0,
        clock: Optional[Callable[[tzinfo], datetime]] = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._publisher = publisher
        self.topic = topic
        self.storage_timeout_seconds = storage_timeout_seconds
        self.publish_timeout_seconds = publish_timeout_seconds
        self.request_timeout_seconds = request_timeout_seconds
        self._tz = resolve_timezone(timezone_name)
        self._clock = clock or datetime.now

    async def ingest(self, payload: bytes) -> IngestionResult:
        """
        Run the pipeline for one raw payload.

        This is the single recovery point: typed component errors are
        re-raised with their stage, anything unexpected becomes
        UNEXPECTED_INTERNAL_FAULT. Cancellation is not intercepted.

        Args:
            payload: Raw request body

        Returns:
            IngestionResult: Context, storage location and message id

        Raises:
            IngestionFailed: On any failure
        """
        log = logger.bind(payload_size=len(payload))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.request_timeout_seconds
        stage = Stage.RECEIVED

        try:
            if not payload:
                raise IngestionFailed(stage, ErrorKind.EMPTY_PAYLOAD, "request body is empty")

            stage = Stage.CONTEXT_EXTRACTION
            context = await self._call_with_deadline(
                loop.run_in_executor(None, extract_context, payload),
                timeout=self._remaining(deadline, self.request_timeout_seconds),
                on_timeout=_deadline_exceeded(),
            )
            log = log.bind(
                domain=context.domain,
                action=context.action,
                transaction_id=context.transaction_id,
                message_id=context.message_id,
            )
            log.info("context_extracted")

            stage = Stage.VALIDATION
            await self._call_with_deadline(
                loop.run_in_executor(
                    None,
                    partial(self._registry.validate, context.domain, context.action, payload),
                ),
                timeout=self._remaining(deadline, self.request_timeout_seconds),
                on_timeout=_deadline_exceeded(),
            )
            log.info("payload_validated", schema_key=context.schema_key)

            stage = Stage.STORAGE
            object_key = build_object_key(context, self._clock(self._tz))
            stored_key = await self._call_with_deadline(
                loop.run_in_executor(
                    None,
                    partial(self._store.upload, object_key, payload, PAYLOAD_CONTENT_TYPE),
                ),
                timeout=self._remaining(deadline, self.storage_timeout_seconds),
                on_timeout=StorageError(
                    ErrorKind.STORAGE_UNAVAILABLE,
                    "upload deadline exceeded",
                    object_key,
                ),
            )
            log = log.bind(bucket=self._store.bucket, object_key=stored_key)
            log.info("payload_stored")

            stage = Stage.PUBLISH
            pointer = PointerEvent(
                storage_kind=self._store.storage_kind,
                bucket=self._store.bucket,
                object_key=stored_key,
                domain=context.domain,
                action=context.action,
                transaction_id=context.transaction_id,
            )
            try:
                data = pointer.to_message_data()
            except (TypeError, ValueError) as e:
                raise IngestionFailed(
                    stage,
                    ErrorKind.SERIALIZATION_FAILED,
                    "failed to serialize on_search pointer",
                    str(e),
                ) from e

            message_id = await self._call_with_deadline(
                self._publisher.publish(
                    self.topic,
                    context.transaction_id,
                    data,
                    attributes={"domain": context.domain, "action": context.action},
                ),
                timeout=self._remaining(deadline, self.publish_timeout_seconds),
                on_timeout=PublishError(
                    ErrorKind.PUBLISH_TIMEOUT,
                    "timed out waiting for publish acknowledgement",
                    self.topic,
                ),
            )
            log.info("pointer_published", topic=self.topic, pubsub_message_id=message_id)

        except IngestionFailed as e:
            self._log_failure(log, e)
            raise

        except AdapterError as e:
            failure = IngestionFailed.from_error(stage, e)
            self._log_failure(log, failure)
            raise failure from e

        except Exception as e:
            failure = IngestionFailed(
                stage,
                ErrorKind.UNEXPECTED_INTERNAL_FAULT,
                "internal server error",
                f"{type(e).__name__}: {e}",
            )
            log.exception("ingestion_fault", stage=stage.value)
            raise failure from e

        log.info("ingestion_done", stage=Stage.DONE.value)
        return IngestionResult(
            context=context,
            bucket=self._store.bucket,
            object_key=stored_key,
            message_id=message_id,
        )

    @staticmethod
    def _remaining(deadline: float, step_timeout: float) -> float:
        left = deadline - asyncio.get_running_loop().time()
        return max(0.0, min(step_timeout, left))

    @staticmethod
    async def _call_with_deadline(
        call: Awaitable[Any],
        timeout: float,
        on_timeout: AdapterError,
    ) -> Any:
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError:
            raise on_timeout from None

    @staticmethod
    def _log_failure(log: Any, failure: IngestionFailed) -> None:
        fields = {
            "stage": failure.stage.value,
            "kind": failure.kind.value,
            "code": failure.kind.code,
            "error": failure.message,
            "detail": failure.detail,
        }
        if failure.kind.is_client_fault:
            log.warning("ingestion_rejected", **fields)
        else:
            log.error("ingestion_failed", **fields)


@lru_cache
def get_ingestor() -> OnSearchIngestor:
    """
    Get the process-wide ingestion orchestrator.

    Builds the registry, object store and publisher on first use.

    Returns:
        OnSearchIngestor: Configured orchestrator
    """
    settings = get_settings()
    return OnSearchIngestor(
        registry=get_schema_registry(),
        store=get_object_store(),
        publisher=get_publisher(),
        topic=settings.pubsub_topic,
        timezone_name=settings.object_key_timezone,
        storage_timeout_seconds=settings.storage_timeout_seconds,
        publish_timeout_seconds=settings.publish_timeout_seconds,
        request_timeout_seconds=settings.request_timeout_seconds,
    )

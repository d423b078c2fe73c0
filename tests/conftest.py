# =============================================================================
# On-Search Adapter - Shared Test Fixtures
# =============================================================================
"""
Fixtures shared by the test suite.

The object store runs against an in-memory stand-in for the boto3 S3
client, and the Pub/Sub client is a MagicMock whose futures resolve
immediately. Both append to a shared ``events`` list so tests can assert
the order of side effects.
"""

import copy
import io
import json
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from onsearch_adapter.services import (
    ObjectStore,
    OnSearchIngestor,
    PubSubPublisher,
    SchemaRegistry,
)


TOPIC = "ondc.on_search.pointer"
BUCKET = "ondc-payloads"


def client_error(code: str, operation: str = "PutObject") -> ClientError:
    """Build a botocore ClientError with the given error code."""
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class InMemoryS3Client:
    """Just enough of the boto3 S3 client for ObjectStore."""

    def __init__(self, events: list, existing_buckets=()) -> None:
        self.events = events
        self.buckets = {name: {} for name in existing_buckets}
        self.created = []

    def head_bucket(self, Bucket):
        if Bucket not in self.buckets:
            raise client_error("404", "HeadBucket")
        return {}

    def create_bucket(self, Bucket):
        self.created.append(Bucket)
        self.buckets.setdefault(Bucket, {})
        return {}

    def put_object(self, Bucket, Key, Body, ContentLength, ContentType):
        self.events.append(("upload", Key))
        self.buckets[Bucket][Key] = {
            "body": bytes(Body),
            "content_type": ContentType,
            "length": ContentLength,
        }
        return {"ETag": '"etag"'}

    def get_object(self, Bucket, Key):
        try:
            stored = self.buckets[Bucket][Key]
        except KeyError:
            raise client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(stored["body"])}


# =============================================================================
# Payloads
# =============================================================================

_RET11_ON_SEARCH = {
    "context": {
        "domain": "ONDC:RET11",
        "action": "on_search",
        "country": "IND",
        "city": "std:080",
        "core_version": "1.2.0",
        "bap_id": "buyer.example.com",
        "bap_uri": "https://buyer.example.com/ondc",
        "bpp_id": "seller.example.com",
        "bpp_uri": "https://seller.example.com/ondc",
        "transaction_id": "t1",
        "message_id": "m1",
        "timestamp": "2024-01-15T10:00:00.000Z",
        "ttl": "PT30S",
    },
    "message": {
        "catalog": {
            "bpp/fulfillments": [{"id": "1", "type": "Delivery"}],
            "bpp/descriptor": {"name": "Dosa Corner", "symbol": "https://seller.example.com/logo.png"},
            "bpp/providers": [
                {
                    "id": "P1",
                    "descriptor": {"name": "Dosa Corner Indiranagar"},
                    "locations": [{"id": "L1", "gps": "12.9716,77.5946"}],
                    "items": [
                        {
                            "id": "I1",
                            "descriptor": {"name": "Masala Dosa"},
                            "price": {"currency": "INR", "value": "120.00"},
                            "quantity": {"available": {"count": "99"}, "maximum": {"count": "5"}},
                            "category_id": "F&B",
                            "fulfillment_id": "1",
                            "location_id": "L1",
                            "@ondc/org/returnable": False,
                            "@ondc/org/cancellable": True,
                            "@ondc/org/available_on_cod": False,
                        }
                    ],
                }
            ],
        }
    },
}

_RET18_SEARCH = {
    "context": {
        "domain": "ONDC:RET18",
        "action": "search",
        "country": "IND",
        "city": "std:011",
        "core_version": "1.2.0",
        "bap_id": "buyer.example.com",
        "bap_uri": "https://buyer.example.com/ondc",
        "transaction_id": "t1",
        "message_id": "m1",
        "timestamp": "2024-01-15T10:00:00.000Z",
        "ttl": "PT30S",
    },
    "message": {
        "intent": {
            "item": {"descriptor": {"name": "vitamin c"}},
            "fulfillment": {
                "type": "Delivery",
                "end": {"location": {"gps": "28.6139,77.2090", "address": {"area_code": "110001"}}},
            },
            "payment": {
                "@ondc/org/buyer_app_finder_fee_type": "percent",
                "@ondc/org/buyer_app_finder_fee_amount": "3",
            },
        }
    },
}


@pytest.fixture
def ret11_on_search():
    """Factory for a valid RET11 on_search payload dict."""
    def _build(**context):
        payload = copy.deepcopy(_RET11_ON_SEARCH)
        payload["context"].update(context)
        return payload
    return _build


@pytest.fixture
def ret18_search():
    """Factory for a valid RET18 search payload dict."""
    def _build(**context):
        payload = copy.deepcopy(_RET18_SEARCH)
        payload["context"].update(context)
        return payload
    return _build


def encode(payload: dict) -> bytes:
    return json.dumps(payload).encode("utf-8")


# =============================================================================
# Pipeline Components
# =============================================================================

@pytest.fixture
def events():
    """Ordered log of side effects: ("upload", key) and ("publish", ordering_key)."""
    return []


@pytest.fixture
def s3_client(events):
    return InMemoryS3Client(events)


@pytest.fixture
def store(s3_client):
    return ObjectStore(s3_client, bucket=BUCKET, storage_kind="minio")


@pytest.fixture
def pubsub_client(events):
    """MagicMock Pub/Sub PublisherClient that acknowledges every publish."""
    client = MagicMock()
    client.topic_path.side_effect = lambda project, topic: f"projects/{project}/topics/{topic}"

    def _publish(topic_path, data, ordering_key, **attributes):
        events.append(("publish", ordering_key))
        future = MagicMock()
        future.result.return_value = f"msg-{len(events)}"
        return future

    client.publish.side_effect = _publish
    return client


@pytest.fixture
def publisher(pubsub_client):
    return PubSubPublisher("test-project", timeout_seconds=1.0, publisher=pubsub_client)


@pytest.fixture(scope="session")
def registry():
    return SchemaRegistry.from_package()


@pytest.fixture
def fixed_clock():
    return lambda tz: datetime(2024, 1, 15, 10, 0, 0, tzinfo=tz)


@pytest.fixture
def ingestor(registry, store, publisher, fixed_clock):
    return OnSearchIngestor(
        registry=registry,
        store=store,
        publisher=publisher,
        topic=TOPIC,
        clock=fixed_clock,
    )


def published_messages(pubsub_client) -> list:
    """Message bodies handed to the Pub/Sub client, in order."""
    return [call.kwargs["data"] for call in pubsub_client.publish.call_args_list]

# src/claimcheck_e2e/envelopes.py

"""
Message shapes that travel through the topic and queues.

An SQS body delivered from SNS (raw delivery disabled) is an outer wrapper
whose ``Message`` field holds the published text. That text is either a
CloudEvent (structured JSON mode) carrying the claim-check data, or an S3
event notification with a ``Records`` list. The two are told apart by
structure, never by a type field.
"""

import enum
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, NamedTuple, Optional, TypedDict, Union
from urllib.parse import quote_plus, unquote_plus

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .exceptions import EnvelopeError

logger = logging.getLogger(__name__)

EVENT_SOURCE = "hhh.com/publisher"
EVENT_TYPE = "HIPAA.Record"
EVENT_SENDER = "Honolulu Hula Hospitals"


class EnvelopeShape(str, enum.Enum):
    EVENT = "event"
    STORAGE_NOTIFICATION = "storage_notification"


class Locator(NamedTuple):
    bucket: str
    key: str

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


# --- Static Type Hinting (for mypy and IDEs) ---


class S3BucketDict(TypedDict):
    name: str


class S3ObjectDict(TypedDict, total=False):
    key: str
    size: int
    eTag: str


class S3DataDict(TypedDict):
    bucket: S3BucketDict
    object: S3ObjectDict


class S3EventRecord(TypedDict, total=False):
    eventVersion: str
    eventSource: str
    eventTime: str
    eventName: str
    s3: S3DataDict


# --- Runtime Validation (using Pydantic) ---


class SnsWrapper(BaseModel):
    """The SNS envelope; only the published text matters here."""

    model_config = ConfigDict(extra="ignore")

    message: str = Field(..., alias="Message")


class ClaimCheckData(BaseModel):
    model_config = ConfigDict(extra="allow")

    key: str = Field(..., min_length=1)
    md5sum: str = Field(..., min_length=1)
    sender: Optional[str] = None


class CloudEvent(BaseModel):
    """A CloudEvents 1.0 event in structured JSON mode."""

    model_config = ConfigDict(extra="allow")

    specversion: str = "1.0"
    id: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    datacontenttype: Optional[str] = "application/json"
    time: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)

    def claim_check(self) -> ClaimCheckData:
        return ClaimCheckData.model_validate(self.data)


class S3BucketModel(BaseModel):
    name: str = Field(..., min_length=1)


class S3ObjectModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str = Field(..., min_length=1)
    size: Optional[int] = None


class S3DataModel(BaseModel):
    bucket: S3BucketModel
    object: S3ObjectModel


class S3EventNotificationRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    s3: S3DataModel


class S3EventNotification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    records: list[S3EventNotificationRecord] = Field(..., alias="Records", min_length=1)


# --- Tagged union of the two inner shapes ---


@dataclass(frozen=True)
class EventNotification:
    event: CloudEvent
    shape = EnvelopeShape.EVENT

    def locator(self, default_bucket: str) -> Locator:
        # The event names the key only; the bucket is implied by the stack.
        return Locator(default_bucket, self.event.claim_check().key)

    @property
    def digest(self) -> Optional[str]:
        return self.event.claim_check().md5sum


@dataclass(frozen=True)
class StorageNotification:
    notification: S3EventNotification
    shape = EnvelopeShape.STORAGE_NOTIFICATION

    def locator(self, default_bucket: Optional[str] = None) -> Locator:
        first = self.notification.records[0].s3
        # S3 URL-encodes object keys in event notifications.
        return Locator(first.bucket.name, unquote_plus(first.object.key))

    @property
    def digest(self) -> Optional[str]:
        return None


ParsedNotification = Union[EventNotification, StorageNotification]


def unwrap_message(body: str) -> str:
    """Parses the outer SNS wrapper and returns the published text."""
    try:
        return SnsWrapper.model_validate_json(body).message
    except pydantic.ValidationError as e:
        raise EnvelopeError(
            f"Message body is not an SNS wrapper: {e}",
            context={"body_preview": body[:200]},
        ) from e


def parse_inner(text: str) -> ParsedNotification:
    """Parses the published text and selects the variant by its structure."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise EnvelopeError(
            f"Published message is not JSON: {e}",
            context={"message_preview": text[:200]},
        ) from e

    if not isinstance(document, dict):
        raise EnvelopeError(f"Published message must be a JSON object, got {type(document).__name__}")

    try:
        if "Records" in document:
            return StorageNotification(S3EventNotification.model_validate(document))
        event = CloudEvent.model_validate(document)
        event.claim_check()
        return EventNotification(event)
    except pydantic.ValidationError as e:
        raise EnvelopeError(
            f"Published message does not match a known shape: {e}",
            context={"keys": sorted(document)},
        ) from e


def parse_notification(body: str) -> ParsedNotification:
    """Unwraps an SQS body twice: SNS wrapper, then the inner document."""
    return parse_inner(unwrap_message(body))


# --- Builders for the messages the drivers publish ---


def build_event(key: str, digest: str, sender: str = EVENT_SENDER) -> CloudEvent:
    """The claim-check event: id is the object key, data carries key and digest."""
    return CloudEvent(
        id=key,
        source=EVENT_SOURCE,
        type=EVENT_TYPE,
        time=datetime.now(timezone.utc).isoformat(),
        data={"sender": sender, "key": key, "md5sum": digest},
    )


def build_storage_notification(bucket: str, key: str, size: int, etag: Optional[str] = None) -> dict:
    """An S3 ObjectCreated:Put notification document for *bucket*/*key*."""
    s3_object: S3ObjectDict = {"key": quote_plus(key, safe="/"), "size": size}
    if etag:
        s3_object["eTag"] = etag.strip('"')
    record: S3EventRecord = {
        "eventVersion": "2.1",
        "eventSource": "aws:s3",
        "eventTime": datetime.now(timezone.utc).isoformat(),
        "eventName": "ObjectCreated:Put",
        "s3": {"bucket": {"name": bucket}, "object": s3_object},
    }
    return {"Records": [record]}


def new_poison_message() -> str:
    return f"dlq-test-{uuid.uuid4()}"

# src/claimcheck_e2e/pipeline.py

"""
The happy-path claim-check round trip.

Upload a large payload, publish a lightweight reference to it, receive the
reference from the work queue, follow it back to storage and prove the bytes
that come back are the bytes that went in:

    IDLE -> UPLOADED -> PUBLISHED -> NOTIFICATION_RECEIVED -> UNWRAPPED
         -> DOWNLOADED -> VERIFIED
"""

import enum
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .clients import AwsClients, ReceivedMessage
from .envelopes import (
    EnvelopeShape,
    EventNotification,
    Locator,
    ParsedNotification,
    build_event,
    build_storage_notification,
    parse_notification,
)
from .exceptions import (
    ContentMismatchError,
    DigestMismatchError,
    LocatorMismatchError,
    MessageNotReceivedError,
)
from .fixture import ResourceFixture
from .payload import Payload, compute_digest

logger = logging.getLogger(__name__)


class PipelineState(str, enum.Enum):
    IDLE = "IDLE"
    UPLOADED = "UPLOADED"
    PUBLISHED = "PUBLISHED"
    NOTIFICATION_RECEIVED = "NOTIFICATION_RECEIVED"
    UNWRAPPED = "UNWRAPPED"
    DOWNLOADED = "DOWNLOADED"
    VERIFIED = "VERIFIED"


@dataclass
class PipelineRun:
    """What one round trip did, for logging and the final report."""

    shape: EnvelopeShape
    payload_size: int
    expected_digest: str
    key: Optional[str] = None
    etag: Optional[str] = None
    published_message_id: Optional[str] = None
    received_message_id: Optional[str] = None
    locator: Optional[Locator] = None
    downloaded_digest: Optional[str] = None
    state: PipelineState = PipelineState.IDLE
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])

    def advance(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug("Pipeline state", extra={"key": self.key, "state": state.value})

    @property
    def verified(self) -> bool:
        return self.state is PipelineState.VERIFIED


class PipelineDriver:
    """Drives one payload through storage, topic and queue and back."""

    def __init__(
        self,
        clients: AwsClients,
        fixture: ResourceFixture,
        receive_wait_seconds: int = 20,
        receive_timeout_seconds: float = 30,
        sleep: Callable[[float], Any] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.clients = clients
        self.fixture = fixture
        self.receive_wait_seconds = receive_wait_seconds
        self.receive_timeout_seconds = receive_timeout_seconds
        self._sleep = sleep
        self._clock = clock
        self.last_run: Optional[PipelineRun] = None

    def run(self, payload: Payload, shape: EnvelopeShape = EnvelopeShape.EVENT) -> PipelineRun:
        """
        Executes the full round trip. Raises a VerificationError subclass on
        any mismatch; `run.state` shows how far it got.
        """
        run = PipelineRun(shape=shape, payload_size=payload.size, expected_digest=payload.digest)
        self.last_run = run

        self._upload(run, payload)
        sent_event = self._publish(run)
        message = self._receive(run)
        parsed = self._unwrap_and_acknowledge(run, message)
        self._check_envelope(run, parsed, sent_event)
        self._download_and_verify(run)
        return run

    # --- steps ---

    def _upload(self, run: PipelineRun, payload: Payload) -> None:
        run.key = str(uuid.uuid4())
        with payload.open() as body:
            run.etag = self.clients.store.put_object(self.fixture.bucket, run.key, body)
        run.advance(PipelineState.UPLOADED)

    def _publish(self, run: PipelineRun):
        sent_event = None
        if run.shape is EnvelopeShape.EVENT:
            sent_event = build_event(run.key, run.expected_digest)
            message = sent_event.model_dump_json(exclude_none=True)
        else:
            message = json.dumps(
                build_storage_notification(
                    self.fixture.bucket, run.key, run.payload_size, etag=run.etag
                )
            )
        run.published_message_id = self.clients.topic.publish(self.fixture.topic_arn, message)
        run.advance(PipelineState.PUBLISHED)
        return sent_event

    def _receive(self, run: PipelineRun) -> ReceivedMessage:
        message = self.clients.queue.receive_within(
            self.fixture.queue_url,
            timeout_seconds=self.receive_timeout_seconds,
            wait_seconds=self.receive_wait_seconds,
            sleep=self._sleep,
            clock=self._clock,
        )
        if message is None:
            raise MessageNotReceivedError(
                self.fixture.queue_url,
                self.receive_timeout_seconds,
                context={"key": run.key},
            )
        run.received_message_id = message.message_id
        logger.info(
            "SQS ReceiveMessage",
            extra={"message_id": message.message_id, "receive_count": message.receive_count},
        )
        run.advance(PipelineState.NOTIFICATION_RECEIVED)
        return message

    def _unwrap_and_acknowledge(self, run: PipelineRun, message: ReceivedMessage) -> ParsedNotification:
        parsed = parse_notification(message.body)
        # Delete straight away so a redelivery cannot leak into later phases.
        self.clients.queue.delete(self.fixture.queue_url, message.receipt_handle)
        run.advance(PipelineState.UNWRAPPED)
        return parsed

    def _check_envelope(self, run: PipelineRun, parsed: ParsedNotification, sent_event) -> None:
        if parsed.shape is not run.shape:
            raise ContentMismatchError("envelope shape", run.shape.value, parsed.shape.value)

        if isinstance(parsed, EventNotification):
            received = parsed.event
            for attr in ("id", "type", "source"):
                if getattr(received, attr) != getattr(sent_event, attr):
                    raise ContentMismatchError(
                        f"event {attr}", getattr(sent_event, attr), getattr(received, attr)
                    )
            if parsed.digest != run.expected_digest:
                raise ContentMismatchError("event md5sum", run.expected_digest, parsed.digest)

        run.locator = parsed.locator(self.fixture.bucket)
        expected = Locator(self.fixture.bucket, run.key)
        if run.locator != expected:
            raise LocatorMismatchError(tuple(expected), tuple(run.locator))

    def _download_and_verify(self, run: PipelineRun) -> None:
        body = self.clients.store.get_object_stream(run.locator.bucket, run.locator.key)
        try:
            run.downloaded_digest = compute_digest(body)
        finally:
            body.close()
        run.advance(PipelineState.DOWNLOADED)

        if run.downloaded_digest != run.expected_digest:
            raise DigestMismatchError(
                run.locator.bucket, run.locator.key, run.expected_digest, run.downloaded_digest
            )
        logger.info(
            "Payload verified",
            extra={"key": run.key, "digest": run.downloaded_digest, "size": run.payload_size},
        )
        run.advance(PipelineState.VERIFIED)

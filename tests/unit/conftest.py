"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import io
import json
from unittest.mock import MagicMock

import pytest

from claimcheck_e2e.clients import AwsClients, ObjectStore, ReceivedMessage, Topic, WorkQueue
from claimcheck_e2e.fixture import ResourceFixture


class FakeClock:
    """A monotonic clock that only moves when something sleeps on it."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stack_output() -> dict:
    """The object the stack exposes under its `claimcheck` output."""
    return {
        "claimcheck_s3": {
            "name": "claimcheck-test-bucket",
            "arn": "arn:aws:s3:::claimcheck-test-bucket",
        },
        "claimcheck_sqs": {
            "url": "https://sqs.us-east-1.amazonaws.com/000000000000/claimcheck-test",
            "arn": "arn:aws:sqs:us-east-1:000000000000:claimcheck-test",
            "name": "claimcheck-test",
        },
        "claimcheck_sqs_dlq": {
            "url": "https://sqs.us-east-1.amazonaws.com/000000000000/claimcheck-test-dlq",
            "arn": "arn:aws:sqs:us-east-1:000000000000:claimcheck-test-dlq",
            "name": "claimcheck-test-dlq",
        },
        "claimcheck_sns": {
            "arn": "arn:aws:sns:us-east-1:000000000000:claimcheck-test",
            "topic": "claimcheck-test",
        },
        "claimcheck_kms": {"arn": "arn:aws:kms:us-east-1:000000000000:key/abc", "id": "abc"},
    }


@pytest.fixture
def tofu_output_json(stack_output: dict) -> str:
    """What `tofu output -json claimcheck` prints."""
    return json.dumps({"value": stack_output, "type": ["object", {}], "sensitive": False})


@pytest.fixture
def resource_fixture() -> ResourceFixture:
    return ResourceFixture(
        bucket="claimcheck-test-bucket",
        queue_url="https://sqs.us-east-1.amazonaws.com/000000000000/claimcheck-test",
        queue_arn="arn:aws:sqs:us-east-1:000000000000:claimcheck-test",
        dlq_url="https://sqs.us-east-1.amazonaws.com/000000000000/claimcheck-test-dlq",
        dlq_arn="arn:aws:sqs:us-east-1:000000000000:claimcheck-test-dlq",
        topic_arn="arn:aws:sns:us-east-1:000000000000:claimcheck-test",
    )


@pytest.fixture
def mock_clients() -> AwsClients:
    """AwsClients whose wrappers are spec'd MagicMocks."""
    return AwsClients(
        store=MagicMock(spec=ObjectStore),
        topic=MagicMock(spec=Topic),
        queue=MagicMock(spec=WorkQueue),
        region="us-east-1",
    )


@pytest.fixture
def sns_body():
    """Wraps text the way SNS delivers it to SQS with raw delivery disabled."""

    def _wrap(message: str) -> str:
        return json.dumps(
            {
                "Type": "Notification",
                "MessageId": "sns-msg-1",
                "TopicArn": "arn:aws:sns:us-east-1:000000000000:claimcheck-test",
                "Message": message,
                "Timestamp": "2024-01-01T00:00:00.000Z",
            }
        )

    return _wrap


class FakeStack:
    """
    Wires MagicMock wrappers into a tiny in-memory claim-check stack: put
    stores bytes, publish enqueues an SNS-wrapped body, receive_within pops
    it. `rewrite` lets a test tamper with a message in flight.
    """

    def __init__(self, clients: AwsClients, wrap):
        self.objects: dict = {}
        self.inbox: list = []
        self.clients = clients
        self.wrap = wrap
        self.rewrite = None

        clients.store.put_object.side_effect = self._put
        clients.store.get_object_stream.side_effect = lambda bucket, key: io.BytesIO(self.objects[(bucket, key)])
        clients.topic.publish.side_effect = self._publish
        clients.queue.receive_within.side_effect = self._receive

    def _put(self, bucket, key, body):
        self.objects[(bucket, key)] = body.read()
        return '"etag"'

    def _publish(self, topic_arn, message):
        if self.rewrite:
            message = self.rewrite(message)
        self.inbox.append(self.wrap(message))
        return f"sns-{len(self.inbox)}"

    def _receive(self, queue_url, **kwargs):
        if not self.inbox:
            return None
        return ReceivedMessage(message_id="sqs-1", receipt_handle="rh-1", body=self.inbox.pop(0), receive_count=1)


@pytest.fixture
def stack(mock_clients, sns_body) -> FakeStack:
    return FakeStack(mock_clients, sns_body)

# src/claimcheck_e2e/clients.py

"""
Client wrappers for the AWS services the harness drives (S3, SNS and SQS).

These classes provide a small, typed interface over raw boto3 clients so the
drivers read as a sequence of domain steps. Every botocore ClientError is
translated into an AwsOperationError that carries the AWS error code.
"""

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, BinaryIO, Callable, Iterator, List, Optional, cast

import boto3
from botocore.client import Config as BotocoreConfig
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from .exceptions import AwsOperationError
from .polling import poll_until

if TYPE_CHECKING:
    from mypy_boto3_s3.client import S3Client as S3ClientType
    from mypy_boto3_sns.client import SNSClient as SNSClientType
    from mypy_boto3_sqs.client import SQSClient as SQSClientType

logger = logging.getLogger(__name__)

PURGE_IN_PROGRESS_CODES = (
    "AWS.SimpleQueueService.PurgeQueueInProgress",
    "PurgeQueueInProgress",
)


def _translate(operation: str, error: Exception, **context: Any) -> AwsOperationError:
    if isinstance(error, ClientError):
        return AwsOperationError(
            operation,
            error.response["Error"].get("Code", "Unknown"),
            error.response["Error"].get("Message", str(error)),
            context=context,
        )
    return AwsOperationError(operation, error.__class__.__name__, str(error), context=context)


@dataclass(frozen=True)
class ReceivedMessage:
    """One delivery attempt returned by ReceiveMessage."""

    message_id: str
    receipt_handle: str
    body: str
    receive_count: Optional[int] = None

    @classmethod
    def from_response(cls, raw: dict) -> "ReceivedMessage":
        count = raw.get("Attributes", {}).get("ApproximateReceiveCount")
        return cls(
            message_id=raw["MessageId"],
            receipt_handle=raw["ReceiptHandle"],
            body=raw["Body"],
            receive_count=int(count) if count is not None else None,
        )


@dataclass(frozen=True)
class Subscription:
    subscription_arn: str
    endpoint: str
    protocol: str

    @property
    def pending(self) -> bool:
        return self.subscription_arn == "PendingConfirmation"


class ObjectStore:
    """S3 operations used by the pipeline driver."""

    def __init__(self, s3_client: "S3ClientType"):
        self._client = s3_client

    def put_object(self, bucket: str, key: str, body: BinaryIO) -> str:
        """Uploads *body* in a single PUT and returns the object's ETag."""
        try:
            response = self._client.put_object(Bucket=bucket, Key=key, Body=body)
        except (ClientError, ReadTimeoutError, EndpointConnectionError) as e:
            raise _translate("s3:PutObject", e, bucket=bucket, key=key) from e
        etag = response["ETag"]
        logger.info("S3 PutObject", extra={"bucket": bucket, "key": key, "etag": etag})
        return etag

    def get_object_stream(self, bucket: str, key: str) -> BinaryIO:
        """Retrieves an S3 object's body as a file-like streaming object."""
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
        except (ClientError, ReadTimeoutError, EndpointConnectionError) as e:
            raise _translate("s3:GetObject", e, bucket=bucket, key=key) from e
        logger.info(
            "S3 GetObject",
            extra={"bucket": bucket, "key": key, "etag": response.get("ETag")},
        )
        return cast(BinaryIO, response["Body"])

    def delete_object(self, bucket: str, key: str) -> None:
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except ClientError as e:
            raise _translate("s3:DeleteObject", e, bucket=bucket, key=key) from e

    def head_bucket(self, bucket: str) -> None:
        self._client.head_bucket(Bucket=bucket)


class Topic:
    """SNS operations: publish and subscription inspection."""

    def __init__(self, sns_client: "SNSClientType"):
        self._client = sns_client

    def publish(self, topic_arn: str, message: str) -> str:
        try:
            response = self._client.publish(TopicArn=topic_arn, Message=message)
        except ClientError as e:
            raise _translate("sns:Publish", e, topic_arn=topic_arn) from e
        message_id = response["MessageId"]
        logger.info("SNS Publish", extra={"topic_arn": topic_arn, "message_id": message_id})
        return message_id

    def list_subscriptions(self, topic_arn: str) -> Iterator[Subscription]:
        """Yields every subscription of *topic_arn*, following pagination."""
        paginator = self._client.get_paginator("list_subscriptions_by_topic")
        try:
            for page in paginator.paginate(TopicArn=topic_arn):
                for sub in page.get("Subscriptions", []):
                    yield Subscription(
                        subscription_arn=sub["SubscriptionArn"],
                        endpoint=sub.get("Endpoint", ""),
                        protocol=sub.get("Protocol", ""),
                    )
        except ClientError as e:
            raise _translate("sns:ListSubscriptionsByTopic", e, topic_arn=topic_arn) from e

    def get_attributes(self, topic_arn: str) -> dict:
        return self._client.get_topic_attributes(TopicArn=topic_arn)["Attributes"]


class WorkQueue:
    """SQS operations: receive, delete and purge."""

    def __init__(self, sqs_client: "SQSClientType"):
        self._client = sqs_client

    def receive(
        self, queue_url: str, max_messages: int = 1, wait_seconds: int = 20
    ) -> List[ReceivedMessage]:
        """Long-polls *queue_url* once and returns zero or more messages."""
        try:
            response = self._client.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_seconds,
                AttributeNames=["ApproximateReceiveCount"],
            )
        except (ClientError, ReadTimeoutError, EndpointConnectionError) as e:
            raise _translate("sqs:ReceiveMessage", e, queue_url=queue_url) from e
        messages = [ReceivedMessage.from_response(m) for m in response.get("Messages", [])]
        logger.debug(
            "SQS ReceiveMessage",
            extra={
                "queue_url": queue_url,
                "count": len(messages),
                "message_ids": [m.message_id for m in messages],
            },
        )
        return messages

    def receive_within(
        self,
        queue_url: str,
        timeout_seconds: float,
        wait_seconds: int = 20,
        sleep: Callable[[float], Any] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> Optional[ReceivedMessage]:
        """
        Repeats single-message long polls until one message arrives or
        *timeout_seconds* have elapsed. Returns None on timeout.
        """
        result = poll_until(
            lambda: self.receive(queue_url, max_messages=1, wait_seconds=wait_seconds),
            interval=1,
            timeout=timeout_seconds,
            description=f"message on {queue_url}",
            sleep=sleep,
            clock=clock,
        )
        return result.value[0] if result.succeeded else None

    def delete(self, queue_url: str, receipt_handle: str) -> None:
        try:
            self._client.delete_message(QueueUrl=queue_url, ReceiptHandle=receipt_handle)
        except ClientError as e:
            raise _translate("sqs:DeleteMessage", e, queue_url=queue_url) from e

    def purge(self, queue_url: str) -> None:
        try:
            self._client.purge_queue(QueueUrl=queue_url)
        except ClientError as e:
            raise _translate("sqs:PurgeQueue", e, queue_url=queue_url) from e

    def get_attributes(self, queue_url: str, names: Optional[List[str]] = None) -> dict:
        response = self._client.get_queue_attributes(
            QueueUrl=queue_url, AttributeNames=names or ["All"]
        )
        return response.get("Attributes", {})


@dataclass(frozen=True)
class AwsClients:
    """The three wrappers the drivers need, built from one boto3 session."""

    store: ObjectStore
    topic: Topic
    queue: WorkQueue
    region: Optional[str] = None


def create_clients(region: Optional[str] = None, session: Optional[boto3.Session] = None) -> AwsClients:
    """
    Creates wrapped S3/SNS/SQS clients using boto3's default credential
    resolution. A longer read timeout keeps 20s long polls from tripping the
    client-side socket timeout.
    """
    session = session or boto3.Session(region_name=region)
    client_config = BotocoreConfig(
        read_timeout=60, connect_timeout=10, retries={"max_attempts": 3, "mode": "standard"}
    )
    return AwsClients(
        store=ObjectStore(session.client("s3", config=client_config)),
        topic=Topic(session.client("sns", config=client_config)),
        queue=WorkQueue(session.client("sqs", config=client_config)),
        region=session.region_name,
    )

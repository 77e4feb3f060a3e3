"""
In-process S3 + SNS + SQS claim-check stack built on moto.

Mirrors the reference stack: a bucket, a work queue with a redrive policy
(maxReceiveCount 1, 1 second visibility timeout) onto a dead-letter queue,
and a topic subscribed to the work queue with raw delivery disabled.
"""

import json

import boto3
import pytest
from moto import mock_aws

from claimcheck_e2e.clients import create_clients
from claimcheck_e2e.fixture import ResourceFixture, load_fixture

REGION = "us-east-1"


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Keeps boto3 away from any real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)


@pytest.fixture
def stack_output():
    """
    Creates the stack inside mock_aws and yields the object its
    `claimcheck` output would hold.
    """
    with mock_aws():
        s3 = boto3.client("s3", region_name=REGION)
        sqs = boto3.client("sqs", region_name=REGION)
        sns = boto3.client("sns", region_name=REGION)

        bucket = "claimcheck-it-bucket"
        s3.create_bucket(Bucket=bucket)

        dlq_url = sqs.create_queue(QueueName="claimcheck-it-dlq")["QueueUrl"]
        dlq_arn = sqs.get_queue_attributes(QueueUrl=dlq_url, AttributeNames=["QueueArn"])["Attributes"]["QueueArn"]

        queue_url = sqs.create_queue(
            QueueName="claimcheck-it",
            Attributes={
                "VisibilityTimeout": "1",
                "RedrivePolicy": json.dumps({"deadLetterTargetArn": dlq_arn, "maxReceiveCount": 1}),
            },
        )["QueueUrl"]
        queue_arn = sqs.get_queue_attributes(QueueUrl=queue_url, AttributeNames=["QueueArn"])["Attributes"]["QueueArn"]

        topic_arn = sns.create_topic(Name="claimcheck-it")["TopicArn"]
        sns.subscribe(TopicArn=topic_arn, Protocol="sqs", Endpoint=queue_arn)

        yield {
            "claimcheck_s3": {"name": bucket},
            "claimcheck_sqs": {"url": queue_url, "arn": queue_arn, "name": "claimcheck-it"},
            "claimcheck_sqs_dlq": {"url": dlq_url, "arn": dlq_arn, "name": "claimcheck-it-dlq"},
            "claimcheck_sns": {"arn": topic_arn, "topic": "claimcheck-it"},
        }


@pytest.fixture
def resource_fixture(stack_output) -> ResourceFixture:
    return load_fixture(stack_output)


@pytest.fixture
def aws_clients(stack_output):
    return create_clients(session=boto3.Session(region_name=REGION))

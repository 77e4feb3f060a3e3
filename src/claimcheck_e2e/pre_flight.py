import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError, NoCredentialsError, NoRegionError
from rich.console import Console
from rich.panel import Panel

from .clients import AwsClients
from .exceptions import AwsOperationError, ConfigurationError
from .fixture import ResourceFixture

logger = logging.getLogger(__name__)

CREDENTIALS_HELP = (
    "AWS credentials not found. Please configure them using one of the following methods:\n"
    "  1. Environment variables (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY)\n"
    "  2. A shared credentials file (~/.aws/credentials) with a profile.\n"
    "  3. An IAM role attached to the EC2 instance or ECS task."
)

REGION_HELP = (
    "An AWS region was not specified. Please configure it using one of the following methods:\n"
    "  1. The --aws-region command-line flag.\n"
    "  2. The 'aws_region' key in your JSON config file.\n"
    "  3. The AWS_REGION or AWS_DEFAULT_REGION environment variables.\n"
    "  4. The 'region' setting in your ~/.aws/config file."
)


def _fail(console: Console, message: str, title: str) -> None:
    console.print("\n[bold red]❌ PRE-FLIGHT CHECK FAILED[/bold red]\n")
    console.print(Panel(message, title=title, border_style="red"))


def verify_credentials(console: Console, region: Optional[str] = None) -> str:
    """
    Confirms credentials and a region resolve before anything is provisioned.
    Returns the caller's account id.
    """
    console.print("\n--- [bold blue]Pre-flight Checks[/bold blue] ---")
    try:
        session = boto3.Session(region_name=region)
        if not session.region_name:
            raise NoRegionError()
        identity = session.client("sts").get_caller_identity()
    except NoCredentialsError as e:
        _fail(console, CREDENTIALS_HELP, "Authentication Error")
        raise ConfigurationError("AWS credentials not found") from e
    except NoRegionError as e:
        _fail(console, REGION_HELP, "Configuration Error")
        raise ConfigurationError("AWS region not configured") from e
    except ClientError as e:
        _fail(console, f"An unexpected AWS API error occurred: {e}", "AWS API Error")
        raise AwsOperationError(
            "sts:GetCallerIdentity", e.response["Error"]["Code"], e.response["Error"]["Message"]
        ) from e

    console.log(
        f"[green]✓[/green] Credentials resolved for account '{identity['Account']}' "
        f"in region '{session.region_name}'."
    )
    return identity["Account"]


def verify_stack_access(console: Console, clients: AwsClients, fixture: ResourceFixture) -> None:
    """Checks that every resource named by the fixture exists and is reachable."""
    try:
        clients.store.head_bucket(fixture.bucket)
        console.log(f"[green]✓[/green] Access confirmed for S3 bucket: '{fixture.bucket}'")

        for url in (fixture.queue_url, fixture.dlq_url):
            clients.queue.get_attributes(url, ["QueueArn"])
            console.log(f"[green]✓[/green] Access confirmed for SQS queue: '{url}'")

        clients.topic.get_attributes(fixture.topic_arn)
        console.log(f"[green]✓[/green] Access confirmed for SNS topic: '{fixture.topic_arn}'")

    except ClientError as e:
        error_code = e.response["Error"]["Code"]
        if error_code in ("404", "NoSuchBucket"):
            error_message = f"S3 bucket '{fixture.bucket}' does not exist. Was the stack applied?"
        elif error_code in ("403", "AccessDenied", "AuthorizationError"):
            error_message = "Access Denied when trying to access an AWS resource. Please check your IAM permissions."
        elif error_code in ("AWS.SimpleQueueService.NonExistentQueue", "QueueDoesNotExist"):
            error_message = "An SQS queue named in the stack output does not exist."
        elif error_code == "NotFound":
            error_message = f"SNS topic not found: '{fixture.topic_arn}'."
        else:
            error_message = f"An unexpected AWS API error occurred: {e}"
        _fail(console, error_message, "AWS API Error")
        raise AwsOperationError(
            e.operation_name, error_code, e.response["Error"].get("Message", "")
        ) from e

    console.print("[bold green]✅ Pre-flight checks passed.[/bold green]")

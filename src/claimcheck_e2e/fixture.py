# src/claimcheck_e2e/fixture.py

"""
Typed view of the provisioning output document.

The stack exposes a single output (``claimcheck`` by default) whose value is
an object with one nested object per resource. ``tofu output -json`` wraps
every output as ``{"value": ..., "type": ..., "sensitive": ...}``; the loader
accepts that form, the top-level-keyed form and the bare value.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .exceptions import FixtureError

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_KEY = "claimcheck"


# --- Raw output schema (matches the stack's output object) ---


class _Output(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class BucketOutput(_Output):
    name: str = Field(..., min_length=1)
    arn: Optional[str] = None


class QueueOutput(_Output):
    url: str = Field(..., min_length=1)
    arn: str = Field(..., min_length=1)
    name: Optional[str] = None


class TopicOutput(_Output):
    arn: str = Field(..., min_length=1)
    topic: Optional[str] = None


class KmsOutput(_Output):
    arn: Optional[str] = None
    id: Optional[str] = None


class StackOutput(_Output):
    claimcheck_s3: BucketOutput
    claimcheck_sqs: QueueOutput
    claimcheck_sqs_dlq: QueueOutput
    claimcheck_sns: TopicOutput
    claimcheck_kms: Optional[KmsOutput] = None


# --- The fixture handed to the drivers ---


class ResourceFixture(BaseModel):
    """Immutable identifiers of the live resources under test."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    queue_url: str
    queue_arn: str
    dlq_url: str
    dlq_arn: str
    topic_arn: str
    queue_name: Optional[str] = None
    dlq_name: Optional[str] = None
    topic_name: Optional[str] = None
    kms_key_arn: Optional[str] = None

    @classmethod
    def from_output(cls, output: StackOutput) -> "ResourceFixture":
        return cls(
            bucket=output.claimcheck_s3.name,
            queue_url=output.claimcheck_sqs.url,
            queue_arn=output.claimcheck_sqs.arn,
            queue_name=output.claimcheck_sqs.name,
            dlq_url=output.claimcheck_sqs_dlq.url,
            dlq_arn=output.claimcheck_sqs_dlq.arn,
            dlq_name=output.claimcheck_sqs_dlq.name,
            topic_arn=output.claimcheck_sns.arn,
            topic_name=output.claimcheck_sns.topic,
            kms_key_arn=output.claimcheck_kms.arn if output.claimcheck_kms else None,
        )


def _unwrap_output(document: Any, output_key: str) -> Any:
    if isinstance(document, dict) and output_key in document:
        document = document[output_key]
    # `tofu output -json` (without a name) wraps each output value.
    if isinstance(document, dict) and "value" in document and "type" in document:
        document = document["value"]
    return document


def _missing_fields(error: pydantic.ValidationError) -> list[str]:
    return [".".join(str(part) for part in err["loc"]) for err in error.errors()]


def load_fixture(
    document: Union[str, bytes, dict], output_key: str = DEFAULT_OUTPUT_KEY
) -> ResourceFixture:
    """
    Parses the provisioning output into a ResourceFixture.

    Raises FixtureError for malformed JSON or missing/empty fields, before any
    AWS call is made.
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise FixtureError(f"Provisioning output is not valid JSON: {e}") from e

    payload = _unwrap_output(document, output_key)
    if not isinstance(payload, dict):
        raise FixtureError(
            f"Provisioning output '{output_key}' must be a JSON object, "
            f"got {type(payload).__name__}"
        )

    try:
        output = StackOutput.model_validate(payload)
    except pydantic.ValidationError as e:
        missing = _missing_fields(e)
        raise FixtureError(
            f"Provisioning output '{output_key}' is missing or has invalid fields: "
            f"{', '.join(missing)}",
            missing_fields=missing,
        ) from e

    fixture = ResourceFixture.from_output(output)
    logger.info(
        "Loaded resource fixture",
        extra={
            "bucket": fixture.bucket,
            "queue_url": fixture.queue_url,
            "dlq_url": fixture.dlq_url,
            "topic_arn": fixture.topic_arn,
        },
    )
    return fixture


def load_fixture_file(path: Union[str, Path], output_key: str = DEFAULT_OUTPUT_KEY) -> ResourceFixture:
    """Reads a saved `tofu output -json` document from disk."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise FixtureError(f"Cannot read fixture file '{path}': {e}") from e
    return load_fixture(text, output_key=output_key)

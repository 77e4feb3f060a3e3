# src/claimcheck_e2e/exceptions.py

"""
Shared custom exceptions for the claim-check E2E harness.

Centralizing exception definitions in a separate module prevents circular
import errors between the drivers, the runner and the client wrappers.

Exception Hierarchy:
- ClaimCheckError (base)
  - PreconditionError (environment problem, abort the run, exit code 2)
    - ConfigurationError
    - FixtureError
    - ProvisioningError
    - SubscriptionTimeoutError
    - AwsOperationError
  - VerificationError (the stack under test misbehaved, exit code 1)
    - MessageNotReceivedError
    - MessageCountError
    - ContentMismatchError
    - DigestMismatchError
    - LocatorMismatchError
    - EnvelopeError
  - CleanupError (logged, never masks the primary result)
"""

from typing import Any, Dict, Optional


class ClaimCheckError(Exception):
    """Base exception for all harness errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "precondition": isinstance(self, PreconditionError),
        }


def _merge_context(kwargs: Dict[str, Any], **defaults: Any) -> Dict[str, Any]:
    """Pops a caller-supplied context from *kwargs* and layers *defaults* over it."""
    context = dict(kwargs.pop("context", None) or {})
    context.update(defaults)
    return context


class PreconditionError(ClaimCheckError):
    """Base class for environment errors that make the run meaningless."""

    pass


class VerificationError(ClaimCheckError):
    """Base class for assertion failures against the stack under test."""

    pass


# === Precondition Errors ===


class ConfigurationError(PreconditionError):
    """Raised when the harness configuration is invalid."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", **kwargs)


class FixtureError(PreconditionError):
    """Raised when the provisioning output document cannot be parsed."""

    def __init__(self, message: str, missing_fields: Optional[list] = None, **kwargs):
        context = _merge_context(kwargs, missing_fields=list(missing_fields or []))
        super().__init__(message, error_code="FIXTURE_ERROR", context=context, **kwargs)
        self.missing_fields = context["missing_fields"]


class ProvisioningError(PreconditionError):
    """Raised when the provisioning tool fails to apply, output or destroy."""

    def __init__(self, command: str, returncode: int, stderr: str = "", output: str = "", **kwargs):
        message = f"Provisioning command failed ({returncode}): {command}"
        context = _merge_context(kwargs, command=command, returncode=returncode, stderr=stderr)
        super().__init__(message, error_code="PROVISIONING_ERROR", context=context, **kwargs)
        # Full stdout + stderr, kept off the log context.
        self.output = output


class SubscriptionTimeoutError(PreconditionError):
    """Raised when the topic-to-queue subscription never becomes active."""

    def __init__(self, topic_arn: str, queue_arn: str, timeout_seconds: float, **kwargs):
        message = (
            f"Subscription of {queue_arn} to {topic_arn} was not confirmed "
            f"within {timeout_seconds}s"
        )
        context = _merge_context(
            kwargs, topic_arn=topic_arn, queue_arn=queue_arn, timeout_seconds=timeout_seconds
        )
        super().__init__(message, error_code="SUBSCRIPTION_TIMEOUT", context=context, **kwargs)


class AwsOperationError(PreconditionError):
    """Raised when an AWS API call fails outright."""

    def __init__(self, operation: str, aws_error_code: str, aws_error_message: str, **kwargs):
        message = f"AWS operation {operation} failed: {aws_error_code}: {aws_error_message}"
        context = _merge_context(
            kwargs,
            operation=operation,
            aws_error_code=aws_error_code,
            aws_error_message=aws_error_message,
        )
        super().__init__(message, error_code="AWS_OPERATION_ERROR", context=context, **kwargs)
        self.aws_error_code = aws_error_code


# === Verification Errors ===


class MessageNotReceivedError(VerificationError):
    """Raised when no message arrives on a queue within the receive window."""

    def __init__(self, queue_url: str, waited_seconds: float, **kwargs):
        message = f"No message received from {queue_url} within {waited_seconds}s"
        context = _merge_context(kwargs, queue_url=queue_url, waited_seconds=waited_seconds)
        super().__init__(message, error_code="MESSAGE_NOT_RECEIVED", context=context, **kwargs)


class MessageCountError(VerificationError):
    """Raised when a queue returns a different number of messages than expected."""

    def __init__(self, queue_url: str, expected: int, actual: int, **kwargs):
        message = f"Expected {expected} message(s) from {queue_url}, got {actual}"
        context = _merge_context(kwargs, queue_url=queue_url, expected=expected, actual=actual)
        super().__init__(message, error_code="MESSAGE_COUNT_MISMATCH", context=context, **kwargs)


class ContentMismatchError(VerificationError):
    """Raised when a received value differs from the one that was sent."""

    def __init__(self, field: str, expected: Any, actual: Any, **kwargs):
        message = f"{field} mismatch: expected {expected!r}, got {actual!r}"
        context = _merge_context(kwargs, field=field, expected=expected, actual=actual)
        super().__init__(message, error_code="CONTENT_MISMATCH", context=context, **kwargs)


class DigestMismatchError(VerificationError):
    """Raised when a downloaded payload does not hash to the uploaded digest."""

    def __init__(self, bucket: str, key: str, expected: str, actual: str, **kwargs):
        message = f"Digest mismatch for s3://{bucket}/{key}: expected {expected}, got {actual}"
        context = _merge_context(kwargs, bucket=bucket, key=key, expected=expected, actual=actual)
        super().__init__(message, error_code="DIGEST_MISMATCH", context=context, **kwargs)


class LocatorMismatchError(VerificationError):
    """Raised when a notification points at a different object than was uploaded."""

    def __init__(self, expected: tuple, actual: tuple, **kwargs):
        message = (
            f"Notification locator s3://{actual[0]}/{actual[1]} does not match "
            f"uploaded object s3://{expected[0]}/{expected[1]}"
        )
        context = _merge_context(kwargs, expected=list(expected), actual=list(actual))
        super().__init__(message, error_code="LOCATOR_MISMATCH", context=context, **kwargs)


class EnvelopeError(VerificationError):
    """Raised when a received message body cannot be unwrapped."""

    def __init__(self, message: str, **kwargs):
        if "error_code" not in kwargs:
            kwargs["error_code"] = "INVALID_ENVELOPE"
        super().__init__(message, **kwargs)


# === Cleanup Errors ===


class CleanupError(ClaimCheckError):
    """Raised when purge or teardown fails."""

    def __init__(self, operation: str, reason: str, **kwargs):
        message = f"Cleanup step {operation} failed: {reason}"
        context = _merge_context(kwargs, operation=operation, reason=reason)
        super().__init__(message, error_code="CLEANUP_FAILED", context=context, **kwargs)


# === Utility Functions ===


def get_error_context(error: Exception) -> Dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, ClaimCheckError):
        return error.to_dict()
    else:
        return {
            "error_type": error.__class__.__name__,
            "message": str(error),
            "precondition": False,
        }

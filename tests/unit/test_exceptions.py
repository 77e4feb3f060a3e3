# tests/unit/test_exceptions.py

from claimcheck_e2e.exceptions import (
    AwsOperationError,
    ClaimCheckError,
    CleanupError,
    ConfigurationError,
    ContentMismatchError,
    DigestMismatchError,
    EnvelopeError,
    FixtureError,
    LocatorMismatchError,
    MessageCountError,
    MessageNotReceivedError,
    PreconditionError,
    ProvisioningError,
    SubscriptionTimeoutError,
    VerificationError,
    get_error_context,
)


class TestClaimCheckError:
    """Test the base ClaimCheckError class."""

    def test_basic_initialization(self):
        error = ClaimCheckError("Test message")
        assert str(error) == "Test message"
        assert error.message == "Test message"
        assert error.error_code == "ClaimCheckError"
        assert error.context == {}

    def test_full_initialization(self):
        context = {"key": "value"}
        error = ClaimCheckError("Test message", error_code="CUSTOM_CODE", context=context)
        assert error.error_code == "CUSTOM_CODE"
        assert error.context == context
        # The caller's dict is copied, not shared.
        assert error.context is not context

    def test_to_dict(self):
        error = ClaimCheckError("Test message", error_code="TEST_CODE", context={"key": "value"})
        assert error.to_dict() == {
            "error_type": "ClaimCheckError",
            "error_code": "TEST_CODE",
            "message": "Test message",
            "context": {"key": "value"},
            "precondition": False,
        }


class TestPreconditionErrors:
    """Environment failures that abort the run."""

    def test_configuration_error(self):
        error = ConfigurationError("Invalid environment variable")
        assert str(error) == "Invalid environment variable"
        assert error.error_code == "CONFIGURATION_ERROR"
        assert isinstance(error, PreconditionError)

    def test_fixture_error_records_missing_fields(self):
        error = FixtureError("bad output", missing_fields=["claimcheck_sqs.url"])
        assert error.missing_fields == ["claimcheck_sqs.url"]
        assert error.context["missing_fields"] == ["claimcheck_sqs.url"]
        assert error.error_code == "FIXTURE_ERROR"
        assert isinstance(error, PreconditionError)

    def test_provisioning_error(self):
        error = ProvisioningError("tofu apply", 1, stderr="boom")
        assert "tofu apply" in str(error)
        assert error.context == {"command": "tofu apply", "returncode": 1, "stderr": "boom"}
        assert error.to_dict()["precondition"] is True

    def test_subscription_timeout_error(self):
        error = SubscriptionTimeoutError("arn:topic", "arn:queue", 300)
        assert "300s" in str(error)
        assert error.error_code == "SUBSCRIPTION_TIMEOUT"
        assert error.context["queue_arn"] == "arn:queue"

    def test_aws_operation_error_merges_caller_context(self):
        error = AwsOperationError(
            "s3:PutObject", "AccessDenied", "denied", context={"bucket": "b", "key": "k"}
        )
        assert error.aws_error_code == "AccessDenied"
        assert error.context == {
            "bucket": "b",
            "key": "k",
            "operation": "s3:PutObject",
            "aws_error_code": "AccessDenied",
            "aws_error_message": "denied",
        }


class TestVerificationErrors:
    """Assertion failures against the stack under test."""

    def test_message_not_received(self):
        error = MessageNotReceivedError("https://q", 30, context={"key": "k"})
        assert "30s" in str(error)
        assert error.context == {"key": "k", "queue_url": "https://q", "waited_seconds": 30}
        assert isinstance(error, VerificationError)

    def test_message_count(self):
        error = MessageCountError("https://dlq", 1, 0)
        assert "Expected 1 message(s)" in str(error)
        assert error.error_code == "MESSAGE_COUNT_MISMATCH"

    def test_content_mismatch(self):
        error = ContentMismatchError("event id", "a", "b")
        assert str(error) == "event id mismatch: expected 'a', got 'b'"

    def test_digest_mismatch_reports_both_digests(self):
        error = DigestMismatchError("bucket", "key", "aaa", "bbb")
        assert "aaa" in str(error) and "bbb" in str(error)
        assert error.context["expected"] == "aaa"
        assert error.context["actual"] == "bbb"

    def test_locator_mismatch(self):
        error = LocatorMismatchError(("b1", "k1"), ("b2", "k2"))
        assert "s3://b2/k2" in str(error)
        assert error.context["expected"] == ["b1", "k1"]

    def test_envelope_error_default_code(self):
        assert EnvelopeError("bad body").error_code == "INVALID_ENVELOPE"
        assert EnvelopeError("bad body", error_code="X").error_code == "X"


class TestCleanupError:
    def test_cleanup_error_is_neither_branch(self):
        error = CleanupError("destroy", "state locked", context={"stack_dir": "."})
        assert error.context == {"stack_dir": ".", "operation": "destroy", "reason": "state locked"}
        assert not isinstance(error, (PreconditionError, VerificationError))


class TestUtilityFunctions:
    def test_get_error_context_for_harness_error(self):
        error = DigestMismatchError("b", "k", "a", "c")
        assert get_error_context(error) == error.to_dict()

    def test_get_error_context_for_generic_exception(self):
        assert get_error_context(ValueError("nope")) == {
            "error_type": "ValueError",
            "message": "nope",
            "precondition": False,
        }

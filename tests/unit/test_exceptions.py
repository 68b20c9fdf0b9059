# tests/unit/test_exceptions.py

import json

import pytest

from aws_wire.exceptions import (
    SERVICE_ERROR_TYPES,
    AccessDeniedError,
    AuthenticationError,
    AwsWireError,
    ConfigurationError,
    CredentialsError,
    DeadlineExceededError,
    ErrorKind,
    MultipartIncompleteError,
    MultipartStateError,
    NonRetryableError,
    NotFoundError,
    RetryableError,
    ServiceError,
    ServiceUnavailableError,
    SigningError,
    ThrottlingError,
    TransportError,
    ValidationError,
    get_error_context,
    is_retryable_error,
)


class TestAwsWireError:
    """Test the base AwsWireError class."""

    def test_basic_initialization(self):
        """Test basic error initialization."""
        error = AwsWireError("Test message")
        assert str(error) == "Test message"
        assert error.message == "Test message"
        assert error.error_code == "AwsWireError"
        assert error.context == {}
        assert error.request_id is None

    def test_full_initialization(self):
        """Test error initialization with all parameters."""
        context = {"key": "value"}
        error = AwsWireError(
            "Test message",
            error_code="CUSTOM_CODE",
            context=context,
            request_id="req-123",
        )
        assert error.error_code == "CUSTOM_CODE"
        assert error.context == context
        assert error.request_id == "req-123"

    def test_to_dict(self):
        """Test conversion to dictionary."""
        error = AwsWireError(
            "Test message",
            error_code="TEST_CODE",
            context={"key": "value"},
            request_id="req-123",
        )
        assert error.to_dict() == {
            "error_type": "AwsWireError",
            "error_code": "TEST_CODE",
            "error_message": "Test message",
            "context": {"key": "value"},
            "request_id": "req-123",
            "retryable": False,
        }


class TestServiceErrors:
    """Test the classified service error types."""

    @pytest.mark.parametrize(
        "error_type, kind, retryable",
        [
            (AuthenticationError, ErrorKind.AUTHENTICATION, False),
            (ValidationError, ErrorKind.VALIDATION, False),
            (NotFoundError, ErrorKind.NOT_FOUND, False),
            (AccessDeniedError, ErrorKind.ACCESS_DENIED, False),
            (ThrottlingError, ErrorKind.THROTTLING, True),
            (ServiceUnavailableError, ErrorKind.SERVICE_UNAVAILABLE, True),
        ],
    )
    def test_kind_and_retryability(self, error_type, kind, retryable):
        error = error_type("message", code="SomeCode", http_status=400)

        assert error.kind is kind
        assert SERVICE_ERROR_TYPES[kind] is error_type
        assert isinstance(error, ServiceError)
        assert error.retryable is retryable
        assert is_retryable_error(error) is retryable

    def test_code_doubles_as_error_code(self):
        error = NotFoundError("Key not found", code="NoSuchKey", http_status=404, request_id="r1")

        assert error.code == "NoSuchKey"
        assert error.error_code == "NoSuchKey"
        assert error.http_status == 404
        assert error.request_id == "r1"

    def test_to_dict_includes_kind_and_status(self):
        error = ThrottlingError("Slow down", code="SlowDown", http_status=503)

        result = error.to_dict()

        assert result["kind"] == "throttling"
        assert result["http_status"] == 503
        assert result["retryable"] is True

    def test_client_side_validation_has_no_status(self):
        error = ValidationError("bad", code="InvalidArgument")

        assert error.http_status is None

    def test_every_kind_has_a_type(self):
        assert set(SERVICE_ERROR_TYPES) == set(ErrorKind)


class TestTransportErrors:
    """Test transport and deadline errors."""

    def test_transport_error_is_retryable(self):
        error = TransportError("Connection reset")

        assert isinstance(error, RetryableError)
        assert error.error_code == "TRANSPORT_ERROR"
        assert error.retryable is True

    def test_deadline_exceeded_is_not_retryable(self):
        error = DeadlineExceededError(2.5, context={"method": "PUT"})

        assert isinstance(error, TransportError)
        assert isinstance(error, NonRetryableError)
        assert error.retryable is False
        assert is_retryable_error(error) is False
        assert error.error_code == "DEADLINE_EXCEEDED"
        assert error.context == {"method": "PUT", "deadline_seconds": 2.5, "outcome": "unknown"}
        assert "outcome unknown" in error.message


class TestMultipartErrors:
    """Test multipart upload error classes."""

    def test_incomplete_error(self):
        error = MultipartIncompleteError(
            "bucket", "big.bin", "upload-1", reason="part 3 failed", context={"cause": {"x": 1}}
        )

        assert error.bucket == "bucket"
        assert error.key == "big.bin"
        assert error.upload_id == "upload-1"
        assert error.error_code == "MULTIPART_INCOMPLETE"
        assert error.context == {
            "cause": {"x": 1},
            "bucket": "bucket",
            "key": "big.bin",
            "upload_id": "upload-1",
        }
        assert "s3://bucket/big.bin" in error.message
        assert error.retryable is False

    def test_state_error(self):
        error = MultipartStateError("upload-1", "ABORTED", "complete")

        assert error.message == "Cannot complete multipart upload upload-1 in state ABORTED"
        assert error.error_code == "MULTIPART_INVALID_STATE"


class TestSetupErrors:
    """Test signing, credential and configuration errors."""

    @pytest.mark.parametrize(
        "error_type, code",
        [
            (SigningError, "SIGNING_ERROR"),
            (CredentialsError, "CREDENTIALS_NOT_FOUND"),
            (ConfigurationError, "CONFIGURATION_ERROR"),
        ],
    )
    def test_error_codes(self, error_type, code):
        error = error_type("problem")

        assert error.error_code == code
        assert error.retryable is False


class TestUtilityFunctions:
    """Test utility functions for error handling."""

    def test_is_retryable_error_with_non_library_errors(self):
        assert is_retryable_error(ValueError("x")) is False
        assert is_retryable_error(Exception("x")) is False

    def test_get_error_context_for_library_error(self):
        error = ThrottlingError("Rate exceeded", code="Throttling", http_status=400)

        context = get_error_context(error)

        assert context == error.to_dict()

    def test_get_error_context_for_unknown_error(self):
        context = get_error_context(RuntimeError("boom"))

        assert context == {
            "error_type": "RuntimeError",
            "error_message": "boom",
            "retryable": False,
        }


class TestErrorSerialization:
    """Test that errors serialize cleanly for structured logging."""

    def test_to_dict_is_json_serializable(self):
        error = MultipartIncompleteError(
            "bucket",
            "big.bin",
            "upload-1",
            reason="boom",
            context={"cause": get_error_context(ServiceUnavailableError("x", code="InternalError"))},
        )

        serialized = json.dumps(error.to_dict())

        assert json.loads(serialized) == error.to_dict()

    def test_to_dict_keys_are_safe_as_log_extras(self):
        """``message`` is reserved on LogRecord, so it must never be an extra key."""
        error = NotFoundError("gone", code="NoSuchKey", http_status=404)

        assert "message" not in error.to_dict()


class TestErrorContextHandling:
    """Test error context handling and manipulation."""

    def test_context_immutability(self):
        """Test that error context cannot be accidentally modified."""
        original_context = {"key": "value"}
        error = ValidationError("Test", code="InvalidArgument", context=original_context)

        # Modify original context
        original_context["new_key"] = "new_value"

        # Error context should not be affected
        assert "new_key" not in error.context
        assert error.context == {"key": "value"}

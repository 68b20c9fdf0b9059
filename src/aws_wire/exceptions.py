# src/aws_wire/exceptions.py

"""
Shared custom exceptions for the aws-wire client.

Every failed operation surfaces exactly one of these. Service errors carry the
original AWS error code and message so callers can diagnose without digging
through raw responses.

Exception Hierarchy:
- AwsWireError (base)
  - RetryableError (can be retried)
    - ThrottlingError
    - ServiceUnavailableError
    - TransportError
  - NonRetryableError (should not be retried)
    - AuthenticationError
    - ValidationError
    - NotFoundError
    - AccessDeniedError
    - DeadlineExceededError (outcome unknown)
    - MultipartIncompleteError
    - MultipartStateError
    - StackOperationError
    - SigningError
    - CredentialsError
    - ConfigurationError
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of service error kinds produced by the protocol parsers."""

    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    THROTTLING = "throttling"
    SERVICE_UNAVAILABLE = "service_unavailable"


class AwsWireError(Exception):
    """Base exception for all aws-wire errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}
        self.request_id = request_id

    @property
    def retryable(self) -> bool:
        return isinstance(self, RetryableError)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "error_message": self.message,
            "context": self.context,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }


class RetryableError(AwsWireError):
    """Base class for errors that can be retried."""
    pass


class NonRetryableError(AwsWireError):
    """Base class for errors that should not be retried."""
    pass


# === Service Errors ===

class ServiceError(AwsWireError):
    """
    An error response returned by an AWS service.

    ``code`` is the AWS error code (e.g. ``NoSuchKey``) and doubles as the
    ``error_code``. ``http_status`` is None for errors detected client-side
    before anything was sent.
    """

    kind: ErrorKind

    def __init__(
        self,
        message: str,
        code: str,
        http_status: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, error_code=code, **kwargs)
        self.code = code
        self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({"kind": self.kind.value, "http_status": self.http_status})
        return result


class AuthenticationError(ServiceError, NonRetryableError):
    """Bad or expired credentials, or clock skew beyond AWS's tolerance."""

    kind = ErrorKind.AUTHENTICATION


class ValidationError(ServiceError, NonRetryableError):
    """Malformed request parameters, rejected before execution."""

    kind = ErrorKind.VALIDATION


class NotFoundError(ServiceError, NonRetryableError):
    """The addressed resource does not exist."""

    kind = ErrorKind.NOT_FOUND


class AccessDeniedError(ServiceError, NonRetryableError):
    """The credentials are valid but not allowed to perform the action."""

    kind = ErrorKind.ACCESS_DENIED


class ThrottlingError(ServiceError, RetryableError):
    """The service is rate limiting the caller."""

    kind = ErrorKind.THROTTLING


class ServiceUnavailableError(ServiceError, RetryableError):
    """A 5xx response; the service failed or is temporarily unavailable."""

    kind = ErrorKind.SERVICE_UNAVAILABLE


SERVICE_ERROR_TYPES: Dict[ErrorKind, type[ServiceError]] = {
    ErrorKind.AUTHENTICATION: AuthenticationError,
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.ACCESS_DENIED: AccessDeniedError,
    ErrorKind.THROTTLING: ThrottlingError,
    ErrorKind.SERVICE_UNAVAILABLE: ServiceUnavailableError,
}


# === Transport Errors ===

class TransportError(RetryableError):
    """Network-level failure: connection reset, DNS failure, read timeout."""

    def __init__(self, message: str, **kwargs):
        if "error_code" not in kwargs:
            kwargs["error_code"] = "TRANSPORT_ERROR"
        super().__init__(message, **kwargs)


class DeadlineExceededError(TransportError, NonRetryableError):
    """
    Raised when a caller-supplied deadline expires.

    The request may or may not have been applied server-side; treat the
    outcome as unknown, not as failed.
    """

    def __init__(self, deadline_seconds: float, **kwargs):
        message = f"Request deadline exceeded after {deadline_seconds:.3f}s; outcome unknown"
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        context.update({"deadline_seconds": deadline_seconds, "outcome": "unknown"})
        super().__init__(message, error_code="DEADLINE_EXCEEDED", context=context, **kwargs)

    @property
    def retryable(self) -> bool:
        return False


# === Multipart Errors ===

class MultipartIncompleteError(NonRetryableError):
    """Raised when a part failed irrecoverably and the upload was abandoned."""

    def __init__(self, bucket: str, key: str, upload_id: str, reason: str, **kwargs):
        message = f"Multipart upload to s3://{bucket}/{key} failed: {reason}"
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        context.update({"bucket": bucket, "key": key, "upload_id": upload_id})
        super().__init__(message, error_code="MULTIPART_INCOMPLETE", context=context, **kwargs)
        self.bucket = bucket
        self.key = key
        self.upload_id = upload_id


class MultipartStateError(NonRetryableError):
    """Raised when an operation is not allowed in the upload's current state."""

    def __init__(self, upload_id: str, state: str, operation: str, **kwargs):
        message = f"Cannot {operation} multipart upload {upload_id} in state {state}"
        context = {"upload_id": upload_id, "state": state, "operation": operation}
        super().__init__(message, error_code="MULTIPART_INVALID_STATE", context=context, **kwargs)


# === Stack Errors ===

class StackOperationError(NonRetryableError):
    """Raised when a stack being waited on lands in a failed or rollback state."""

    def __init__(self, stack_name: str, status: str, reason: Optional[str] = None, **kwargs):
        message = f"Stack {stack_name} reached failed state {status}: {reason or 'Unknown'}"
        context = {"stack_name": stack_name, "status": status, "reason": reason}
        super().__init__(message, error_code="STACK_OPERATION_FAILED", context=context, **kwargs)
        self.stack_name = stack_name
        self.status = status
        self.reason = reason


# === Programming and Setup Errors ===

class SigningError(NonRetryableError):
    """Raised for requests that cannot be signed, such as a missing host header."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="SIGNING_ERROR", **kwargs)


class CredentialsError(NonRetryableError):
    """Raised when no credentials can be resolved."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CREDENTIALS_NOT_FOUND", **kwargs)


class ConfigurationError(NonRetryableError):
    """Raised when there's an error in the client configuration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", **kwargs)


# === Utility Functions ===

def is_retryable_error(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, AwsWireError):
        return error.retryable
    return False


def get_error_context(error: Exception) -> Dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, AwsWireError):
        return error.to_dict()
    else:
        return {
            "error_type": error.__class__.__name__,
            "error_message": str(error),
            "retryable": False,  # Unknown errors default to non-retryable
        }

"""
Custom exceptions for the sales reconciliation pipeline with structured error context.

Each exception carries context information for debugging and monitoring.
Only payload contract violations are meant to halt a run; every other
failure is caught at its boundary and degraded or recorded.

Exception Hierarchy:
    PipelineException (base)
    ├── PayloadError
    │   └── SchemaValidationError
    ├── NormalizationError
    │   └── OracleError
    │       ├── OracleResponseError
    │       ├── OracleUnavailableError
    │       ├── AuthenticationError
    │       ├── NetworkError (retryable)
    │       └── RateLimitError (retryable)
    ├── LoadError
    │   └── UpsertError
    ├── ReconciliationError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class PipelineException(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (sheet, row, product name, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(PipelineException):
    """
    Mixin for errors that may succeed on a bounded retry.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 5xx)
    """
    pass


class NonRetryableError(PipelineException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Malformed responses
    - Payload contract violations
    """
    pass


# ============================================================================
# Payload Errors
# ============================================================================

class PayloadError(PipelineException):
    """Base exception for inbound payload problems."""
    pass


class SchemaValidationError(NonRetryableError, PayloadError):
    """
    Raised when the inbound payload contract itself is violated.

    Context should include:
        - field_errors: Field-level validation errors
        - sheet_name: Sheet being processed (if known)
    """
    pass


# ============================================================================
# Normalization Errors
# ============================================================================

class NormalizationError(PipelineException):
    """Base exception for product name normalization failures."""
    pass


class OracleError(NormalizationError):
    """
    Base exception for normalization oracle failures.

    Context should include:
        - oracle_url: Endpoint that was called
        - names: Product names in the request (truncated if large)
        - status_code: HTTP status code (if applicable)
    """
    pass


class OracleResponseError(NonRetryableError, OracleError):
    """The oracle answered but the body could not be parsed into results."""
    pass


class OracleUnavailableError(NonRetryableError, OracleError):
    """The oracle is not configured (no credentials)."""
    pass


class AuthenticationError(NonRetryableError, OracleError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


class NetworkError(RetryableError, OracleError):
    """Network-related errors (timeouts, connection failures, 5xx)."""
    pass


class RateLimitError(RetryableError, OracleError):
    """Rate limiting errors (HTTP 429)."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after  # Seconds to wait before retry
        if retry_after:
            self.context["retry_after"] = retry_after


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(PipelineException):
    """Base exception for storage write failures."""
    pass


class UpsertError(LoadError):
    """
    Exception raised when an insert-or-fetch cannot resolve a row.

    Context should include:
        - table_name: Name of the table
        - conflict_fields: Natural key fields
        - key: Natural key value
    """
    pass


# ============================================================================
# Reconciliation Errors
# ============================================================================

class ReconciliationError(PipelineException):
    """
    Exception raised when a reconciliation pass cannot complete.

    Context should include:
        - posted_item_id: Item being reconciled (if applicable)
    """
    pass

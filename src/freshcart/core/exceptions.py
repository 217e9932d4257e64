"""Custom exception hierarchy for FreshCart.

This module defines a consistent exception hierarchy that enables:
- Structured error responses with error codes
- Consistent HTTP status code mapping
- A clear split between client errors (never retried) and upstream
  failures (retried by the resilient client before they surface here)

Usage:
    from freshcart.core.exceptions import ProductNotFoundError

    raise ProductNotFoundError(product_id="6f1c...")
"""

from typing import Any


class FreshCartError(Exception):
    """Base exception for all FreshCart errors.

    Attributes:
        code: Machine-readable error code (e.g., "PRODUCT_NOT_FOUND")
        message: Human-readable error message
        status_code: HTTP status code to return
        details: Additional error details (optional)
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Override default message
            code: Override default error code
            details: Additional error details
        """
        if message:
            self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Convert exception to API error response format.

        Args:
            request_id: Request correlation ID

        Returns:
            Error response dictionary
        """
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if request_id:
            error["request_id"] = request_id
        if self.details:
            error["details"] = self.details
        return {"error": error}


# =============================================================================
# Resource Not Found Errors (404)
# =============================================================================


class NotFoundError(FreshCartError):
    """Base class for resource not found errors."""

    status_code: int = 404


class ProductNotFoundError(NotFoundError):
    """Raised when a product cannot be found."""

    code: str = "PRODUCT_NOT_FOUND"
    message: str = "Product not found"

    def __init__(self, product_id: str | None = None, message: str | None = None) -> None:
        details: dict[str, Any] = {}
        if product_id:
            details["product_id"] = product_id
            if not message:
                message = f"Product with ID {product_id} not found"

        super().__init__(message=message, details=details if details else None)


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(FreshCartError):
    """Raised when input validation fails."""

    code: str = "VALIDATION_ERROR"
    message: str = "Validation error"
    status_code: int = 400

    def __init__(
        self,
        message: str | None = None,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with optional field information."""
        if details is None:
            details = {}
        if field:
            details["field"] = field
        super().__init__(message=message, details=details if details else None)


class InvalidCursorError(ValidationError):
    """Raised when a pagination cursor is not a valid product identifier."""

    code: str = "INVALID_CURSOR"
    message: str = "Invalid pagination cursor"

    def __init__(self, cursor: str | None = None, message: str | None = None) -> None:
        details: dict[str, Any] = {}
        if cursor:
            details["cursor"] = cursor
        super().__init__(message=message, field="cursor", details=details)


class InvalidWebhookPayloadError(ValidationError):
    """Raised when an inbound event lacks its id or type."""

    code: str = "INVALID_WEBHOOK_PAYLOAD"
    message: str = "Invalid webhook payload"


# =============================================================================
# Admission Control (429)
# =============================================================================


class RateLimitExceededError(FreshCartError):
    """Raised when a client has spent its request budget for the window."""

    code: str = "RATE_LIMIT_EXCEEDED"
    message: str = "Rate limit exceeded. Please try again later."
    status_code: int = 429

    def __init__(self, retry_after: int | None = None, message: str | None = None) -> None:
        self.retry_after = retry_after
        details: dict[str, Any] = {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(message=message, details=details if details else None)


# =============================================================================
# External Service Errors (502, 503, 504)
# =============================================================================


class ExternalServiceError(FreshCartError):
    """Base class for external service errors."""

    code: str = "EXTERNAL_SERVICE_ERROR"
    message: str = "External service error"
    status_code: int = 502


class UpstreamError(ExternalServiceError):
    """Raised when the upstream data API keeps failing after retries."""

    code: str = "UPSTREAM_ERROR"
    message: str = "Upstream API request failed"

    def __init__(
        self,
        message: str | None = None,
        status: int | None = None,
        attempts: int | None = None,
    ) -> None:
        self.upstream_status = status
        details: dict[str, Any] = {}
        if status is not None:
            details["upstream_status"] = status
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(message=message, details=details if details else None)


class UpstreamTimeoutError(ExternalServiceError):
    """Raised when an upstream call exceeds its timeout."""

    code: str = "UPSTREAM_TIMEOUT"
    message: str = "Upstream API request timed out"
    status_code: int = 504


class CircuitOpenError(ExternalServiceError):
    """Raised without calling upstream while the circuit is open."""

    code: str = "CIRCUIT_OPEN"
    message: str = "Upstream API is temporarily unavailable"
    status_code: int = 503

    def __init__(self, name: str | None = None, retry_after: float | None = None) -> None:
        details: dict[str, Any] = {}
        if name:
            details["circuit"] = name
        if retry_after is not None:
            details["retry_after"] = round(retry_after, 1)
        super().__init__(details=details if details else None)


class CredentialFetchError(ExternalServiceError):
    """Raised when no access token can be obtained from the identity provider."""

    code: str = "CREDENTIAL_FETCH_FAILED"
    message: str = "OAuth2 authentication failed"


class IdempotencyStoreUnavailableError(FreshCartError):
    """Raised when event deduplication state cannot be read or written."""

    code: str = "IDEMPOTENCY_STORE_UNAVAILABLE"
    message: str = "Event deduplication store unavailable, retry delivery later"
    status_code: int = 503

"""Response envelopes shared by every router.

Successful responses carry ``status: "success"``; failures are rendered by
the exception handlers in ``main.py`` as ``{"error": {...}}``.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base for schemas built from ORM rows or request bodies."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# Errors
# =============================================================================


class ErrorDetail(BaseModel):
    code: str = Field(..., description="Machine-readable code, e.g. INVALID_CURSOR")
    message: str
    request_id: str | None = Field(None, description="Echo of X-Request-ID")
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response (FreshCartError.to_dict)."""

    error: ErrorDetail

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "code": "RATE_LIMIT_EXCEEDED",
                    "message": "Rate limit exceeded. Please try again later.",
                    "request_id": "0b6f8a1e-2c55-4d1b-a3a4-8f2f3c9d7e10",
                    "details": {"retry_after": 60},
                }
            }
        }
    )


# =============================================================================
# Status Envelopes
# =============================================================================


CheckResult = Literal["ok", "error"]


class HealthCheckResponse(BaseModel):
    """Readiness: overall status plus one entry per backing store."""

    status: CheckResult
    checks: dict[str, CheckResult] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    """Acknowledgement for administrative actions."""

    status: Literal["success"] = "success"
    message: str

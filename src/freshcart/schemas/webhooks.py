"""Webhook API schemas."""

from pydantic import BaseModel, Field

from freshcart.schemas.common import BaseSchema


class WebhookAck(BaseModel):
    """Acknowledgement returned for every accepted delivery."""

    status: str = Field("success")
    message: str
    outcome: str = Field(..., description="processed or duplicate")


class WebhookRegistrationRequest(BaseSchema):
    """Body for registering our callback with the upstream event source."""

    callback_url: str = Field(
        ...,
        min_length=1,
        max_length=2048,
        description="Public URL of POST /api/webhook/callback",
        json_schema_extra={"example": "https://shop.example.com/api/webhook/callback"},
    )
    events: list[str] | None = Field(
        None, description="Event types; defaults to order.created and order.updated"
    )


class WebhookRegistrationResponse(BaseModel):
    status: str = Field("success")
    message: str
    callback_url: str
    events: list[str]

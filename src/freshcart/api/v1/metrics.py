"""Process metrics endpoints."""

from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status

from freshcart.dependencies import get_metrics
from freshcart.schemas.common import MessageResponse
from freshcart.services.metrics import MetricsRegistry

router = APIRouter()


@router.get(
    "",
    status_code=status.HTTP_200_OK,
    summary="Current metrics",
    description="Counters and moving averages since start or the last reset.",
)
async def get_metrics_snapshot(
    metrics: Annotated[MetricsRegistry, Depends(get_metrics)],
) -> dict[str, Any]:
    return {
        "status": "success",
        "timestamp": datetime.now(UTC).isoformat(),
        "metrics": metrics.snapshot(),
    }


@router.post(
    "/reset",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Reset metrics",
)
async def reset_metrics(
    metrics: Annotated[MetricsRegistry, Depends(get_metrics)],
) -> MessageResponse:
    metrics.reset()
    return MessageResponse(message="Metrics reset successfully")

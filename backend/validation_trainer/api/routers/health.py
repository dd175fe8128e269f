from fastapi import APIRouter

from validation_trainer.core.config import settings
from validation_trainer.core.observability import request_metrics
from validation_trainer.schemas.common import HealthResponse, ObservabilityMetricsResponse

router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        app_env=settings.app_env,
        llm_configured=bool(settings.llm_api_key),
    )


@router.get("/ops/metrics", response_model=ObservabilityMetricsResponse)
def observability_metrics() -> ObservabilityMetricsResponse:
    payload = request_metrics.snapshot(slow_request_threshold_ms=settings.slow_request_ms)
    return ObservabilityMetricsResponse.model_validate(payload)

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class HealthResponse(BaseModel):
    status: str
    app_env: str
    llm_configured: bool


class RouteMetricsItem(BaseModel):
    endpoint: str
    count: int = Field(ge=0)
    avg_latency_ms: float = Field(ge=0)
    max_latency_ms: float = Field(ge=0)


class FailedRequestItem(BaseModel):
    timestamp: datetime
    request_id: str
    method: str
    path: str
    route: str
    status_code: int = Field(ge=500)
    latency_ms: float = Field(ge=0)


class ObservabilityMetricsResponse(BaseModel):
    started_at: datetime
    total_requests: int = Field(ge=0)
    status_counts: dict[str, int]
    avg_latency_ms: float = Field(ge=0)
    slow_request_count: int = Field(ge=0)
    slow_request_threshold_ms: int = Field(ge=1)
    server_error_count: int = Field(ge=0)
    upstream_error_count: int = Field(ge=0)
    storage_error_count: int = Field(ge=0)
    routes: list[RouteMetricsItem]
    recent_errors: list[FailedRequestItem]

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock

UPSTREAM_STATUS = 502
STORAGE_STATUS = 507


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class FailedRequest:
    timestamp: datetime
    request_id: str
    method: str
    path: str
    route: str
    status_code: int
    latency_ms: float


@dataclass(slots=True)
class RouteStats:
    count: int = 0
    total_latency_ms: float = 0.0
    max_latency_ms: float = 0.0


class RequestMetrics:
    """In-process request counters for the trainer API.

    Routes are keyed by ``"METHOD /template"`` so ``/api/v1/scenarios/{scenario_id}``
    aggregates every scenario lookup. Upstream (502) and storage (507)
    failures are counted on their own because they point at the LLM provider
    and the progress store rather than at the request.
    """

    def __init__(self, max_recent_errors: int = 20) -> None:
        self._lock = Lock()
        self._max_recent_errors = max(1, max_recent_errors)
        self._recent_errors: deque[FailedRequest] = deque(maxlen=self._max_recent_errors)
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._started_at = _utc_now()
            self._total_requests = 0
            self._total_latency_ms = 0.0
            self._slow_request_count = 0
            self._server_error_count = 0
            self._upstream_error_count = 0
            self._storage_error_count = 0
            self._status_counts: Counter[str] = Counter()
            self._routes: dict[str, RouteStats] = {}
            self._recent_errors.clear()

    def configure(self, *, max_recent_errors: int) -> None:
        normalized = max(1, max_recent_errors)
        with self._lock:
            if normalized != self._max_recent_errors:
                self._max_recent_errors = normalized
                self._recent_errors = deque(self._recent_errors, maxlen=normalized)

    def observe(
        self,
        *,
        request_id: str,
        method: str,
        path: str,
        route: str,
        status_code: int,
        latency_ms: float,
        is_slow: bool,
    ) -> None:
        key = f"{method} {route}"
        with self._lock:
            self._total_requests += 1
            self._total_latency_ms += latency_ms
            self._status_counts[str(status_code)] += 1

            stats = self._routes.setdefault(key, RouteStats())
            stats.count += 1
            stats.total_latency_ms += latency_ms
            stats.max_latency_ms = max(stats.max_latency_ms, latency_ms)

            if is_slow:
                self._slow_request_count += 1
            if status_code == UPSTREAM_STATUS:
                self._upstream_error_count += 1
            elif status_code == STORAGE_STATUS:
                self._storage_error_count += 1
            if status_code >= 500:
                self._server_error_count += 1
                self._recent_errors.append(
                    FailedRequest(
                        timestamp=_utc_now(),
                        request_id=request_id,
                        method=method,
                        path=path,
                        route=route,
                        status_code=status_code,
                        latency_ms=latency_ms,
                    )
                )

    def snapshot(self, *, slow_request_threshold_ms: int, top_n: int = 10) -> dict:
        with self._lock:
            ranked = sorted(
                self._routes.items(), key=lambda item: (-item[1].count, item[0])
            )[: max(1, top_n)]
            return {
                "started_at": self._started_at,
                "total_requests": self._total_requests,
                "status_counts": dict(self._status_counts),
                "avg_latency_ms": round(
                    self._total_latency_ms / self._total_requests
                    if self._total_requests
                    else 0.0,
                    2,
                ),
                "slow_request_count": self._slow_request_count,
                "slow_request_threshold_ms": slow_request_threshold_ms,
                "server_error_count": self._server_error_count,
                "upstream_error_count": self._upstream_error_count,
                "storage_error_count": self._storage_error_count,
                "routes": [
                    {
                        "endpoint": endpoint,
                        "count": stats.count,
                        "avg_latency_ms": round(stats.total_latency_ms / stats.count, 2),
                        "max_latency_ms": round(stats.max_latency_ms, 2),
                    }
                    for endpoint, stats in ranked
                ],
                "recent_errors": [
                    {
                        "timestamp": event.timestamp,
                        "request_id": event.request_id,
                        "method": event.method,
                        "path": event.path,
                        "route": event.route,
                        "status_code": event.status_code,
                        "latency_ms": round(event.latency_ms, 2),
                    }
                    for event in reversed(self._recent_errors)
                ],
            }


request_metrics = RequestMetrics()

from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

stage_transitions_total = Counter(
    "stage_transitions_total",
    "Project stage transition requests by outcome",
    ["outcome"],
)

dashboard_section_failures_total = Counter(
    "dashboard_section_failures_total",
    "Dashboard analytics sections that failed and were reported empty",
    ["section"],
)

dashboard_section_duration_seconds = Histogram(
    "dashboard_section_duration_seconds",
    "Dashboard analytics section duration in seconds",
    ["section"],
)

billing_sync_failures_total = Counter(
    "billing_sync_failures_total",
    "Best-effort workspace billing reconciliation failures",
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_stage_transition(outcome: str) -> None:
    stage_transitions_total.labels(outcome=outcome).inc()


def observe_dashboard_section(section: str, duration: float) -> None:
    dashboard_section_duration_seconds.labels(section=section).observe(duration)


def observe_dashboard_section_failure(section: str) -> None:
    dashboard_section_failures_total.labels(section=section).inc()


def observe_billing_sync_failure() -> None:
    billing_sync_failures_total.inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST

from __future__ import annotations

import re

from prometheus_client import Counter, Histogram


def normalize_path(path: str) -> str:
    """Reduce high-cardinality paths for metrics labels."""
    p = path or "/"

    # job ids
    p = re.sub(r"^(/api/v1/jobs)/[^/]+(/cancel|/history)?$", r"\1/:job_id\2", p)
    # services are a closed set but arbitrary strings still reach the router
    p = re.sub(r"^(/api/v1/services)/[^/]+/jobs$", r"\1/:service/jobs", p)

    return p


HTTP_REQUESTS_TOTAL = Counter(
    "jobrouter_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "jobrouter_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

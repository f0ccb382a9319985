"""Prometheus metric definitions for the ItemTypeSet console."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Info

# ── Application info ────────────────────────────────────────────────
app_info = Info("itsadmin", "ItemTypeSet console application metadata")

# ── HTTP request metrics ────────────────────────────────────────────
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method"],
)

# ── Platform backend calls ──────────────────────────────────────────
platform_requests_total = Counter(
    "platform_requests_total",
    "Calls issued to the workflow/permission platform",
    ["operation", "status"],
)

platform_request_duration_seconds = Histogram(
    "platform_request_duration_seconds",
    "Platform call duration in seconds",
    ["operation"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Orchestration ───────────────────────────────────────────────────
impact_analyses_total = Counter(
    "impact_analyses_total",
    "Impact analyses run, by kind (migration/removal) and outcome",
    ["kind", "outcome"],
)

pipeline_stages_total = Counter(
    "pipeline_stages_total",
    "Save pipeline stage transitions",
    ["stage", "status"],
)

editor_sessions_open = Gauge(
    "editor_sessions_open",
    "ItemTypeSet editor sessions currently held in memory",
)

grant_detail_fetches_total = Counter(
    "grant_detail_fetches_total",
    "Grant detail lookups, by scope and result",
    ["scope", "result"],
)

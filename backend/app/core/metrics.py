"""Prometheus metrics for the merge pipeline and retention sweeps."""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

REGISTRY = CollectorRegistry()

# Running under gunicorn with several workers
if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "video_merger_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Merge Pipeline Metrics
# ============================================
MERGE_REQUESTS_TOTAL = Counter(
    "merge_requests_total",
    "Merge pipeline runs by outcome",
    ["outcome"],
    registry=REGISTRY,
)

MERGE_PIPELINE_DURATION_SECONDS = Histogram(
    "merge_pipeline_duration_seconds",
    "Wall time of one merge pipeline run",
    buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1200.0],
    registry=REGISTRY,
)

MERGE_OUTPUT_BYTES = Histogram(
    "merge_output_bytes",
    "Size of the delivered artifact in bytes",
    buckets=[m * 1024 * 1024 for m in (10, 25, 50, 75, 100, 150, 200, 300, 500, 1000)],
    registry=REGISTRY,
)

TRANSFORMS_TOTAL = Counter(
    "merge_transforms_total",
    "Pre-upload transform attempts by type and outcome",
    ["transform", "outcome"],
    registry=REGISTRY,
)

DELIVERY_ATTEMPTS_TOTAL = Counter(
    "merge_delivery_attempts_total",
    "Upload attempts by strategy and outcome",
    ["strategy", "outcome"],
    registry=REGISTRY,
)

STAGING_CLEANUP_ERRORS_TOTAL = Counter(
    "merge_staging_cleanup_errors_total",
    "Local artifacts that could not be removed",
    registry=REGISTRY,
)


# ============================================
# Retention Metrics
# ============================================
RETENTION_SWEEPS_TOTAL = Counter(
    "retention_sweeps_total",
    "Retention sweeps by outcome",
    ["outcome"],
    registry=REGISTRY,
)

RETENTION_DELETIONS_TOTAL = Counter(
    "retention_deletions_total",
    "Expired artifact deletions by outcome",
    ["outcome"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics."""
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })

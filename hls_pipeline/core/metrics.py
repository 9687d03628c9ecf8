"""Prometheus metrics for the conversion pipeline."""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    multiprocess,
)
import os

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()

# Check if running in multiprocess mode (e.g., with gunicorn)
if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "hls_pipeline_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# Pipeline Metrics
# ============================================
PIPELINE_JOBS_TOTAL = Counter(
    "pipeline_jobs_total",
    "Total conversion jobs by outcome",
    ["outcome"],
    registry=REGISTRY,
)

JOBS_IN_PROGRESS = Gauge(
    "pipeline_jobs_in_progress",
    "Number of conversion jobs currently running",
    registry=REGISTRY,
)

PIPELINE_STEP_DURATION_SECONDS = Histogram(
    "pipeline_step_duration_seconds",
    "Duration of each pipeline step in seconds",
    ["step"],
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0, 1800.0],
    registry=REGISTRY,
)

PIPELINE_STEP_FAILURES_TOTAL = Counter(
    "pipeline_step_failures_total",
    "Pipeline step failures",
    ["step", "mandatory"],
    registry=REGISTRY,
)


# ============================================
# Storage Metrics
# ============================================
UPLOADED_FILES_TOTAL = Counter(
    "uploaded_files_total",
    "Files uploaded to storage by status",
    ["status"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format.

    Returns:
        bytes: Prometheus-formatted metrics
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics.

    Args:
        version: Application version
        environment: Deployment environment
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })

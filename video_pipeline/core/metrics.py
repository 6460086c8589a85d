"""Prometheus metrics for the acquisition and transcoding workers.

Workers are batch or long-running consumer processes without an HTTP
surface, so metrics are exposed through ``start_metrics_server`` when a port
is configured.
"""

from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    start_http_server,
)

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "video_pipeline_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# Acquisition Metrics
# ============================================
ACQUISITIONS_TOTAL = Counter(
    "video_pipeline_acquisitions_total",
    "Source references processed by the acquisition worker",
    ["outcome"],
    registry=REGISTRY,
)


# ============================================
# Transcoding Metrics
# ============================================
TRANSCODES_TOTAL = Counter(
    "video_pipeline_transcodes_total",
    "Pipeline events handled by the transcoding worker",
    ["outcome"],
    registry=REGISTRY,
)

ENCODES_TOTAL = Counter(
    "video_pipeline_encodes_total",
    "Individual format conversions",
    ["format", "outcome"],
    registry=REGISTRY,
)

TRANSCODE_DURATION_SECONDS = Histogram(
    "video_pipeline_transcode_duration_seconds",
    "End-to-end processing time of one original video",
    buckets=[1, 5, 15, 30, 60, 120, 300, 600, 1800, 3600],
    registry=REGISTRY,
)


# ============================================
# Consumer Policy Metrics
# ============================================
HANDLER_RETRIES_TOTAL = Counter(
    "video_pipeline_handler_retries_total",
    "Handler attempts that failed and were retried",
    registry=REGISTRY,
)

DEAD_LETTERED_TOTAL = Counter(
    "video_pipeline_dead_lettered_total",
    "Events routed to the dead-letter topic",
    registry=REGISTRY,
)


def set_app_info(version: str, environment: str = "production") -> None:
    """Set application info metric."""
    APP_INFO.info({"version": version, "environment": environment})


def start_metrics_server(port: Optional[int]) -> bool:
    """Expose the registry over HTTP.

    Args:
        port: Port to listen on; None disables the server

    Returns:
        True if a server was started
    """
    if not port:
        return False
    start_http_server(port, registry=REGISTRY)
    return True

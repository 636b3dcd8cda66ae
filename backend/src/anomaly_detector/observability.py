"""
Prometheus metrics for the anomaly detection pipeline.
"""
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

# Prometheus metrics registry
registry = CollectorRegistry()

pipeline_runs_total = Counter(
    "anomaly_pipeline_runs_total",
    "Total number of pipeline runs by final phase",
    ["outcome"],
    registry=registry
)

phase_transitions_total = Counter(
    "anomaly_pipeline_phase_transitions_total",
    "Total number of pipeline phase transitions",
    ["phase"],
    registry=registry
)

ingestion_rejections_total = Counter(
    "anomaly_ingestion_rejections_total",
    "Total number of rejected CSV uploads",
    ["error_type"],
    registry=registry
)

persisted_batches_total = Counter(
    "anomaly_persisted_batches_total",
    "Total number of insert batches committed",
    registry=registry
)

persisted_records_total = Counter(
    "anomaly_persisted_records_total",
    "Total number of transaction records committed",
    registry=registry
)

persistence_failures_total = Counter(
    "anomaly_persistence_failures_total",
    "Total number of failed transaction saves",
    ["policy"],
    registry=registry
)

gemini_api_calls_total = Counter(
    "gemini_api_calls_total",
    "Total number of Gemini API calls",
    ["status"],
    registry=registry
)

gemini_api_latency_ms = Histogram(
    "gemini_api_latency_ms",
    "Gemini API latency in milliseconds",
    buckets=[250, 500, 1000, 2000, 5000, 10000, 20000, 60000],
    registry=registry
)


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics in OpenMetrics format.

    Returns:
        bytes: Metrics in Prometheus exposition format
    """
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST

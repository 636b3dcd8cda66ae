"""
Structured JSON logging for the anomaly detection pipeline.
Provides consistent logging format across ingestion, persistence and analysis.
"""
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

LOGGER_NAME = "anomaly_detector"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Custom JSON formatter with additional fields
    """

    def __init__(self, *args, environment: str = "development", **kwargs):
        super().__init__(*args, **kwargs)
        self.environment = environment

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any]
    ) -> None:
        """
        Add custom fields to log record

        Args:
            log_record: Dictionary to add fields to
            record: Original log record
            message_dict: Message dictionary
        """
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = (
                datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
            )

        if log_record.get('level'):
            log_record['level'] = log_record['level'].upper()
        else:
            log_record['level'] = record.levelname

        log_record['service'] = 'anomaly-detector'
        log_record['environment'] = self.environment
        log_record['logger'] = record.name


def setup_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    environment: str = "development",
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure logging for the anomaly detector package.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use JSON format (default: True)
        environment: Environment name added to every JSON record
        log_file: Optional path to log file (defaults to stdout only)

    Returns:
        Configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Remove existing handlers
    logger.handlers.clear()

    if json_format:
        formatter: logging.Formatter = CustomJsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s',
            environment=environment,
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Prevent propagation to root logger
    logger.propagate = False

    # Third-party SDKs are noisy at INFO
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('postgrest').setLevel(logging.WARNING)

    return logger


def log_ingestion_rejected(logger: logging.Logger, error: Exception) -> None:
    """Log a CSV that could not be ingested."""
    logger.warning(
        "CSV ingestion rejected",
        extra={
            "status": "ingestion_rejected",
            "details": {"error_type": type(error).__name__, "error": str(error)},
        },
    )


def log_phase_change(
    logger: logging.Logger,
    previous: str,
    current: str,
    row_count: int,
) -> None:
    """Log a pipeline phase transition."""
    logger.info(
        f"Pipeline phase {previous} -> {current}",
        extra={
            "status": "phase_changed",
            "details": {"from": previous, "to": current, "row_count": row_count},
        },
    )


def log_persistence_skipped(logger: logging.Logger, row_count: int) -> None:
    """Log that persistence is disabled."""
    logger.warning(
        "Skipping DB save: No Supabase configuration found.",
        extra={"status": "persistence_skipped", "details": {"row_count": row_count}},
    )


def log_batch_persisted(
    logger: logging.Logger,
    table: str,
    batch_number: int,
    total_batches: int,
    batch_size: int,
) -> None:
    """Log a committed insert batch."""
    logger.info(
        f"Inserted batch {batch_number}/{total_batches} into {table}",
        extra={
            "status": "batch_persisted",
            "details": {
                "table": table,
                "batch_number": batch_number,
                "total_batches": total_batches,
                "batch_size": batch_size,
            },
        },
    )


def log_persistence_failure(
    logger: logging.Logger,
    error: str,
    policy: str,
) -> None:
    """Log a failed save and the policy applied to it."""
    logger.error(
        "DB save failed",
        extra={
            "status": "persistence_failed",
            "details": {"error": error, "policy": policy},
        },
    )


def log_analysis_request(
    logger: logging.Logger,
    model: str,
    submitted_rows: int,
    total_rows: int,
) -> None:
    """Log an outbound anomaly analysis request."""
    logger.info(
        f"Requesting anomaly analysis from {model}",
        extra={
            "status": "analysis_requested",
            "details": {
                "model": model,
                "submitted_rows": submitted_rows,
                "total_rows": total_rows,
            },
        },
    )


def log_analysis_complete(
    logger: logging.Logger,
    anomaly_count: int,
    latency_ms: int,
) -> None:
    """Log a decoded anomaly analysis response."""
    logger.info(
        "Anomaly analysis completed",
        extra={
            "status": "analysis_completed",
            "details": {"anomaly_count": anomaly_count, "latency_ms": latency_ms},
        },
    )

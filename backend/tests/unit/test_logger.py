"""Unit tests for structured logging."""

import json
import logging
from io import StringIO

from anomaly_detector.logger import (
    CustomJsonFormatter,
    log_analysis_complete,
    log_analysis_request,
    log_batch_persisted,
    log_ingestion_rejected,
    log_persistence_failure,
    log_persistence_skipped,
    log_phase_change,
    setup_logging,
)
from anomaly_detector.errors import MissingColumnsError


def _record(msg="Test message", name="test_logger"):
    return logging.LogRecord(
        name=name,
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestCustomJsonFormatter:
    """Tests for CustomJsonFormatter."""

    def test_basic_fields(self):
        """Test that the formatter outputs valid JSON with service fields."""
        formatter = CustomJsonFormatter("%(message)s", environment="test")

        log_data = json.loads(formatter.format(_record()))

        assert log_data["message"] == "Test message"
        assert log_data["level"] == "INFO"
        assert log_data["logger"] == "test_logger"
        assert log_data["service"] == "anomaly-detector"
        assert log_data["environment"] == "test"

    def test_timestamp_is_utc_iso8601(self):
        from datetime import datetime

        formatter = CustomJsonFormatter("%(message)s")
        log_data = json.loads(formatter.format(_record()))

        assert log_data["timestamp"].endswith("Z")
        datetime.fromisoformat(log_data["timestamp"].replace("Z", "+00:00"))

    def test_extra_fields(self):
        formatter = CustomJsonFormatter("%(message)s")
        record = _record("Inserted batch")
        record.status = "batch_persisted"
        record.details = {"batch_number": 1}

        log_data = json.loads(formatter.format(record))

        assert log_data["status"] == "batch_persisted"
        assert log_data["details"] == {"batch_number": 1}


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_returns_package_logger(self):
        logger = setup_logging()
        assert logger.name == "anomaly_detector"
        assert logger.propagate is False

    def test_sets_level(self):
        assert setup_logging(log_level="DEBUG").level == logging.DEBUG
        assert setup_logging(log_level="warning").level == logging.WARNING

    def test_replaces_handlers(self):
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1

    def test_text_format(self):
        logger = setup_logging(json_format=False)
        assert not isinstance(logger.handlers[0].formatter, CustomJsonFormatter)

    def test_log_file(self, tmp_path):
        path = tmp_path / "app.log"
        logger = setup_logging(log_file=str(path))

        logger.info("written to file")
        for handler in logger.handlers:
            handler.flush()

        assert "written to file" in path.read_text()
        setup_logging()


class TestLogHelperFunctions:
    """Tests for log helper functions."""

    def setup_method(self):
        """Set up a logger with string buffer for testing."""
        self.logger = logging.getLogger("test_anomaly_detector")
        self.logger.setLevel(logging.DEBUG)
        self.logger.handlers.clear()
        self.logger.propagate = False

        self.log_buffer = StringIO()
        handler = logging.StreamHandler(self.log_buffer)
        handler.setFormatter(CustomJsonFormatter("%(message)s"))
        self.logger.addHandler(handler)

    def get_last_log(self):
        """Parse the last log entry as JSON."""
        lines = self.log_buffer.getvalue().strip().split("\n")
        return json.loads(lines[-1])

    def test_log_ingestion_rejected(self):
        log_ingestion_rejected(self.logger, MissingColumnsError(["amount"]))

        entry = self.get_last_log()
        assert entry["level"] == "WARNING"
        assert entry["status"] == "ingestion_rejected"
        assert entry["details"]["error_type"] == "MissingColumnsError"

    def test_log_phase_change(self):
        log_phase_change(self.logger, "idle", "saving", 12)

        entry = self.get_last_log()
        assert entry["status"] == "phase_changed"
        assert entry["details"] == {"from": "idle", "to": "saving", "row_count": 12}

    def test_log_persistence_skipped(self):
        log_persistence_skipped(self.logger, 3)

        entry = self.get_last_log()
        assert entry["message"] == "Skipping DB save: No Supabase configuration found."
        assert entry["level"] == "WARNING"

    def test_log_batch_persisted(self):
        log_batch_persisted(self.logger, "transactions", 2, 3, 1000)

        entry = self.get_last_log()
        assert entry["message"] == "Inserted batch 2/3 into transactions"
        assert entry["details"]["batch_size"] == 1000

    def test_log_persistence_failure(self):
        log_persistence_failure(self.logger, "Database Error: timeout", "continue")

        entry = self.get_last_log()
        assert entry["level"] == "ERROR"
        assert entry["details"]["policy"] == "continue"

    def test_log_analysis_request_and_complete(self):
        log_analysis_request(self.logger, "gemini-2.5-flash", 1500, 4200)
        assert self.get_last_log()["details"]["submitted_rows"] == 1500

        log_analysis_complete(self.logger, 4, 812)
        entry = self.get_last_log()
        assert entry["status"] == "analysis_completed"
        assert entry["details"] == {"anomaly_count": 4, "latency_ms": 812}

"""
Custom exception classes for the anomaly detector.

Defines specific error types for each pipeline stage. Every exception carries
a single-line, user-facing message in ``str(exc)``.
"""

from typing import List, Sequence


class AnomalyDetectorError(Exception):
    """Base exception for all anomaly detector errors."""

    pass


# ==================== Ingestion ====================


class IngestionError(AnomalyDetectorError):
    """Raised when an uploaded CSV cannot be turned into transaction rows."""

    pass


class EmptyDatasetError(IngestionError):
    """Raised when the uploaded CSV contains no data rows."""

    def __init__(self, message: str = "The CSV file is empty."):
        super().__init__(message)


class MissingColumnsError(IngestionError):
    """Raised when required columns are absent from the CSV header."""

    def __init__(self, missing: Sequence[str]):
        self.missing: List[str] = list(missing)
        super().__init__(f"Missing required columns: {', '.join(self.missing)}")


class TokenizeError(IngestionError):
    """Raised when the CSV tokenizer reports an error."""

    def __init__(self, message: str):
        self.detail = message
        super().__init__(f"CSV Parsing Error: {message}")


# ==================== Persistence ====================


class PersistenceError(AnomalyDetectorError):
    """Raised when a batch insert into the transactions table fails."""

    def __init__(self, message: str):
        self.detail = message
        super().__init__(f"Database Error: {message}")


# ==================== Analysis ====================


class ConfigurationError(AnomalyDetectorError):
    """Raised when a required credential or setting is missing."""

    pass


class AnalysisError(AnomalyDetectorError):
    """Raised when the LLM call fails or its response cannot be decoded."""

    pass


class EmptyResponseError(AnalysisError):
    """Raised when the LLM endpoint returns no text."""

    def __init__(self, message: str = "Empty response from Gemini."):
        super().__init__(message)


# ==================== Orchestration ====================


class PipelineBusyError(AnomalyDetectorError):
    """Raised when an upload or reset arrives while the pipeline cannot take it."""

    def __init__(self, phase: str):
        self.phase = phase
        super().__init__(
            f"An analysis is already in progress or awaiting reset (phase: {phase})."
        )

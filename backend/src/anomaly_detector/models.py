"""
Data models for the anomaly detector using Pydantic v2.

Defines transaction rows, LLM anomaly records, analysis results and the
pipeline phases with validation rules.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

REQUIRED_COLUMNS = ("BA", "monthly", "actCode", "amount")


class Severity(str, Enum):
    """Severity assigned to an anomaly by the LLM."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class PipelinePhase(str, Enum):
    """Visible step of the upload → persist → analyze pipeline."""

    IDLE = "idle"
    SAVING = "saving"
    ANALYZING = "analyzing"
    SUCCESS = "success"
    FAILED = "failed"


class PersistenceFailurePolicy(str, Enum):
    """What the pipeline does when saving transactions fails."""

    CONTINUE = "continue"
    ABORT = "abort"


def _as_text(v):
    # Identifier columns may arrive as numbers from JSON or the LLM.
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class TransactionRow(BaseModel):
    """One transaction parsed from the uploaded CSV."""

    model_config = ConfigDict(extra="allow")

    BA: str = Field(..., description="Business area code")
    monthly: str = Field(..., description="Period identifier (YYYYMM)")
    actCode: str = Field(..., description="Account code")
    amount: float = Field(..., description="Transaction amount")

    @field_validator("BA", "monthly", "actCode", mode="before")
    @classmethod
    def identifiers_as_text(cls, v):
        return _as_text(v)

    def to_record(self) -> dict:
        """Map the row to the storage schema of the transactions table."""
        return {
            "ba": self.BA,
            "monthly": self.monthly,
            "act_code": self.actCode,
            "amount": self.amount,
        }


class IngestionResult(BaseModel):
    """Rows produced by a successful CSV ingestion."""

    rows: List[TransactionRow] = Field(..., min_length=1)
    headers: List[str] = Field(..., description="Header names detected in the CSV")

    @property
    def row_count(self) -> int:
        return len(self.rows)


class AnomalyRecord(BaseModel):
    """A row flagged by the LLM, referenced by its position in the analyzed sample."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., description="0-based index of the row in the submitted sample")
    actCode: str
    monthly: str
    amount: float
    reason: str = Field(..., description="Explanation of the anomaly (Thai)")
    severity: Severity

    @field_validator("actCode", "monthly", mode="before")
    @classmethod
    def identifiers_as_text(cls, v):
        return _as_text(v)


class AnalysisResult(BaseModel):
    """Structured output returned by the anomaly analysis step."""

    summary: str = Field(..., description="Overall data quality summary (Thai)")
    anomalies: List[AnomalyRecord] = Field(
        ..., description="Flagged rows, most significant first (at most 10 requested)"
    )


class PersistenceReport(BaseModel):
    """Outcome of saving transactions to the hosted database."""

    skipped: bool = Field(default=False, description="True when persistence is not configured")
    records_written: int = Field(default=0, ge=0)
    batches_written: int = Field(default=0, ge=0)


class PipelineSnapshot(BaseModel):
    """Read-only copy of the orchestrator's session state."""

    phase: PipelinePhase = PipelinePhase.IDLE
    status_message: str = ""
    error: Optional[str] = Field(default=None, description="Fatal error shown in the banner")
    rows: List[TransactionRow] = Field(default_factory=list)
    result: Optional[AnalysisResult] = None

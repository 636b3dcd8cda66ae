"""
Anomaly Detector AI

Uploads financial transaction CSVs, stores them in Supabase and asks Google
Gemini to flag outlying amounts, with a Streamlit dashboard and a FastAPI
service on top of the same pipeline.
"""

__version__ = "0.1.0"
__author__ = "DINNR Team"

from .models import (
    AnalysisResult,
    AnomalyRecord,
    IngestionResult,
    PersistenceFailurePolicy,
    PipelinePhase,
    Severity,
    TransactionRow,
)
from .config import Settings, get_settings
from .logger import setup_logging
from .ingestion import ingest_csv
from .persistence import SupabaseTransactionStore
from .analysis import GeminiAnomalyAnalyzer
from .pipeline import AnomalyPipeline

__all__ = [
    "AnalysisResult",
    "AnomalyRecord",
    "IngestionResult",
    "PersistenceFailurePolicy",
    "PipelinePhase",
    "Severity",
    "TransactionRow",
    "Settings",
    "get_settings",
    "setup_logging",
    "ingest_csv",
    "SupabaseTransactionStore",
    "GeminiAnomalyAnalyzer",
    "AnomalyPipeline",
]

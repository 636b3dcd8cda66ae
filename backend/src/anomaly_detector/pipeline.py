"""
Orchestration of the upload → persist → analyze workflow.

The pipeline owns the session state (phase, rows, analysis result, error)
and is the only place that changes it.
"""

import logging
from typing import Callable, List, Optional, Sequence

from . import observability
from .analysis import FALLBACK_ERROR_MESSAGE, GeminiAnomalyAnalyzer
from .config import Settings
from .errors import (
    AnalysisError,
    AnomalyDetectorError,
    EmptyDatasetError,
    IngestionError,
    PersistenceError,
    PipelineBusyError,
)
from .ingestion import CsvSource, ingest_csv
from .logger import log_ingestion_rejected, log_persistence_failure, log_phase_change
from .models import (
    AnalysisResult,
    PersistenceFailurePolicy,
    PersistenceReport,
    PipelinePhase,
    PipelineSnapshot,
    TransactionRow,
)
from .persistence import SupabaseTransactionStore

logger = logging.getLogger(__name__)

PhaseCallback = Callable[[PipelinePhase, str], None]

STATUS_MESSAGES = {
    PipelinePhase.IDLE: "",
    PipelinePhase.SAVING: "Saving transactions to Supabase...",
    PipelinePhase.ANALYZING: "Analyzing data with Gemini AI...",
    PipelinePhase.SUCCESS: "Analysis complete.",
    PipelinePhase.FAILED: "Analysis Failed",
}

# A run suspended in one of these phases still owns the session
IN_FLIGHT_PHASES = frozenset({PipelinePhase.SAVING, PipelinePhase.ANALYZING})


class AnomalyPipeline:
    """
    Runs one upload at a time through persistence and analysis.

    Phases move Idle → Saving → Analyzing → Success/Failed and back to Idle
    on reset. A persistence failure is tolerated under the ``continue``
    policy and ends the run under ``abort``. Ingestion errors leave the
    pipeline Idle with the error recorded.
    """

    def __init__(
        self,
        store: SupabaseTransactionStore,
        analyzer: GeminiAnomalyAnalyzer,
        on_persistence_failure: PersistenceFailurePolicy = PersistenceFailurePolicy.CONTINUE,
        on_phase_change: Optional[PhaseCallback] = None,
    ):
        self.store = store
        self.analyzer = analyzer
        self.on_persistence_failure = PersistenceFailurePolicy(on_persistence_failure)
        self.on_phase_change = on_phase_change

        self._phase = PipelinePhase.IDLE
        self._rows: List[TransactionRow] = []
        self._result: Optional[AnalysisResult] = None
        self._error: Optional[str] = None
        self.phase_history: List[PipelinePhase] = [PipelinePhase.IDLE]
        self.last_persistence: Optional[PersistenceReport] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        on_phase_change: Optional[PhaseCallback] = None,
    ) -> "AnomalyPipeline":
        """Build a pipeline with default Supabase and Gemini clients."""
        return cls(
            store=SupabaseTransactionStore.from_settings(settings),
            analyzer=GeminiAnomalyAnalyzer.from_settings(settings),
            on_persistence_failure=settings.on_persistence_failure,
            on_phase_change=on_phase_change,
        )

    @property
    def phase(self) -> PipelinePhase:
        return self._phase

    def _transition(self, phase: PipelinePhase) -> None:
        previous = self._phase
        self._phase = phase
        self.phase_history.append(phase)
        observability.phase_transitions_total.labels(phase=phase.value).inc()
        log_phase_change(logger, previous.value, phase.value, len(self._rows))
        if self.on_phase_change is not None:
            self.on_phase_change(phase, STATUS_MESSAGES[phase])

    def _fail(self, message: str) -> None:
        self._error = message
        self._transition(PipelinePhase.FAILED)
        observability.pipeline_runs_total.labels(outcome="failed").inc()

    def _ensure_idle(self) -> None:
        if self._phase != PipelinePhase.IDLE:
            raise PipelineBusyError(self._phase.value)

    def snapshot(self) -> PipelineSnapshot:
        """Return a copy of the current session state."""
        return PipelineSnapshot(
            phase=self._phase,
            status_message=STATUS_MESSAGES[self._phase],
            error=self._error,
            rows=list(self._rows),
            result=self._result,
        )

    def reset(self) -> PipelineSnapshot:
        """
        Discard rows, result and error and return to Idle.

        Raises:
            PipelineBusyError: If a run is still saving or analyzing
        """
        if self._phase in IN_FLIGHT_PHASES:
            raise PipelineBusyError(self._phase.value)

        self._rows = []
        self._result = None
        self._error = None
        self.last_persistence = None
        if self._phase != PipelinePhase.IDLE:
            self._transition(PipelinePhase.IDLE)
        return self.snapshot()

    async def process_upload(self, source: CsvSource) -> PipelineSnapshot:
        """
        Ingest an uploaded CSV and run it through the pipeline.

        Args:
            source: Raw CSV bytes, a path or a binary file-like object

        Returns:
            Snapshot of the session after the run (or after the rejected upload)

        Raises:
            PipelineBusyError: If the pipeline is not Idle
        """
        self._ensure_idle()

        try:
            ingestion = ingest_csv(source)
        except IngestionError as e:
            self._rows = []
            self._result = None
            self._error = str(e)
            observability.ingestion_rejections_total.labels(
                error_type=type(e).__name__
            ).inc()
            log_ingestion_rejected(logger, e)
            return self.snapshot()

        return await self.run(ingestion.rows)

    async def run(self, rows: Sequence[TransactionRow]) -> PipelineSnapshot:
        """
        Persist then analyze already-ingested rows.

        Raises:
            PipelineBusyError: If the pipeline is not Idle
            EmptyDatasetError: If no rows are given
        """
        self._ensure_idle()
        if not rows:
            raise EmptyDatasetError()

        self._rows = list(rows)
        self._result = None
        self._error = None

        self._transition(PipelinePhase.SAVING)
        try:
            self.last_persistence = await self.store.save_transactions(self._rows)
        except Exception as e:
            error = e if isinstance(e, PersistenceError) else PersistenceError(str(e))
            observability.persistence_failures_total.labels(
                policy=self.on_persistence_failure.value
            ).inc()
            log_persistence_failure(logger, str(error), self.on_persistence_failure.value)
            if self.on_persistence_failure == PersistenceFailurePolicy.ABORT:
                self._fail(str(error))
                return self.snapshot()

        self._transition(PipelinePhase.ANALYZING)
        try:
            self._result = await self.analyzer.detect_anomalies(self._rows)
        except AnomalyDetectorError as e:
            self._fail(str(e))
            return self.snapshot()
        except Exception as e:
            logger.error(
                f"Unexpected analysis failure: {e}",
                extra={"status": "analysis_failed", "details": {"error_type": type(e).__name__}},
            )
            self._fail(str(AnalysisError(str(e) or FALLBACK_ERROR_MESSAGE)))
            return self.snapshot()

        self._transition(PipelinePhase.SUCCESS)
        observability.pipeline_runs_total.labels(outcome="success").inc()
        return self.snapshot()

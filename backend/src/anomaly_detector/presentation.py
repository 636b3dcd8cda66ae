"""
View models for the dashboard.

Reconciles anomaly records returned by the analysis step with the uploaded
rows by position, and prepares chart points, table rows and banners. Nothing
here touches Streamlit or Plotly, so the same view model backs both the
dashboard and the HTTP API.
"""

import logging
from typing import List, Optional, Sequence, Set

from pydantic import BaseModel, Field

from .models import AnomalyRecord, PipelinePhase, PipelineSnapshot, Severity, TransactionRow

logger = logging.getLogger(__name__)

DISPLAY_LIMIT = 2000

CHART_TITLE = "Distribution Analysis (Amount vs Monthly)"
TABLE_TITLE = "Top Detected Anomalies"
TABLE_COLUMNS = ("ActCode", "Monthly", "Amount", "Severity", "AI Reasoning (Thai)")
UPLOAD_HINT = "Expected CSV Format: BA,monthly,actCode,amount"
ERROR_TITLE = "Analysis Failed"
RETRY_LABEL = "Try Again"
NEW_ANALYSIS_LABEL = "New Analysis"

NORMAL_COLOUR = "#94a3b8"
ANOMALY_COLOUR = "#ef4444"

SEVERITY_BADGES = {
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}

PHASE_CAPTIONS = {
    PipelinePhase.SAVING: "Securely storing transaction records...",
    PipelinePhase.ANALYZING: "Detecting outliers and generating explanations in Thai.",
}


class PlotPoint(BaseModel):
    """One uploaded row positioned on the scatter chart."""

    index: int = Field(..., description="Position of the row in the uploaded sequence")
    x: str = Field(..., description="Monthly period (categorical axis)")
    y: float = Field(..., description="Amount")
    actCode: str
    is_anomaly: bool = False


class ChartData(BaseModel):
    """Scatter chart input split into normal and anomalous points."""

    normal: List[PlotPoint] = Field(default_factory=list)
    anomalies: List[PlotPoint] = Field(default_factory=list)
    unmatched_ids: List[int] = Field(
        default_factory=list,
        description="Anomaly ids with no displayed row",
    )
    total_rows: int = 0

    @property
    def displayed_rows(self) -> int:
        return len(self.normal) + len(self.anomalies)


class AnomalyTableRow(BaseModel):
    """One ranked anomaly as shown in the table."""

    id: int
    actCode: str
    monthly: str
    amount: float
    amount_display: str
    severity: Severity
    badge_colour: str
    reason: str


class ErrorBanner(BaseModel):
    title: str = ERROR_TITLE
    message: str
    action_label: str = RETRY_LABEL


class DashboardView(BaseModel):
    """Everything the UI needs to render one session."""

    phase: PipelinePhase
    status_message: str = ""
    status_caption: str = ""
    upload_hint: str = UPLOAD_HINT
    show_uploader: bool = True
    show_new_analysis: bool = False
    inline_error: Optional[str] = Field(
        default=None, description="Ingestion error shown under the uploader"
    )
    error_banner: Optional[ErrorBanner] = None
    summary: Optional[str] = None
    row_count: int = 0
    anomaly_count: int = 0
    chart: Optional[ChartData] = None
    table: List[AnomalyTableRow] = Field(default_factory=list)

    @property
    def show_table(self) -> bool:
        return bool(self.table)


def format_amount(value: float) -> str:
    """Thousands separators, up to three decimals, no trailing zeros."""
    text = f"{value:,.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def format_amount_tick(value: float) -> str:
    """Axis label: 1500 -> '1.5k', smaller values unchanged."""
    if value >= 1000:
        return f"{value / 1000:.1f}k"
    return f"{value:g}"


def anomaly_index_set(anomalies: Sequence[AnomalyRecord]) -> Set[int]:
    """Lookup set of the row positions referenced by anomaly records."""
    return {anomaly.id for anomaly in anomalies}


def build_chart_data(
    rows: Sequence[TransactionRow],
    anomalies: Sequence[AnomalyRecord],
    display_limit: int = DISPLAY_LIMIT,
) -> ChartData:
    """
    Map the leading rows to plot points and flag the anomalous ones.

    Row ``i`` is an anomaly exactly when some record has ``id == i``. Ids
    that do not land on a displayed row are reported in ``unmatched_ids``
    instead of raising.
    """
    flagged = anomaly_index_set(anomalies)
    displayed = rows[:display_limit]

    chart = ChartData(total_rows=len(rows))
    for index, row in enumerate(displayed):
        point = PlotPoint(
            index=index,
            x=row.monthly,
            y=row.amount,
            actCode=row.actCode,
            is_anomaly=index in flagged,
        )
        if point.is_anomaly:
            chart.anomalies.append(point)
        else:
            chart.normal.append(point)

    chart.unmatched_ids = sorted(i for i in flagged if i < 0 or i >= len(displayed))
    if chart.unmatched_ids:
        logger.warning(
            "Anomaly ids do not match any displayed row",
            extra={
                "status": "unmatched_anomalies",
                "details": {
                    "unmatched_ids": chart.unmatched_ids,
                    "displayed_rows": len(displayed),
                },
            },
        )
    return chart


def build_anomaly_table(anomalies: Sequence[AnomalyRecord]) -> List[AnomalyTableRow]:
    """Table rows in the order the model ranked them."""
    return [
        AnomalyTableRow(
            id=anomaly.id,
            actCode=anomaly.actCode,
            monthly=anomaly.monthly,
            amount=anomaly.amount,
            amount_display=format_amount(anomaly.amount),
            severity=anomaly.severity,
            badge_colour=SEVERITY_BADGES[anomaly.severity],
            reason=anomaly.reason,
        )
        for anomaly in anomalies
    ]


def build_dashboard(
    snapshot: PipelineSnapshot,
    display_limit: int = DISPLAY_LIMIT,
) -> DashboardView:
    """Assemble the view model for the current session state."""
    phase = snapshot.phase
    view = DashboardView(
        phase=phase,
        status_message=snapshot.status_message,
        status_caption=PHASE_CAPTIONS.get(phase, ""),
        show_uploader=phase == PipelinePhase.IDLE,
        show_new_analysis=phase in (PipelinePhase.SUCCESS, PipelinePhase.FAILED),
        row_count=len(snapshot.rows),
    )

    if phase == PipelinePhase.IDLE:
        view.inline_error = snapshot.error
    elif phase == PipelinePhase.FAILED:
        view.error_banner = ErrorBanner(message=snapshot.error or "")

    if phase == PipelinePhase.SUCCESS and snapshot.result is not None:
        anomalies = snapshot.result.anomalies
        view.summary = snapshot.result.summary
        view.anomaly_count = len(anomalies)
        view.chart = build_chart_data(snapshot.rows, anomalies, display_limit)
        view.table = build_anomaly_table(anomalies)

    return view

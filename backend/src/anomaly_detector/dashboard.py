"""Streamlit dashboard for the anomaly detector.

Replaceable UI layer: all pipeline state lives in ``AnomalyPipeline`` and all
display decisions come from ``presentation.build_dashboard``.

Run with::

    streamlit run backend/src/anomaly_detector/dashboard.py
"""

import asyncio
from typing import List, Sequence, Tuple

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from anomaly_detector.config import get_settings
from anomaly_detector.logger import setup_logging
from anomaly_detector.models import PipelinePhase
from anomaly_detector.pipeline import AnomalyPipeline
from anomaly_detector.presentation import (
    ANOMALY_COLOUR,
    CHART_TITLE,
    NEW_ANALYSIS_LABEL,
    NORMAL_COLOUR,
    PHASE_CAPTIONS,
    TABLE_COLUMNS,
    TABLE_TITLE,
    AnomalyTableRow,
    ChartData,
    DashboardView,
    PlotPoint,
    build_dashboard,
    format_amount,
    format_amount_tick,
)

BADGE_STYLES = {
    "red": "background-color: #fee2e2; color: #991b1b",
    "yellow": "background-color: #fef9c3; color: #854d0e",
    "blue": "background-color: #dbeafe; color: #1e40af",
}


# ── Figure and table builders ─────────────────────────────────────────────
def amount_ticks(values: Sequence[float], count: int = 6) -> Tuple[List[float], List[str]]:
    """Evenly spaced y-axis ticks labelled with the compact ``1.5k`` style."""
    if not values:
        return [], []
    low, high = min(0.0, min(values)), max(values)
    if high == low:
        tickvals = [low]
    else:
        step = (high - low) / (count - 1)
        tickvals = [low + step * i for i in range(count)]
    return tickvals, [format_amount_tick(v) for v in tickvals]


def _scatter_trace(points: List[PlotPoint], name: str, anomaly: bool) -> go.Scatter:
    tag = "<br><b>Anomaly</b>" if anomaly else ""
    return go.Scatter(
        x=[p.x for p in points],
        y=[p.y for p in points],
        mode="markers",
        name=name,
        marker=dict(
            color=ANOMALY_COLOUR if anomaly else NORMAL_COLOUR,
            symbol="x" if anomaly else "circle",
            size=11 if anomaly else 8,
            opacity=1.0 if anomaly else 0.6,
        ),
        customdata=[[p.actCode, format_amount(p.y), p.index] for p in points],
        hovertemplate=(
            "Monthly: %{x}<br>Amount: %{customdata[1]}<br>"
            "ActCode: %{customdata[0]}" + tag + "<extra></extra>"
        ),
    )


def build_scatter_figure(chart: ChartData) -> go.Figure:
    """Amount vs monthly scatter with anomalies drawn as red crosses."""
    fig = go.Figure()
    fig.add_trace(_scatter_trace(chart.normal, "Normal Transactions", anomaly=False))
    fig.add_trace(_scatter_trace(chart.anomalies, "Anomalies", anomaly=True))

    tickvals, ticktext = amount_ticks([p.y for p in chart.normal + chart.anomalies])
    fig.update_layout(
        title=CHART_TITLE,
        height=420,
        template="plotly_white",
        margin=dict(l=20, r=20, t=60, b=20),
        legend=dict(orientation="h", yanchor="bottom", y=-0.25),
        xaxis=dict(title="Monthly", type="category", categoryorder="category ascending"),
        yaxis=dict(title="Amount", tickmode="array", tickvals=tickvals, ticktext=ticktext),
    )
    return fig


def build_table_frame(rows: List[AnomalyTableRow]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            [row.actCode, row.monthly, row.amount_display, row.severity.value, row.reason]
            for row in rows
        ],
        columns=list(TABLE_COLUMNS),
    )


def style_table(frame: pd.DataFrame, rows: List[AnomalyTableRow]):
    """Colour the severity column with the badge colour of each row."""
    styles = [BADGE_STYLES[row.badge_colour] for row in rows]
    return frame.style.apply(lambda _: styles, subset=["Severity"], axis=0)


# ── Session ───────────────────────────────────────────────────────────────
def _init_state() -> None:
    if "pipeline" not in st.session_state:
        settings = get_settings()
        setup_logging(
            settings.log_level,
            json_format=settings.log_format == "json",
            environment=settings.environment,
        )
        st.session_state.pipeline = AnomalyPipeline.from_settings(settings)
    st.session_state.setdefault("uploader_generation", 0)
    st.session_state.setdefault("processed_upload", None)


def _reset() -> None:
    st.session_state.pipeline.reset()
    st.session_state.uploader_generation += 1
    st.session_state.processed_upload = None


def _run_upload(pipeline: AnomalyPipeline, uploaded) -> None:
    status = st.empty()

    def show_phase(phase: PipelinePhase, message: str) -> None:
        caption = PHASE_CAPTIONS.get(phase, "")
        status.info(f"**{message}**\n\n{caption}" if caption else message)

    pipeline.on_phase_change = show_phase
    try:
        with st.spinner("Processing upload..."):
            asyncio.run(pipeline.process_upload(uploaded.getvalue()))
    finally:
        pipeline.on_phase_change = None
        status.empty()


# ── Renderers ─────────────────────────────────────────────────────────────
def _render_uploader(view: DashboardView) -> None:
    st.subheader("Detect Financial Anomalies with AI")
    uploaded = st.file_uploader(
        "Upload transactions (CSV)",
        type=["csv"],
        key=f"uploader_{st.session_state.uploader_generation}",
    )
    st.caption(view.upload_hint)

    if view.inline_error:
        st.error(view.inline_error)

    if uploaded is None:
        return
    upload_id = getattr(uploaded, "file_id", None) or f"{uploaded.name}:{uploaded.size}"
    if upload_id == st.session_state.processed_upload:
        return

    st.session_state.processed_upload = upload_id
    _run_upload(st.session_state.pipeline, uploaded)
    st.rerun()


def _render_failure(view: DashboardView) -> None:
    banner = view.error_banner
    st.error(f"**{banner.title}**\n\n{banner.message}")
    if st.button(banner.action_label, type="primary"):
        _reset()
        st.rerun()


def _render_results(view: DashboardView) -> None:
    st.subheader("Analysis Summary")
    st.info(view.summary)

    cols = st.columns(3)
    cols[0].metric("Transactions", f"{view.row_count:,}")
    cols[1].metric("Anomalies", view.anomaly_count)
    cols[2].metric("Plotted", f"{view.chart.displayed_rows:,}")

    st.plotly_chart(build_scatter_figure(view.chart), use_container_width=True)

    if view.show_table:
        st.subheader(TABLE_TITLE)
        frame = build_table_frame(view.table)
        st.dataframe(style_table(frame, view.table), use_container_width=True, hide_index=True)


def main() -> None:
    st.set_page_config(page_title="Anomaly Detector AI", page_icon="📈", layout="wide")
    _init_state()

    pipeline: AnomalyPipeline = st.session_state.pipeline
    view = build_dashboard(pipeline.snapshot(), get_settings().display_max_rows)

    header, action = st.columns([4, 1])
    header.title("Anomaly Detector AI")
    if view.show_new_analysis and action.button(NEW_ANALYSIS_LABEL, use_container_width=True):
        _reset()
        st.rerun()

    if view.phase == PipelinePhase.IDLE:
        _render_uploader(view)
    elif view.phase == PipelinePhase.FAILED:
        _render_failure(view)
    elif view.phase == PipelinePhase.SUCCESS:
        _render_results(view)
    else:
        st.info(view.status_message)


if __name__ == "__main__":
    main()

"""FastAPI wrapper around the anomaly detection pipeline.

Exposes the same upload → persist → analyze session as the dashboard over
HTTP. The app holds a single pipeline, so one analysis runs at a time.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .config import Settings, get_settings
from .errors import PipelineBusyError
from .logger import setup_logging
from .models import PipelinePhase
from .observability import get_metrics, get_metrics_content_type
from .pipeline import AnomalyPipeline
from .presentation import DashboardView, build_dashboard

SUPPORTED_EXTENSIONS = {".csv"}


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[AnomalyPipeline] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Optional Settings (if None, loads from environment)
        pipeline: Optional pre-built pipeline (if None, built from settings)

    Returns:
        FastAPI application instance
    """
    if settings is None:
        settings = get_settings()

    logger = setup_logging(
        log_level=settings.log_level,
        json_format=settings.log_format == "json",
        environment=settings.environment,
    )
    logger.info(
        "Initializing FastAPI application",
        extra={"status": "startup", "details": settings.to_dict()},
    )

    app = FastAPI(
        title="Anomaly Detector AI API",
        description="Upload transaction CSVs, store them in Supabase and flag anomalies with Gemini",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.logger = logger
    app.state.pipeline = pipeline or AnomalyPipeline.from_settings(settings)

    def _view(request: Request) -> DashboardView:
        return build_dashboard(
            request.app.state.pipeline.snapshot(),
            request.app.state.settings.display_max_rows,
        )

    # ==================== API Endpoints ====================

    @app.get("/api/v1/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        pipeline: AnomalyPipeline = request.app.state.pipeline
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "persistence_enabled": pipeline.store.enabled,
            "analysis_configured": bool(pipeline.analyzer.api_key),
        }

    @app.post("/api/v1/upload", response_model=DashboardView)
    async def upload_transactions(
        request: Request,
        file: UploadFile = File(..., description="Transactions CSV (BA,monthly,actCode,amount)"),
    ) -> DashboardView:
        """
        Upload a CSV and run it through persistence and analysis.

        A failed analysis is still a 200 response; the returned view carries
        the error banner.

        Raises:
            HTTPException: 400 for non-CSV files, 409 when an analysis is
                in progress or awaiting reset, 422 when the CSV is rejected
        """
        if file.filename and "." in file.filename:
            file_ext = "." + file.filename.rsplit(".", 1)[-1].lower()
            if file_ext not in SUPPORTED_EXTENSIONS:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Unsupported file type. Upload a .csv file",
                )

        content = await file.read()
        pipeline: AnomalyPipeline = request.app.state.pipeline

        try:
            snapshot = await pipeline.process_upload(content)
        except PipelineBusyError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

        if snapshot.phase == PipelinePhase.IDLE and snapshot.error:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=snapshot.error,
            )

        return _view(request)

    @app.get("/api/v1/state", response_model=DashboardView)
    async def get_state(request: Request) -> DashboardView:
        """Current session view."""
        return _view(request)

    @app.post("/api/v1/reset", response_model=DashboardView)
    async def reset(request: Request) -> DashboardView:
        """
        Clear rows, results and errors and return to idle.

        Raises:
            HTTPException: 409 while an upload is still saving or analyzing
        """
        try:
            request.app.state.pipeline.reset()
        except PipelineBusyError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        request.app.state.logger.info("Session reset", extra={"status": "reset"})
        return _view(request)

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=get_metrics(), media_type=get_metrics_content_type())

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "anomaly_detector.api:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=get_settings().log_level.lower(),
    )

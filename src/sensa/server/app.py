# Copyright (c) Syntropy Systems
"""FastAPI application serving read-only session snapshots."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Response

from sensa import __version__
from sensa.aggregate import ColorScale, color_of, max_abs_deviation
from sensa.config import load_config, require_sensa_dir
from sensa.errors import SensaError
from sensa.models.matrix import Statistic
from sensa.models.session import AnalysisSnapshot
from sensa.session import AnalysisSession
from sensa.store import list_sessions, load_session_by_name, open_session

from .models import HealthResponse, MatrixResponse, SessionListResponse, SessionSummary

logger = logging.getLogger(__name__)


def create_app(sensa_dir: Optional[Path] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        sensa_dir: Project .sensa directory (default: nearest one walking up)

    Returns:
        Configured FastAPI application

    """
    project = sensa_dir or require_sensa_dir()
    config = load_config(project)

    app = FastAPI(
        title="sensa server",
        description="Read-only polling API over sensitivity analysis sessions",
        version=__version__,
    )
    app.state.sensa_dir = project

    def _open(name: str) -> AnalysisSession:
        try:
            record = load_session_by_name(name, project)
        except FileNotFoundError as e:
            raise HTTPException(status_code=404, detail=f"Session {name} not found") from e
        try:
            return open_session(record, project, config=config)
        except FileNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except SensaError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

    @app.get("/api/v1/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(version=__version__)

    @app.get("/api/v1/sessions", response_model=SessionListResponse)
    def sessions() -> SessionListResponse:
        """List all sessions of the project."""
        summaries = [
            SessionSummary(
                name=record.name,
                session_id=record.session_id,
                model_path=record.model_path,
                state=record.plan.state,
                runs=len(record.runs),
                failed_runs=sum(1 for run in record.runs if run.failed),
                delta=record.settings.delta,
                stale=record.stale,
            )
            for record in list_sessions(project)
        ]
        return SessionListResponse(sessions=summaries)

    @app.get("/api/v1/sessions/{name}", response_model=AnalysisSnapshot)
    def snapshot(name: str) -> Response:
        """Snapshot of one session: state, progress, schedule and runs."""
        # Series may hold NaN
        payload = _open(name).snapshot().model_dump_json()
        return Response(content=payload, media_type="application/json")

    @app.get("/api/v1/sessions/{name}/matrix", response_model=MatrixResponse)
    def matrix(
        name: str,
        statistic: Optional[Statistic] = Query(None, description="Reducer applied to each series"),
        relative: Optional[bool] = Query(None, description="Add % change from the baseline"),
        scale: Optional[ColorScale] = Query(None, description="Color scale for relative cells"),
        saturation: Optional[float] = Query(None, gt=0),
        pending: bool = Query(False, description="Include runs that have not run yet"),
    ) -> MatrixResponse:
        """Value matrix of one session for a statistic."""
        session = _open(name)
        try:
            value_matrix = session.compute_matrix(
                statistic or config.default_statistic,
                relative=config.relative if relative is None else relative,
                include_pending=pending,
            )
        except SensaError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

        if value_matrix.relative is None:
            return MatrixResponse(session=name, matrix=value_matrix)

        limit = saturation or config.saturation or max_abs_deviation(value_matrix)
        try:
            color_scale = scale or ColorScale(config.color_scale)
        except ValueError as e:
            detail = f"Unknown color scale '{config.color_scale}' in config.yaml"
            raise HTTPException(status_code=422, detail=detail) from e
        colors = [
            [color_of(cell, color_scale, saturation=limit) for cell in row]
            for row in value_matrix.relative
        ]
        return MatrixResponse(
            session=name, matrix=value_matrix, saturation=limit, colors=colors
        )

    logger.info("Serving sessions from %s", project)
    return app

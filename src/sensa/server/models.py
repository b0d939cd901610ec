# Copyright (c) Syntropy Systems
"""Pydantic models for the sensa server API."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from sensa.models.matrix import ValueMatrix
from sensa.models.session import ControllerState


class HealthResponse(BaseModel):
    """Server health."""

    status: str = "ok"
    version: str


class SessionSummary(BaseModel):
    """One entry of the session list."""

    name: str
    session_id: str
    model_path: str
    state: ControllerState
    runs: int = Field(0, description="Recorded runs")
    failed_runs: int = 0
    delta: float
    stale: bool = False


class SessionListResponse(BaseModel):
    """All sessions of the project."""

    sessions: list[SessionSummary] = Field(default_factory=list)


class MatrixResponse(BaseModel):
    """Value matrix plus the colors of its relative cells."""

    session: str
    matrix: ValueMatrix
    saturation: Optional[float] = Field(None, description="Deviation at which colors saturate")
    colors: Optional[list[list[Optional[str]]]] = Field(
        None, description="Hex color per relative cell, null where uncolored"
    )

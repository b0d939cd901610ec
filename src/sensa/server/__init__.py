# Copyright (c) Syntropy Systems
"""sensa server module for polling session snapshots over HTTP."""

from .app import create_app
from .models import HealthResponse, MatrixResponse, SessionListResponse, SessionSummary

__all__ = [
    "HealthResponse",
    "MatrixResponse",
    "SessionListResponse",
    "SessionSummary",
    "create_app",
]

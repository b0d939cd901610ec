# Copyright (c) Syntropy Systems
"""Pydantic models for recorded runs and solver output."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, cast

from pydantic import Field, model_serializer, model_validator

from .base import JSONValue, SensaBaseModel

if TYPE_CHECKING:
    from collections.abc import ItemsView


class RunStatus(str, Enum):
    """Outcome of one solver invocation."""

    COMPLETED = "completed"
    FAILED = "failed"


class OutcomeStatistics(SensaBaseModel):
    """Scalar statistics of one outcome's time series within a run.

    Reducers that need at least one finite value are None when there is none.
    """

    n: int = 0
    sum: float | None = None
    mean: float | None = None
    sd: float | None = None
    minimum: float | None = None
    maximum: float | None = None
    non_zero: int = 0
    exceptions: int = 0
    last: float | None = None


class RunRecord(SensaBaseModel):
    """One entry in the run ledger.

    Index 0 is the baseline run (no parameter perturbed).
    """

    index: int
    parameter: str | None = None
    delta: float = 0.0
    selectors: list[str] = Field(default_factory=list)
    status: RunStatus = RunStatus.COMPLETED
    series: dict[str, list[float]] = Field(default_factory=dict)
    statistics: dict[str, OutcomeStatistics] = Field(default_factory=dict)
    started_at: str = ""
    finished_at: str = ""
    error_message: str | None = None
    messages: list[str] = Field(default_factory=list)

    @property
    def is_baseline(self) -> bool:
        """Return whether this is the unperturbed reference run."""
        return self.parameter is None

    @property
    def failed(self) -> bool:
        """Return whether the solver failed for this run."""
        return self.status == RunStatus.FAILED

    @property
    def label(self) -> str:
        """Column label used in tables and exports."""
        return "baseline" if self.parameter is None else self.parameter


class OutcomeValues(SensaBaseModel):
    """Wrapper for one line of outcome values written by a solver."""

    values: dict[str, JSONValue] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _wrap_values(cls, data: object) -> object:
        if isinstance(data, OutcomeValues):
            return data
        if isinstance(data, dict) and "values" not in data:
            return {"values": cast("dict[str, JSONValue]", data)}
        return cast("object", data)

    @model_serializer(mode="plain")
    def _serialize(self) -> dict[str, JSONValue]:
        return self.values

    def items(self) -> ItemsView[str, JSONValue]:
        """Return the mapping's items view."""
        return self.values.items()


class OutcomeLine(SensaBaseModel):
    """One line of outcomes.jsonl."""

    idx: int = Field(alias="_idx")
    timestamp: str = Field(alias="_timestamp")
    step: int | None = None
    outcomes: OutcomeValues = Field(default_factory=OutcomeValues)
    message: str | None = None


class SolverMeta(SensaBaseModel):
    """Solver run metadata stored in meta.json."""

    run_dir: str
    started_at: str
    finished_at: str | None = None
    status: str
    variant_file: str = "variant.json"
    outcomes_file: str = "outcomes.jsonl"

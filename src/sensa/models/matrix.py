# Copyright (c) Syntropy Systems
"""Pydantic models for the derived value matrix."""

from __future__ import annotations

from enum import Enum
from typing import Union

from pydantic import Field
from typing_extensions import TypeAlias

from .base import SensaBaseModel


class Statistic(str, Enum):
    """Reducer applied to an outcome's time series within one run."""

    N = "N"
    SUM = "sum"
    MEAN = "mean"
    SD = "sd"
    MIN = "min"
    MAX = "max"
    NON_ZERO = "nz"
    EXCEPTIONS = "except"
    LAST = "last"


class Sentinel(str, Enum):
    """Matrix cell states that carry no number."""

    NOT_RUN = "not_run"
    FAILED = "failed"
    UNDEFINED = "undefined"


Cell: TypeAlias = Union[float, Sentinel]


class ValueMatrix(SensaBaseModel):
    """Outcome rows by run columns, baseline column first.

    ``relative`` is only filled by ``percent_deviation``.
    """

    statistic: Statistic
    outcomes: list[str] = Field(default_factory=list)
    columns: list[str] = Field(default_factory=list)
    run_indices: list[int | None] = Field(default_factory=list)
    values: list[list[Cell]] = Field(default_factory=list)
    relative: list[list[Cell]] | None = None
    failed_runs: int = 0
    pending_runs: int = 0

    @property
    def baseline(self) -> list[Cell]:
        """Return the baseline cell of every row."""
        return [row[0] if row else Sentinel.NOT_RUN for row in self.values]

    def row(self, outcome: str) -> list[Cell]:
        """Return the absolute values for one outcome."""
        return self.values[self.outcomes.index(outcome)]

# Copyright (c) Syntropy Systems
"""Solver-side helpers for reporting outcomes to sensa.

A solver started by ``CommandModel`` finds its variant and run directory
in the environment. It reads parameter values from the variant and
appends outcome values to outcomes.jsonl:

    >>> import sensa
    >>> with sensa.init() as run:
    ...     capacity = run.value("CapacityA|UB")
    ...     for t in range(12):
    ...         run.record({"ProfitTotal": profit(capacity, t)}, step=t)
"""
from __future__ import annotations

import atexit
import math
import os
from contextlib import suppress
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError
from typing_extensions import Self

from sensa.model import ModelVariant, NumericValue
from sensa.models.run import OutcomeLine, OutcomeValues, SolverMeta

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from types import TracebackType

RUN_DIR_ENV = "SENSA_RUN_DIR"
VARIANT_PATH_ENV = "SENSA_VARIANT_PATH"


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class SolverRun:
    """One solver invocation, as seen from inside the solver process."""

    _finished: bool
    _line_idx: int
    _status: str
    _finished_at: str | None

    run_dir: Path
    variant: ModelVariant
    started_at: str
    _outcomes_path: Path
    _meta_path: Path

    def __init__(
        self,
        run_dir: Path | None = None,
        variant_path: Path | None = None,
    ) -> None:
        """Initialize a solver run.

        In most cases, use sensa.init() instead of constructing directly.
        """
        self._finished = False
        self._line_idx = 0
        self._status = "running"
        self._finished_at = None

        if run_dir is None:
            env_run_dir = os.environ.get(RUN_DIR_ENV)
            if not env_run_dir:
                msg = f"{RUN_DIR_ENV} is not set; is this solver running under sensa?"
                raise RuntimeError(msg)
            run_dir = Path(env_run_dir)
        if variant_path is None:
            env_variant = os.environ.get(VARIANT_PATH_ENV)
            variant_path = Path(env_variant) if env_variant else run_dir / "variant.json"

        self.run_dir = run_dir
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self.variant = read_variant(variant_path)
        self.started_at = utcnow()

        self._outcomes_path = self.run_dir / "outcomes.jsonl"
        self._meta_path = self.run_dir / "meta.json"
        self._write_meta()

    def _write_meta(self) -> None:
        meta = SolverMeta(
            run_dir=str(self.run_dir),
            started_at=self.started_at,
            finished_at=self._finished_at if self._finished else None,
            status=self._status if self._finished else "running",
        )
        _ = self._meta_path.write_text(meta.model_dump_json(indent=2))

    @property
    def parameters(self) -> dict[str, NumericValue]:
        """All exogenous values of the variant."""
        return self.variant.values

    @property
    def perturbed(self) -> str | None:
        """Name of the perturbed parameter, None for the baseline run."""
        return self.variant.perturbed

    def value(self, name: str) -> NumericValue:
        """Return the (possibly perturbed) value of one exogenous variable."""
        return self.variant.value(name)

    def _append(self, line: OutcomeLine) -> None:
        with self._outcomes_path.open("a") as f:
            _ = f.write(line.model_dump_json(by_alias=True, exclude_none=True) + "\n")
            _ = f.flush()
        self._line_idx += 1

    def record(self, values: Mapping[str, float], step: int | None = None) -> None:
        """Append outcome values for one time step.

        Args:
            values: Outcome names to values
            step: Optional time step (should be monotonic if provided)

        """
        if self._finished:
            msg = "Cannot record to a finished run"
            raise RuntimeError(msg)

        self._append(
            OutcomeLine(
                idx=self._line_idx,
                timestamp=utcnow(),
                step=step,
                outcomes=OutcomeValues.model_validate(dict(values)),
            )
        )

    def message(self, text: str) -> None:
        """Append a solver message, shown with the run in sensa."""
        if self._finished:
            msg = "Cannot add messages to a finished run"
            raise RuntimeError(msg)

        self._append(OutcomeLine(idx=self._line_idx, timestamp=utcnow(), message=text))

    def finish(self, status: str = "completed") -> None:
        """Mark this run as finished.

        Args:
            status: Final status ("completed" or "failed")

        """
        if self._finished:
            return

        self._finished = True
        self._finished_at = utcnow()
        self._status = status
        self._write_meta()

    @property
    def finished(self) -> bool:
        """Return whether the run has finished."""
        return self._finished

    def __enter__(self) -> Self:
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit - auto-finish with appropriate status."""
        if not self._finished:
            status = "failed" if exc_type is not None else "completed"
            self.finish(status=status)


_active_run_state: dict[str, SolverRun | None] = {"run": None}


def init(run_dir: Path | None = None, variant_path: Path | None = None) -> SolverRun:
    """Start reporting for the current solver process.

    The run is finished automatically at interpreter exit.
    """
    run = SolverRun(run_dir=run_dir, variant_path=variant_path)
    _active_run_state["run"] = run
    _ = atexit.register(_atexit_finish)
    return run


def _atexit_finish() -> None:
    active_run = _active_run_state["run"]
    if active_run is not None and not active_run.finished:
        active_run.finish()


def read_variant(path: Path) -> ModelVariant:
    """Read a model variant written by CommandModel."""
    return ModelVariant.model_validate_json(path.read_text())


def read_outcomes(outcomes_path: Path) -> list[OutcomeLine]:
    """Read outcomes.jsonl, tolerating a partial final line."""
    lines: list[OutcomeLine] = []

    if not outcomes_path.exists():
        return lines

    with outcomes_path.open() as f:
        for raw_line in f:
            line = raw_line.strip()
            if line:
                with suppress(ValidationError):
                    lines.append(OutcomeLine.model_validate_json(line))

    return lines


def collect_series(
    lines: Sequence[OutcomeLine], outcomes: Sequence[str]
) -> dict[str, list[float]]:
    """Gather each outcome's values in step order.

    Lines with a step sort by step; the rest keep file order after them.
    Non-numeric values are recorded as NaN.
    """
    ordered = sorted(
        lines,
        key=lambda line: (line.step is None, line.step or 0, line.idx),
    )
    series: dict[str, list[float]] = {}
    for line in ordered:
        for name, value in line.outcomes.items():
            if name not in outcomes:
                continue
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                number = float(value)
            else:
                number = math.nan
            series.setdefault(name, []).append(number)
    return series


def read_meta(run_dir: Path) -> SolverMeta | None:
    """Read solver run metadata from meta.json."""
    meta_path = run_dir / "meta.json"
    if not meta_path.exists():
        return None

    return SolverMeta.model_validate_json(meta_path.read_text())

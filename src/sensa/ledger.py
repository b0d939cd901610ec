# Copyright (c) Syntropy Systems
"""Append-only ledger of recorded runs."""
from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from sensa.aggregate import summarize_series
from sensa.errors import SensaStateError
from sensa.models.run import RunRecord, RunStatus

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping, Sequence

logger = logging.getLogger(__name__)


class RunLedger:
    """Runs in schedule order; index i is always the i-th appended run.

    Only the run controller appends. Readers get tuple copies, so a reader
    in the middle of a sequence sees a consistent prefix.
    """

    def __init__(self, runs: Iterable[RunRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._runs: list[RunRecord] = []
        for run in runs:
            self.append(run)

    def append(self, run: RunRecord) -> RunRecord:
        """Add the next run. Its index must equal the current length."""
        with self._lock:
            if run.index != len(self._runs):
                msg = f"Run index {run.index} out of order; next index is {len(self._runs)}"
                raise SensaStateError(msg)
            self._runs.append(run)
        logger.debug("Recorded run #%d (%s, %s)", run.index, run.label, run.status.value)
        return run

    def record(  # noqa: PLR0913
        self,
        parameter: str | None,
        delta: float,
        selectors: Sequence[str],
        series: Mapping[str, Sequence[float]],
        *,
        started_at: str,
        finished_at: str,
        messages: Sequence[str] = (),
    ) -> RunRecord:
        """Append a successful run, computing its statistics."""
        return self.append(
            RunRecord(
                index=len(self),
                parameter=parameter,
                delta=delta,
                selectors=list(selectors),
                series={name: list(values) for name, values in series.items()},
                statistics={name: summarize_series(values) for name, values in series.items()},
                started_at=started_at,
                finished_at=finished_at,
                messages=list(messages),
            )
        )

    def record_failure(  # noqa: PLR0913
        self,
        parameter: str | None,
        delta: float,
        selectors: Sequence[str],
        error_message: str,
        *,
        started_at: str,
        finished_at: str,
        messages: Sequence[str] = (),
    ) -> RunRecord:
        """Append a run for which the solver produced no outcomes."""
        return self.append(
            RunRecord(
                index=len(self),
                parameter=parameter,
                delta=delta,
                selectors=list(selectors),
                status=RunStatus.FAILED,
                started_at=started_at,
                finished_at=finished_at,
                error_message=error_message,
                messages=list(messages),
            )
        )

    @property
    def runs(self) -> tuple[RunRecord, ...]:
        """Snapshot of all recorded runs."""
        with self._lock:
            return tuple(self._runs)

    @property
    def failure_count(self) -> int:
        """Number of failed runs."""
        return sum(1 for run in self.runs if run.failed)

    def relabel(self, renames: Mapping[str, str]) -> int:
        """Rename parameters and outcome keys in recorded runs.

        Each affected run is replaced by a renamed copy; values, order and
        indices are unchanged. Returns the number of runs replaced.
        """
        changed = 0
        with self._lock:
            for i, run in enumerate(self._runs):
                parameter = run.parameter
                if parameter is not None:
                    parameter = renames.get(parameter, parameter)
                series = {renames.get(k, k): v for k, v in run.series.items()}
                statistics = {renames.get(k, k): v for k, v in run.statistics.items()}
                if (
                    parameter == run.parameter
                    and list(series) == list(run.series)
                    and list(statistics) == list(run.statistics)
                ):
                    continue
                self._runs[i] = run.model_copy(
                    update={"parameter": parameter, "series": series, "statistics": statistics}
                )
                changed += 1
        if changed:
            logger.debug("Relabelled %d recorded runs", changed)
        return changed

    def clear(self) -> None:
        """Drop every run."""
        with self._lock:
            self._runs.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)

    def __iter__(self) -> Iterator[RunRecord]:
        return iter(self.runs)

    def __getitem__(self, index: int) -> RunRecord:
        with self._lock:
            return self._runs[index]

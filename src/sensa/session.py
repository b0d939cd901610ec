# Copyright (c) Syntropy Systems
"""One open sensitivity analysis: perturbation set, ledger and controller."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sensa.aggregate import compute_matrix, percent_deviation
from sensa.controller import RunController
from sensa.errors import SensaStateError, SensaValidationError
from sensa.ledger import RunLedger
from sensa.models.matrix import Statistic, ValueMatrix
from sensa.models.session import (
    AnalysisSnapshot,
    ControllerPlan,
    ControllerState,
    PerturbationSettings,
    ScheduleEntry,
)
from sensa.perturbation import PerturbationSet

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sensa.model import ModelAdapter
    from sensa.models.run import RunRecord

logger = logging.getLogger(__name__)


class AnalysisSession:
    """Owns the state of one analysis.

    Only the controller appends to the ledger; only ``clear_results``
    empties it.
    """

    def __init__(
        self,
        model: ModelAdapter,
        settings: PerturbationSettings | None = None,
        runs: Iterable[RunRecord] = (),
        plan: ControllerPlan | None = None,
        stale: bool = False,  # noqa: FBT001, FBT002
    ) -> None:
        self.ledger = RunLedger(runs)
        self.perturbations = PerturbationSet(model, settings, ledger=self.ledger)
        self.controller = RunController(self.perturbations, self.ledger)
        self.perturbations.stale = stale
        self.selected_run: int | None = None
        if plan is not None:
            self.controller.restore(plan)

    @property
    def model(self) -> ModelAdapter:
        return self.perturbations.model

    @property
    def state(self) -> ControllerState:
        return self.controller.state

    @property
    def runs(self) -> tuple[RunRecord, ...]:
        return self.ledger.runs

    def start(self, background: bool = False) -> None:  # noqa: FBT001, FBT002
        self.controller.start(background=background)

    def pause(self) -> None:
        self.controller.pause()

    def stop(self, cancel_solver: bool = False) -> None:  # noqa: FBT001, FBT002
        self.controller.stop(cancel_solver=cancel_solver)

    def clear_results(self) -> None:
        """Empty the ledger and return the controller to idle.

        Calling it again has no further effect.
        """
        if self.controller.state == ControllerState.RUNNING:
            msg = "Cannot clear results while a sequence is running"
            raise SensaStateError(msg)
        self.ledger.clear()
        self.selected_run = None
        self.perturbations.clear_notices()
        if self.controller.state != ControllerState.IDLE or self.controller.schedule:
            self.controller.reset()
        logger.info("Cleared analysis results")

    def select_run(self, index: int | None) -> int | None:
        """Select a recorded run; selecting the selected run deselects it."""
        if index is not None and not 0 <= index < len(self.ledger):
            msg = f"No recorded run #{index}"
            raise SensaValidationError(msg)
        self.selected_run = None if index == self.selected_run else index
        return self.selected_run

    def _pending_parameters(self) -> list[str]:
        state = self.controller.state
        if state in (ControllerState.STOPPED, ControllerState.COMPLETED):
            return []
        schedule = self.controller.schedule
        if not schedule:
            return [p.name for p in self.perturbations.enabled_parameters()]
        return [
            slot.parameter
            for slot in schedule[len(self.ledger):]
            if slot.parameter is not None
        ]

    def compute_matrix(
        self,
        statistic: Statistic | str = Statistic.MEAN,
        *,
        relative: bool = False,
        include_pending: bool = False,
    ) -> ValueMatrix:
        """Reduce the recorded runs to an outcome-by-run matrix.

        Checklist exclusions are applied. With ``include_pending`` the
        columns of runs still to come are present as not-run cells.
        """
        try:
            stat = Statistic(statistic)
        except ValueError as e:
            msg = f"Unknown statistic '{statistic}'"
            raise SensaValidationError(msg) from e

        matrix = compute_matrix(
            self.ledger.runs,
            [o.name for o in self.perturbations.outcomes],
            stat,
            excluded_outcomes=self.perturbations.excluded_outcomes,
            excluded_parameters=self.perturbations.excluded_parameters,
            pending=self._pending_parameters() if include_pending else (),
        )
        if relative:
            matrix = percent_deviation(matrix)
        return matrix

    def snapshot(self) -> AnalysisSnapshot:
        """Read-only view of the whole session."""
        runs = self.ledger.runs
        schedule = [
            ScheduleEntry(
                index=slot.index,
                label=slot.label,
                recorded=slot.index < len(runs),
                failed=slot.index < len(runs) and runs[slot.index].failed,
            )
            for slot in self.controller.schedule
        ]
        return AnalysisSnapshot(
            state=self.controller.state,
            progress=self.controller.progress,
            schedule=schedule,
            last_completed=self.controller.last_completed,
            runs=list(runs),
            failure_count=sum(1 for run in runs if run.failed),
            settings=self.perturbations.settings,
            selected_run=self.selected_run,
            stale=self.perturbations.stale,
            notices=list(self.perturbations.notices),
        )

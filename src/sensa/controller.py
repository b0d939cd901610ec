# Copyright (c) Syntropy Systems
"""Run controller: drives the baseline run and one run per enabled parameter.

At most one solve is in flight. Pause and stop requests take effect at run
boundaries only; a solve that has started always ends up in the ledger,
either completed or failed.
"""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from sensa.errors import SensaStateError, SolveFailure
from sensa.formatting import format_elapsed
from sensa.model import SolveResult, normalize_series
from sensa.models.session import ControllerPlan, ControllerState, ScheduledRun
from sensa.run import utcnow

if TYPE_CHECKING:
    from sensa.ledger import RunLedger
    from sensa.model import ModelAdapter
    from sensa.models.run import RunRecord
    from sensa.perturbation import PerturbationSet

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """What happened in the run sequence."""

    STARTED = "started"
    RUN_RECORDED = "run_recorded"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    RESET = "reset"


@dataclass(frozen=True)
class ControllerEvent:
    """Delivered to subscribers after every state change and recorded run."""

    kind: EventKind
    state: ControllerState
    progress: str
    run: RunRecord | None = None


EventListener = Callable[[ControllerEvent], None]


class RunController:
    """State machine over one run sequence.

    States: idle, running, paused, stopped, completed. The schedule, delta,
    selectors and outcome list are frozen when a sequence starts, so edits
    made while paused only affect the next sequence.
    """

    def __init__(self, perturbations: PerturbationSet, ledger: RunLedger) -> None:
        self.perturbations = perturbations
        self.ledger = ledger
        self._lock = threading.RLock()
        self._state = ControllerState.IDLE
        self._plan = ControllerPlan()
        self._pause_requested = threading.Event()
        self._stop_requested = threading.Event()
        self._thread: threading.Thread | None = None
        self._segment_start: float | None = None
        self._listeners: list[EventListener] = []
        perturbations.on_rename(self._relabel)

    @property
    def model(self) -> ModelAdapter:
        return self.perturbations.model

    @property
    def state(self) -> ControllerState:
        with self._lock:
            return self._state

    @property
    def schedule(self) -> list[ScheduledRun]:
        with self._lock:
            return list(self._plan.schedule)

    @property
    def last_completed(self) -> int | None:
        """Index of the last recorded run of this sequence."""
        with self._lock:
            return self._plan.last_completed

    @property
    def elapsed_seconds(self) -> float:
        with self._lock:
            elapsed = self._plan.elapsed_seconds
            if self._segment_start is not None:
                elapsed += time.monotonic() - self._segment_start
            return elapsed

    @property
    def progress(self) -> str:
        """Human-readable status line for the sequence."""
        with self._lock:
            state = self._state
            last = self._plan.last_completed
            n = len(self._plan.schedule) - 1
            elapsed = self.elapsed_seconds

        if state == ControllerState.IDLE:
            return ""
        if state == ControllerState.RUNNING:
            text = f"Run #{min(len(self.ledger), n)} of {n}"
        elif state == ControllerState.PAUSED:
            text = f"Run #{last} PAUSED" if last is not None else "PAUSED"
        elif state == ControllerState.STOPPED:
            text = f"Stopped after run #{last} of {n}" if last is not None else "Stopped"
        else:
            text = f"✔ {format_elapsed(elapsed)}"

        failed = self.ledger.failure_count
        if failed:
            text = f"{text} ({failed} failed)"
        return text

    def subscribe(self, listener: EventListener) -> None:
        """Register a callback for controller events."""
        self._listeners.append(listener)

    def _emit(self, kind: EventKind, run: RunRecord | None = None) -> None:
        event = ControllerEvent(kind=kind, state=self.state, progress=self.progress, run=run)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Controller listener failed on %s", kind.value)

    def _close_segment(self) -> None:
        if self._segment_start is not None:
            self._plan.elapsed_seconds += time.monotonic() - self._segment_start
            self._segment_start = None

    def _set_state(self, state: ControllerState) -> None:
        logger.info("Controller %s -> %s", self._state.value, state.value)
        self._state = state
        self._plan.state = state

    def _build_plan(self) -> ControllerPlan:
        perturbations = self.perturbations
        if not perturbations.enabled_outcomes():
            msg = "Cannot start: no outcomes to record"
            raise SensaStateError(msg)
        if len(self.ledger) > 0:
            msg = "Cannot start: the ledger holds results; clear them first"
            raise SensaStateError(msg)

        schedule = [ScheduledRun(index=0)]
        for i, parameter in enumerate(perturbations.enabled_parameters(), start=1):
            schedule.append(ScheduledRun(index=i, parameter=parameter.name))
        return ControllerPlan(
            state=ControllerState.RUNNING,
            schedule=schedule,
            outcomes=[o.name for o in perturbations.outcomes],
            delta=perturbations.delta,
            selectors=list(perturbations.base_case_selectors),
        )

    def start(self, background: bool = False) -> None:  # noqa: FBT001, FBT002
        """Start a new sequence, or resume a paused one.

        In the foreground this returns when the sequence completes, pauses
        or stops. With ``background`` it returns immediately; use ``wait``.
        """
        with self._lock:
            if self._state == ControllerState.RUNNING:
                msg = "Cannot start: a sequence is already running"
                raise SensaStateError(msg)
            if self._state in (ControllerState.STOPPED, ControllerState.COMPLETED):
                msg = f"Cannot start: sequence is {self._state.value}; clear results first"
                raise SensaStateError(msg)

            if self._state == ControllerState.IDLE:
                self._plan = self._build_plan()
                logger.info(
                    "Scheduled %d runs (delta %s%%, selectors: %s)",
                    len(self._plan.schedule),
                    self._plan.delta,
                    " ".join(self._plan.selectors) or "(none)",
                )
            else:
                logger.info("Resuming at run #%d", len(self.ledger))

            self._pause_requested.clear()
            self._stop_requested.clear()
            self._segment_start = time.monotonic()
            self._set_state(ControllerState.RUNNING)

        self._emit(EventKind.STARTED)

        if background:
            self._thread = threading.Thread(
                target=self._run_sequence, name="sensa-controller", daemon=True
            )
            self._thread.start()
        else:
            self._run_sequence()

    def wait(self, timeout: float | None = None) -> ControllerState:
        """Wait for a background sequence to leave the running state."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        return self.state

    def pause(self) -> None:
        """Ask the sequence to pause after the in-flight run."""
        with self._lock:
            if self._state != ControllerState.RUNNING:
                msg = f"Cannot pause: sequence is {self._state.value}"
                raise SensaStateError(msg)
            self._pause_requested.set()
        logger.info("Pause requested")

    def stop(self, cancel_solver: bool = False) -> None:  # noqa: FBT001, FBT002
        """Terminate the sequence; recorded runs stay in the ledger.

        A running sequence stops at the next run boundary. With
        ``cancel_solver`` the model's ``cancel()`` is asked to abort the
        in-flight solve.
        """
        with self._lock:
            if self._state == ControllerState.PAUSED:
                self._set_state(ControllerState.STOPPED)
                stopped_now = True
            elif self._state == ControllerState.RUNNING:
                self._stop_requested.set()
                stopped_now = False
            else:
                msg = f"Cannot stop: sequence is {self._state.value}"
                raise SensaStateError(msg)
        logger.info("Stop requested")

        if stopped_now:
            self._emit(EventKind.STOPPED)
            return
        if cancel_solver:
            cancel = getattr(self.model, "cancel", None)
            if callable(cancel):
                cancel()

    def reset(self) -> None:
        """Return to idle and forget the schedule. The ledger is left alone."""
        with self._lock:
            if self._state == ControllerState.RUNNING:
                msg = "Cannot reset while a sequence is running"
                raise SensaStateError(msg)
            self._plan = ControllerPlan()
            self._segment_start = None
            self._pause_requested.clear()
            self._stop_requested.clear()
            self._set_state(ControllerState.IDLE)
        self._emit(EventKind.RESET)

    def plan(self) -> ControllerPlan:
        """Export the frozen schedule and progress for persistence."""
        with self._lock:
            plan = self._plan.model_copy(deep=True)
            plan.state = self._state
            plan.elapsed_seconds = self.elapsed_seconds
            return plan

    def restore(self, plan: ControllerPlan) -> None:
        """Re-import an exported plan; a running plan comes back paused."""
        with self._lock:
            if self._state == ControllerState.RUNNING:
                msg = "Cannot restore while a sequence is running"
                raise SensaStateError(msg)
            recorded = len(self.ledger)
            expected = 0 if plan.last_completed is None else plan.last_completed + 1
            if plan.state != ControllerState.IDLE and recorded != expected:
                msg = f"Plan expects {expected} recorded runs, ledger has {recorded}"
                raise SensaStateError(msg)
            state = plan.state
            if state == ControllerState.RUNNING:
                state = ControllerState.PAUSED
            self._plan = plan.model_copy(deep=True)
            self._segment_start = None
            self._set_state(state)

    def _relabel(self, renames: Mapping[str, str]) -> None:
        with self._lock:
            if self._state == ControllerState.RUNNING:
                msg = "Cannot rename while a sequence is running"
                raise SensaStateError(msg)
            for slot in self._plan.schedule:
                if slot.parameter is not None:
                    slot.parameter = renames.get(slot.parameter, slot.parameter)
            self._plan.outcomes = [renames.get(name, name) for name in self._plan.outcomes]

    def _next_slot(self) -> tuple[ScheduledRun | None, EventKind | None]:
        """Pick the next run, or the terminal event if the sequence ends here.

        A pause requested during the last run is dropped: nothing is left
        to resume.
        """
        with self._lock:
            if self._stop_requested.is_set():
                self._close_segment()
                self._set_state(ControllerState.STOPPED)
                return None, EventKind.STOPPED
            index = len(self.ledger)
            if index >= len(self._plan.schedule):
                self._pause_requested.clear()
                self._close_segment()
                self._set_state(ControllerState.COMPLETED)
                return None, EventKind.COMPLETED
            if self._pause_requested.is_set():
                self._close_segment()
                self._set_state(ControllerState.PAUSED)
                return None, EventKind.PAUSED
            return self._plan.schedule[index], None

    def _run_sequence(self) -> None:
        while True:
            slot, terminal = self._next_slot()
            if slot is None:
                if terminal is not None:
                    self._emit(terminal)
                return
            record = self._execute(slot)
            with self._lock:
                self._plan.last_completed = record.index
            self._emit(EventKind.RUN_RECORDED, record)

    def _execute(self, slot: ScheduledRun) -> RunRecord:
        plan = self._plan
        started_at = utcnow()
        logger.info("Run #%d (%s) started", slot.index, slot.label)
        try:
            variant = self.model.make_variant(slot.parameter, plan.delta, plan.selectors)
            result = self.model.solve(variant, plan.outcomes)
            if isinstance(result, SolveResult):
                series, messages = normalize_series(result.series, plan.outcomes), result.messages
            elif isinstance(result, Mapping):
                series, messages = normalize_series(result, plan.outcomes), []
            else:
                msg = f"Solver returned {type(result).__name__}, expected a mapping"
                raise SolveFailure(msg)
        except SolveFailure as e:
            logger.warning("Run #%d (%s) failed: %s", slot.index, slot.label, e)
            return self.ledger.record_failure(
                slot.parameter,
                plan.delta if slot.parameter is not None else 0.0,
                plan.selectors,
                str(e),
                started_at=started_at,
                finished_at=utcnow(),
                messages=e.messages,
            )
        except Exception as e:
            logger.exception("Run #%d (%s) raised", slot.index, slot.label)
            return self.ledger.record_failure(
                slot.parameter,
                plan.delta if slot.parameter is not None else 0.0,
                plan.selectors,
                f"{type(e).__name__}: {e}",
                started_at=started_at,
                finished_at=utcnow(),
            )

        missing = [name for name in plan.outcomes if name not in series]
        if missing:
            logger.warning("Run #%d did not report: %s", slot.index, ", ".join(missing))
        record = self.ledger.record(
            slot.parameter,
            plan.delta if slot.parameter is not None else 0.0,
            plan.selectors,
            series,
            started_at=started_at,
            finished_at=utcnow(),
            messages=messages,
        )
        logger.info("Run #%d (%s) completed", slot.index, slot.label)
        return record

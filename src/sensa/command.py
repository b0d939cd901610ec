# Copyright (c) Syntropy Systems
"""Model adapter that solves variants with an external solver command."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from sensa.errors import SolveFailure
from sensa.model import DictModel, ModelDescription, ModelVariant, SolveResult
from sensa.run import RUN_DIR_ENV, VARIANT_PATH_ENV, collect_series, read_meta, read_outcomes
from sensa.runner import SolverProcess

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

logger = logging.getLogger(__name__)


def substitute_templates(argv: Sequence[str], variant_path: str, run_dir: str) -> list[str]:
    """Replace {{variant_path}} and {{run_dir}} in command argv."""
    result: list[str] = []
    for arg in argv:
        arg = arg.replace("{{variant_path}}", variant_path)
        arg = arg.replace("{{run_dir}}", run_dir)
        result.append(arg)
    return result


class CommandModel(DictModel):
    """Solves each variant by running a solver process.

    The variant is written to <run_dir>/variant.json; the solver reports
    outcomes in <run_dir>/outcomes.jsonl (see ``sensa.run``).
    """

    command: list[str]
    runs_dir: Path
    workdir: Path
    timeout: float | None
    kill_grace_period: float

    def __init__(  # noqa: PLR0913
        self,
        description: ModelDescription | Mapping[str, object],
        runs_dir: Path,
        command: Sequence[str] | None = None,
        workdir: Path | None = None,
        timeout: float | None = None,
        kill_grace_period: float = 10.0,
    ) -> None:
        super().__init__(description)
        self.command = list(command) if command else list(self.description.command)
        self.runs_dir = runs_dir
        self.workdir = workdir or Path.cwd()
        self.timeout = timeout if timeout is not None else self.description.solve_timeout
        self.kill_grace_period = kill_grace_period
        self._lock = threading.Lock()
        self._current: SolverProcess | None = None
        self._cancelled = False

    def next_run_dir(self) -> Path:
        """Return the first unused run-<k> directory."""
        k = 0
        while (self.runs_dir / f"run-{k}").exists():
            k += 1
        return self.runs_dir / f"run-{k}"

    def solve(
        self, variant: ModelVariant, outcomes: Sequence[str]
    ) -> SolveResult:
        """Run the solver command for one variant and read its outcomes."""
        if not self.command:
            msg = f"No solver command configured for model '{self.description.name}'"
            raise SolveFailure(msg)

        run_dir = self.next_run_dir()
        run_dir.mkdir(parents=True, exist_ok=True)
        variant_path = run_dir / "variant.json"
        _ = variant_path.write_text(variant.model_dump_json(indent=2))

        argv = substitute_templates(self.command, str(variant_path), str(run_dir))
        process = SolverProcess(
            argv,
            workdir=self.workdir,
            run_dir=run_dir,
            env={RUN_DIR_ENV: str(run_dir), VARIANT_PATH_ENV: str(variant_path)},
        )

        try:
            with process:
                with self._lock:
                    self._cancelled = False
                    self._current = process
                logger.info("Started solver pid=%s in %s", process.pid, run_dir)
                result = process.finish(self.timeout, self.kill_grace_period)
        except OSError as e:
            msg = f"Could not start solver '{argv[0]}': {e}"
            raise SolveFailure(msg) from e
        finally:
            with self._lock:
                self._current = None
                cancelled = self._cancelled

        lines = read_outcomes(run_dir / "outcomes.jsonl")
        messages = [line.message for line in lines if line.message]

        if cancelled:
            msg = "Solver cancelled"
            raise SolveFailure(msg, messages)
        if result.timed_out:
            msg = f"Solver timed out after {self.timeout}s"
            raise SolveFailure(msg, [*messages, result.tail])
        if not result.ok:
            msg = f"Solver exited with code {result.code}"
            if result.tail:
                msg = f"{msg}: {result.tail}"
            raise SolveFailure(msg, messages)

        meta = read_meta(run_dir)
        if meta is not None and meta.status == "failed":
            msg = f"Solver marked run {run_dir.name} as failed"
            raise SolveFailure(msg, messages)

        series = collect_series(lines, outcomes)
        if not series:
            msg = f"Solver reported none of the requested outcomes in {run_dir}"
            raise SolveFailure(msg, messages)
        return SolveResult(series=series, messages=messages)

    def cancel(self) -> None:
        """Terminate the in-flight solver process, if any."""
        with self._lock:
            process = self._current
            if process is None or not process.running:
                return
            self._cancelled = True
        logger.warning("Cancelling solver pid=%s", process.pid)
        _ = process.terminate(self.kill_grace_period)

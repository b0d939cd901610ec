# Copyright (c) Syntropy Systems
"""Child-process lifecycle for one solver invocation.

A solver runs in its own session (process group) with stdout and stderr
captured to ``output.log``. On Linux it also receives SIGKILL if the sensa
process dies, so an interrupted analysis never leaves solvers behind.
"""
from __future__ import annotations

import contextlib
import ctypes
import logging
import os
import signal
import subprocess
import sys
from dataclasses import dataclass
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path
    from types import TracebackType

logger = logging.getLogger(__name__)

OUTPUT_LOG = "output.log"
_PR_SET_PDEATHSIG = 1


def _die_with_parent() -> None:
    # Runs in the child between fork and exec
    with contextlib.suppress(AttributeError, OSError):
        ctypes.CDLL("libc.so.6", use_errno=True).prctl(_PR_SET_PDEATHSIG, signal.SIGKILL)


def read_tail(path: Path, lines: int = 10) -> str:
    """Last ``lines`` lines of a log file, or "" if it does not exist."""
    try:
        text = path.read_text(errors="replace")
    except FileNotFoundError:
        return ""
    return "\n".join(text.splitlines()[-lines:])


@dataclass(frozen=True)
class SolverExit:
    """How a solver process ended."""

    code: int
    timed_out: bool = False
    tail: str = ""

    @property
    def ok(self) -> bool:
        return self.code == 0 and not self.timed_out


class SolverProcess:
    """One solver child process, used as a context manager.

    Entering starts the process; leaving terminates it if it is still
    alive and closes the log.
    """

    def __init__(
        self,
        argv: Sequence[str],
        workdir: Path,
        run_dir: Path,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.argv = list(argv)
        self.workdir = workdir
        self.log_path = run_dir / OUTPUT_LOG
        self.env = {**os.environ, **(env or {})}
        self._popen: subprocess.Popen[bytes] | None = None
        self._log: IO[str] | None = None

    def __enter__(self) -> SolverProcess:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._log = self.log_path.open("w")
        try:
            self._popen = subprocess.Popen(  # noqa: S603
                self.argv,
                stdout=self._log,
                stderr=subprocess.STDOUT,
                env=self.env,
                cwd=str(self.workdir),
                start_new_session=True,
                preexec_fn=_die_with_parent if sys.platform == "linux" else None,  # noqa: PLW1509
            )
        except OSError:
            self._close_log()
            raise
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.running:
            _ = self.terminate()
        self._close_log()

    @property
    def pid(self) -> int | None:
        return None if self._popen is None else self._popen.pid

    @property
    def running(self) -> bool:
        return self._popen is not None and self._popen.poll() is None

    def finish(self, timeout: float | None = None, grace_period: float = 10.0) -> SolverExit:
        """Wait for the solver to exit; terminate it when ``timeout`` runs out."""
        if self._popen is None:
            msg = "Solver process was never started"
            raise RuntimeError(msg)
        try:
            code = self._popen.wait(timeout=timeout)
            timed_out = False
        except subprocess.TimeoutExpired:
            logger.warning("Solver pid=%s exceeded %ss", self._popen.pid, timeout)
            code = self.terminate(grace_period)
            timed_out = True
        self._close_log()
        return SolverExit(code=code, timed_out=timed_out, tail=read_tail(self.log_path))

    def terminate(self, grace_period: float = 10.0) -> int:
        """SIGTERM the process group, then SIGKILL after ``grace_period`` seconds.

        Returns the exit code (negative signal number when killed).
        """
        popen = self._popen
        if popen is None:
            return 0
        if popen.poll() is not None:
            return popen.returncode

        self._signal_group(signal.SIGTERM)
        try:
            return popen.wait(timeout=grace_period)
        except subprocess.TimeoutExpired:
            logger.warning("Solver pid=%s ignored SIGTERM, killing", popen.pid)
        self._signal_group(signal.SIGKILL)
        with contextlib.suppress(subprocess.TimeoutExpired):
            _ = popen.wait(timeout=5.0)
        return popen.returncode if popen.returncode is not None else -signal.SIGKILL

    def _signal_group(self, sig: signal.Signals) -> None:
        if self._popen is None:
            return
        # The process group may already be gone
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(self._popen.pid, sig)

    def _close_log(self) -> None:
        if self._log is not None:
            self._log.close()
            self._log = None

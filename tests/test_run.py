# Copyright (c) Syntropy Systems
"""Tests for the solver-side reporting API and the command model."""

import json
import math
import sys
from pathlib import Path

import pytest

from sensa.command import CommandModel, substitute_templates
from sensa.errors import SolveFailure
from sensa.model import ModelVariant, SolveResult
from sensa.models.run import OutcomeLine, OutcomeValues
from sensa.models.session import ControllerState
from sensa.run import (
    RUN_DIR_ENV,
    SolverRun,
    collect_series,
    init,
    read_meta,
    read_outcomes,
)
from sensa.session import AnalysisSession


@pytest.fixture
def variant_path(temp_dir: Path) -> Path:
    variant = ModelVariant(
        model_name="plant",
        perturbed="Price",
        delta=10.0,
        factor=1.1,
        values={"Price": 2.2, "Demand": [10.0, 20.0]},
    )
    path = temp_dir / "variant.json"
    _ = path.write_text(variant.model_dump_json())
    return path


def line(idx: int, outcomes: dict, step=None) -> OutcomeLine:
    return OutcomeLine(
        idx=idx,
        timestamp="2026-01-01T00:00:00Z",
        step=step,
        outcomes=OutcomeValues.model_validate(outcomes),
    )


class TestSolverRun:
    """Tests for SolverRun inside a solver process."""

    def test_reads_variant(self, temp_dir: Path, variant_path: Path) -> None:
        run = SolverRun(run_dir=temp_dir / "run-0", variant_path=variant_path)

        assert run.perturbed == "Price"
        assert run.value("Price") == 2.2
        assert run.parameters["Demand"] == [10.0, 20.0]
        assert (temp_dir / "run-0" / "meta.json").exists()

    def test_record_and_read(self, temp_dir: Path, variant_path: Path) -> None:
        run_dir = temp_dir / "run-0"
        with SolverRun(run_dir=run_dir, variant_path=variant_path) as run:
            run.record({"Profit": 1.5}, step=0)
            run.record({"Profit": 2.5, "Cost": 3}, step=1)
            run.message("optimal")

        lines = read_outcomes(run_dir / "outcomes.jsonl")

        assert len(lines) == 3
        assert lines[1].step == 1
        assert lines[2].message == "optimal"
        meta = read_meta(run_dir)
        assert meta is not None
        assert meta.status == "completed"
        assert meta.finished_at is not None

    def test_exception_marks_failed(self, temp_dir: Path, variant_path: Path) -> None:
        run_dir = temp_dir / "run-0"
        with pytest.raises(ValueError), SolverRun(run_dir=run_dir, variant_path=variant_path):
            raise ValueError("infeasible")

        meta = read_meta(run_dir)
        assert meta is not None
        assert meta.status == "failed"

    def test_cannot_record_after_finish(self, temp_dir: Path, variant_path: Path) -> None:
        run = SolverRun(run_dir=temp_dir / "run-0", variant_path=variant_path)
        run.finish()
        run.finish()

        with pytest.raises(RuntimeError, match="finished"):
            run.record({"Profit": 1.0})
        with pytest.raises(RuntimeError, match="finished"):
            run.message("late")

    def test_requires_run_dir(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(RUN_DIR_ENV, raising=False)

        with pytest.raises(RuntimeError, match=RUN_DIR_ENV):
            _ = SolverRun()

    def test_run_dir_from_environment(
        self, temp_dir: Path, variant_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        import shutil

        run_dir = temp_dir / "run-7"
        run_dir.mkdir()
        _ = shutil.copy(variant_path, run_dir / "variant.json")
        monkeypatch.setenv(RUN_DIR_ENV, str(run_dir))
        monkeypatch.delenv("SENSA_VARIANT_PATH", raising=False)

        run = SolverRun()

        assert run.run_dir == run_dir
        assert run.value("Price") == 2.2

    def test_init_returns_reporting_run(self, temp_dir: Path, variant_path: Path) -> None:
        run = init(run_dir=temp_dir / "run-0", variant_path=variant_path)
        run.record({"Profit": 1.0})
        run.finish()

        assert run.finished
        assert len(read_outcomes(temp_dir / "run-0" / "outcomes.jsonl")) == 1


class TestReadOutcomes:
    """Tests for reading outcomes.jsonl."""

    def test_missing_file(self, temp_dir: Path) -> None:
        assert read_outcomes(temp_dir / "outcomes.jsonl") == []

    def test_truncated_line_skipped(self, temp_dir: Path) -> None:
        path = temp_dir / "outcomes.jsonl"
        good = json.dumps({"_idx": 0, "_timestamp": "t", "outcomes": {"Profit": 1.0}})
        _ = path.write_text(f'{good}\n\n{{"_idx": 1, "_timest')

        lines = read_outcomes(path)

        assert len(lines) == 1
        assert lines[0].outcomes.values == {"Profit": 1.0}

    def test_collect_series_orders_by_step(self) -> None:
        lines = [
            line(0, {"Profit": 30.0}, step=2),
            line(1, {"Profit": 10.0, "Other": 5.0}, step=0),
            line(2, {"Balance": 150.0}),
            line(3, {"Profit": 20.0}, step=1),
        ]

        series = collect_series(lines, ["Profit", "Balance"])

        assert series == {"Profit": [10.0, 20.0, 30.0], "Balance": [150.0]}

    def test_non_numeric_becomes_nan(self) -> None:
        series = collect_series([line(0, {"Profit": "n/a"}), line(1, {"Profit": True})], ["Profit"])

        assert all(math.isnan(v) for v in series["Profit"])


class TestCommandModel:
    """Tests for solving variants with a solver process."""

    def test_substitute_templates(self) -> None:
        argv = substitute_templates(
            ["solve", "--in", "{{variant_path}}", "--out={{run_dir}}"],
            "/runs/run-0/variant.json",
            "/runs/run-0",
        )

        assert argv == ["solve", "--in", "/runs/run-0/variant.json", "--out=/runs/run-0"]

    def test_solve_with_script(
        self, model_data: dict, sensa_project: Path, solver_argv: list[str]
    ) -> None:
        model = CommandModel(model_data, runs_dir=sensa_project / "runs", command=solver_argv)
        variant = model.make_variant("Price", 10.0, [])

        result = model.solve(variant, ["ProfitTotal", "Balance"])

        assert isinstance(result, SolveResult)
        assert result.series["ProfitTotal"] == pytest.approx([17.0, 39.0, 61.0])
        assert result.series["Balance"] == [150.0]
        assert (sensa_project / "runs" / "run-0" / "variant.json").exists()
        assert (sensa_project / "runs" / "run-0" / "output.log").exists()

    def test_run_dirs_are_numbered(self, model_data: dict, temp_dir: Path) -> None:
        model = CommandModel(model_data, runs_dir=temp_dir)
        (temp_dir / "run-0").mkdir()
        (temp_dir / "run-1").mkdir()

        assert model.next_run_dir() == temp_dir / "run-2"

    def test_nonzero_exit_fails(self, model_data: dict, temp_dir: Path) -> None:
        command = [sys.executable, "-c", "import sys; print('boom'); sys.exit(3)"]
        model = CommandModel(model_data, runs_dir=temp_dir / "runs", command=command)

        with pytest.raises(SolveFailure, match="exited with code 3"):
            _ = model.solve(model.make_variant(None, 0.0, []), ["Balance"])

    def test_no_outcomes_reported_fails(self, model_data: dict, temp_dir: Path) -> None:
        command = [sys.executable, "-c", "pass"]
        model = CommandModel(model_data, runs_dir=temp_dir / "runs", command=command)

        with pytest.raises(SolveFailure, match="none of the requested outcomes"):
            _ = model.solve(model.make_variant(None, 0.0, []), ["Balance"])

    def test_timeout_kills_solver(self, model_data: dict, temp_dir: Path) -> None:
        command = [sys.executable, "-c", "import time; time.sleep(30)"]
        model = CommandModel(
            model_data,
            runs_dir=temp_dir / "runs",
            command=command,
            timeout=0.5,
            kill_grace_period=1.0,
        )

        with pytest.raises(SolveFailure, match="timed out"):
            _ = model.solve(model.make_variant(None, 0.0, []), ["Balance"])

    def test_missing_executable(self, model_data: dict, temp_dir: Path) -> None:
        model = CommandModel(
            model_data, runs_dir=temp_dir / "runs", command=["/nonexistent/solver"]
        )

        with pytest.raises(SolveFailure, match="Could not start solver"):
            _ = model.solve(model.make_variant(None, 0.0, []), ["Balance"])

    def test_no_command(self, model_data: dict, temp_dir: Path) -> None:
        model = CommandModel(model_data, runs_dir=temp_dir / "runs")

        with pytest.raises(SolveFailure, match="No solver command"):
            _ = model.solve(model.make_variant(None, 0.0, []), ["Balance"])

    def test_command_from_description(self, model_data: dict, temp_dir: Path) -> None:
        model_data["command"] = ["python", "solve.py"]

        model = CommandModel(model_data, runs_dir=temp_dir)

        assert model.command == ["python", "solve.py"]

    def test_cancel_without_solve_is_noop(self, model_data: dict, temp_dir: Path) -> None:
        model = CommandModel(model_data, runs_dir=temp_dir)

        model.cancel()

    def test_solver_marked_failed(self, model_data: dict, temp_dir: Path) -> None:
        code = (
            "import sensa\n"
            "run = sensa.init()\n"
            "run.record({'Balance': 1.0})\n"
            "run.finish(status='failed')\n"
        )
        model = CommandModel(
            model_data, runs_dir=temp_dir / "runs", command=[sys.executable, "-c", code]
        )

        with pytest.raises(SolveFailure, match="marked run run-0 as failed"):
            _ = model.solve(model.make_variant(None, 0.0, []), ["Balance"])

    def test_cancel_in_flight_solve(self, model_data: dict, temp_dir: Path) -> None:
        import threading
        import time

        command = [sys.executable, "-c", "import time; time.sleep(30)"]
        model = CommandModel(
            model_data, runs_dir=temp_dir / "runs", command=command, kill_grace_period=2.0
        )
        errors: list[Exception] = []

        def solve() -> None:
            try:
                _ = model.solve(model.make_variant(None, 0.0, []), ["Balance"])
            except SolveFailure as e:
                errors.append(e)

        worker = threading.Thread(target=solve)
        worker.start()
        deadline = time.monotonic() + 10
        while model._current is None and time.monotonic() < deadline:
            time.sleep(0.05)
        model.cancel()
        worker.join(timeout=10)

        assert not worker.is_alive()
        assert len(errors) == 1
        assert "cancelled" in str(errors[0])

    def test_full_sequence(
        self, model_data: dict, sensa_project: Path, solver_argv: list[str]
    ) -> None:
        model = CommandModel(model_data, runs_dir=sensa_project / "runs", command=solver_argv)
        session = AnalysisSession(model)
        _ = session.perturbations.add_parameter("CapacityA|UB")
        _ = session.perturbations.add_parameter("Price")
        _ = session.perturbations.add_outcome("ProfitTotal")
        _ = session.perturbations.add_outcome("Balance")

        session.start()

        assert session.state == ControllerState.COMPLETED
        matrix = session.compute_matrix("mean", relative=True)
        assert matrix.values[1] == [150.0, pytest.approx(160.0), 150.0]
        assert matrix.relative[0][2] == pytest.approx(400 / 35)
        assert sorted(p.name for p in (sensa_project / "runs").iterdir()) == ["run-0", "run-1", "run-2"]

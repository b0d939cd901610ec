# Copyright (c) Syntropy Systems
"""Pytest fixtures for sensa tests."""

import os
import sys
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
import yaml

# Store original cwd at module load time
_original_cwd = Path.cwd()

PLANT_MODEL = {
    "name": "plant",
    "entities": {
        "CapacityA": {"UB": 100.0, "Cost": 5.0, "Flow": None},
        "CapacityB": {"UB": 50.0, "Cost": 8.0},
    },
    "datasets": {
        "Demand": {
            "default": [10.0, 20.0, 30.0],
            "modifiers": {
                "high": [15.0, 30.0, 45.0],
                "low": [5.0, 10.0, 15.0],
            },
        },
        "Price": 2.0,
    },
    "equations": ["ProfitTotal", "Balance"],
}

SOLVER_SCRIPT = """\
import sensa

with sensa.init() as run:
    price = run.value("Price")
    cost = run.value("CapacityA|Cost")
    for t, demand in enumerate(run.value("Demand")):
        run.record({"ProfitTotal": demand * price - cost}, step=t)
    run.record({"Balance": run.value("CapacityA|UB") + run.value("CapacityB|UB")})
"""


def solve_plant(variant):
    """Closed-form solve of the plant model.

    Baseline: ProfitTotal [15, 35, 55] (mean 35), Balance 150.
    """
    values = variant.values
    profit = [d * values["Price"] - values["CapacityA|Cost"] for d in values["Demand"]]
    return {
        "ProfitTotal": profit,
        "Balance": values["CapacityA|UB"] + values["CapacityB|UB"],
    }


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sensa_project(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary sensa project directory."""
    from sensa.config import SensaConfig

    sensa_dir = temp_dir / ".sensa"
    sensa_dir.mkdir()
    (sensa_dir / "sessions").mkdir()
    with (sensa_dir / "config.yaml").open("w") as f:
        yaml.dump(SensaConfig().to_dict(), f)

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def model_data() -> dict:
    """Plain data of the plant model."""
    return yaml.safe_load(yaml.safe_dump(PLANT_MODEL))


@pytest.fixture
def model_file(sensa_project: Path, model_data: dict) -> Path:
    """Write the plant model to model.yaml in the project."""
    path = sensa_project / "model.yaml"
    with path.open("w") as f:
        yaml.safe_dump(model_data, f)
    return path


@pytest.fixture
def solver_script(sensa_project: Path) -> Path:
    """Write a solver script that reports through sensa.init()."""
    path = sensa_project / "solve.py"
    _ = path.write_text(SOLVER_SCRIPT)
    return path


@pytest.fixture
def solver_argv(solver_script: Path) -> list[str]:
    """Command line that runs the solver script with this interpreter."""
    return [sys.executable, str(solver_script)]


@pytest.fixture
def plant_model(model_data: dict):
    """DictModel of the plant, solved in-process."""
    from sensa.model import DictModel

    return DictModel(model_data, solve_fn=solve_plant)

# Copyright (c) Syntropy Systems
"""Tests for session storage."""

import json
from pathlib import Path

import pytest

from sensa.command import CommandModel
from sensa.errors import SensaValidationError
from sensa.models.run import RunRecord
from sensa.models.session import ControllerState, SessionRecord
from sensa.store import (
    clear_session_runs,
    create_session,
    get_session_runs_dir,
    list_sessions,
    load_index,
    load_session_by_name,
    open_session,
    resolve_model_path,
    save_session,
    session_exists,
)


@pytest.fixture
def sensa_dir(sensa_project: Path) -> Path:
    return sensa_project / ".sensa"


class TestCreateSession:
    """Tests for creating sessions."""

    def test_create_writes_record_and_index(self, sensa_dir: Path, model_file: Path) -> None:
        record = create_session("study", model_file, sensa_dir)

        assert len(record.session_id) == 6
        assert record.model_path == "model.yaml"
        assert record.settings.delta == 10.0
        assert load_index(sensa_dir) == {"study": record.session_id}
        assert (sensa_dir / "sessions" / f"{record.session_id}.json").exists()
        assert session_exists("study", sensa_dir)

    def test_create_with_settings(self, sensa_dir: Path, model_file: Path) -> None:
        record = create_session("study", model_file, sensa_dir, delta="-5%", selectors="high")

        assert record.settings.delta == -5.0
        assert record.settings.base_case_selectors == ["high"]

    def test_default_delta_from_config(self, sensa_dir: Path, model_file: Path) -> None:
        _ = (sensa_dir / "config.yaml").write_text("default_delta: 25\n")

        record = create_session("study", model_file, sensa_dir)

        assert record.settings.delta == 25.0

    def test_duplicate_name(self, sensa_dir: Path, model_file: Path) -> None:
        _ = create_session("study", model_file, sensa_dir)

        with pytest.raises(ValueError, match="already exists"):
            _ = create_session("study", model_file, sensa_dir)

    def test_missing_model(self, sensa_dir: Path) -> None:
        with pytest.raises(FileNotFoundError):
            _ = create_session("study", Path("nope.yaml"), sensa_dir)

    def test_unknown_selector_rejected(self, sensa_dir: Path, model_file: Path) -> None:
        with pytest.raises(SensaValidationError):
            _ = create_session("study", model_file, sensa_dir, selectors="extreme")

        assert not session_exists("study", sensa_dir)

    def test_model_outside_project(self, sensa_dir: Path, temp_dir: Path, model_data: dict) -> None:
        import yaml

        outside = temp_dir.parent / f"{temp_dir.name}-model.yaml"
        with outside.open("w") as f:
            yaml.safe_dump(model_data, f)
        try:
            record = create_session("study", outside, sensa_dir)
            assert Path(record.model_path).is_absolute()
            assert resolve_model_path(record, sensa_dir) == outside.resolve()
        finally:
            outside.unlink()


class TestLoadSessions:
    """Tests for loading stored sessions."""

    def test_load_by_name(self, sensa_dir: Path, model_file: Path) -> None:
        created = create_session("study", model_file, sensa_dir)

        loaded = load_session_by_name("study", sensa_dir)

        assert loaded.session_id == created.session_id
        assert loaded.path == created.path

    def test_load_missing(self, sensa_dir: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Session 'ghost' not found"):
            _ = load_session_by_name("ghost", sensa_dir)

    def test_list_sorted(self, sensa_dir: Path, model_file: Path) -> None:
        for name in ["zeta", "alpha", "mid"]:
            _ = create_session(name, model_file, sensa_dir)

        assert [r.name for r in list_sessions(sensa_dir)] == ["alpha", "mid", "zeta"]

    def test_list_skips_missing_files(self, sensa_dir: Path, model_file: Path) -> None:
        record = create_session("study", model_file, sensa_dir)
        assert record.path is not None
        record.path.unlink()

        assert list_sessions(sensa_dir) == []

    def test_legacy_flat_index(self, sensa_dir: Path) -> None:
        _ = (sensa_dir / "sessions" / "index.json").write_text(json.dumps({"study": "abc123"}))

        assert load_index(sensa_dir) == {"study": "abc123"}


class TestOpenAndSave:
    """Tests for rebuilding and persisting live sessions."""

    def test_open_builds_command_model(self, sensa_dir: Path, model_file: Path) -> None:
        record = create_session("study", model_file, sensa_dir)

        session = open_session(record, sensa_dir, command=["python", "solve.py"])

        assert isinstance(session.model, CommandModel)
        assert session.model.command == ["python", "solve.py"]
        assert session.model.workdir == sensa_dir.parent
        assert session.model.runs_dir == get_session_runs_dir(record.session_id, sensa_dir)
        assert session.state == ControllerState.IDLE

    def test_edits_persist(self, sensa_dir: Path, model_file: Path) -> None:
        record = create_session("study", model_file, sensa_dir)
        session = open_session(record, sensa_dir)
        _ = session.perturbations.add_parameter("Price")
        _ = session.perturbations.add_outcome("Balance")
        save_session(record, session)

        reloaded = load_session_by_name("study", sensa_dir)

        assert [p.name for p in reloaded.settings.parameters] == ["Price"]
        assert [o.name for o in reloaded.settings.outcomes] == ["Balance"]

    def test_inconsistent_record_rejected(self, sensa_dir: Path, model_file: Path) -> None:
        record = create_session("study", model_file, sensa_dir)
        record.plan.state = ControllerState.PAUSED
        record.plan.last_completed = 3
        record.runs = [RunRecord(index=0)]

        with pytest.raises(SensaValidationError, match="inconsistent"):
            _ = open_session(record, sensa_dir)

    def test_missing_model_file(self, sensa_dir: Path, model_file: Path) -> None:
        record = create_session("study", model_file, sensa_dir)
        model_file.unlink()

        with pytest.raises(FileNotFoundError):
            _ = open_session(record, sensa_dir)

    def test_clear_session_runs(self, sensa_dir: Path, model_file: Path) -> None:
        record = create_session("study", model_file, sensa_dir)
        runs_dir = get_session_runs_dir(record.session_id, sensa_dir)
        (runs_dir / "run-0").mkdir(parents=True)

        clear_session_runs(record, sensa_dir)
        clear_session_runs(record, sensa_dir)

        assert not runs_dir.exists()

    def test_record_round_trip(self, temp_dir: Path) -> None:
        record = SessionRecord(session_id="abc123", name="study", model_path="model.yaml")
        record.runs = [RunRecord(index=0, series={"Profit": [float("nan"), 1.0]})]
        record.set_path(temp_dir / "abc123.json")
        record.save()

        loaded = SessionRecord.load(temp_dir / "abc123.json")

        assert loaded.created_at == record.created_at
        assert loaded.runs[0].series["Profit"][1] == 1.0

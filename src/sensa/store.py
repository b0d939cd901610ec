# Copyright (c) Syntropy Systems
"""Analysis sessions stored under .sensa/sessions."""
from __future__ import annotations

import logging
import random
import shutil
import string
from pathlib import Path
from typing import TYPE_CHECKING

from sensa.command import CommandModel
from sensa.config import SensaConfig, get_sessions_dir, load_config
from sensa.errors import SensaStateError, SensaValidationError
from sensa.model import DictModel, ModelDescription
from sensa.models.session import PerturbationSettings, SessionIndex, SessionRecord
from sensa.session import AnalysisSession

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    """Generate a short random session ID."""
    chars = string.ascii_lowercase + string.digits
    return "".join(random.choices(chars, k=6))  # noqa: S311


def get_session_path(session_id: str, sensa_dir: Path) -> Path:
    """Get path to session file by session_id."""
    return get_sessions_dir(sensa_dir) / f"{session_id}.json"


def get_session_runs_dir(session_id: str, sensa_dir: Path) -> Path:
    """Get the directory holding a session's solver run directories."""
    return get_sessions_dir(sensa_dir) / session_id / "runs"


def get_index_path(sensa_dir: Path) -> Path:
    """Get path to index.json."""
    return get_sessions_dir(sensa_dir) / "index.json"


def load_index(sensa_dir: Path) -> dict[str, str]:
    """Load name -> session_id index."""
    index_path = get_index_path(sensa_dir)
    if not index_path.exists():
        return {}
    return SessionIndex.model_validate_json(index_path.read_text()).entries


def save_index(sensa_dir: Path, index: dict[str, str]) -> None:
    """Save name -> session_id index."""
    index_path = get_index_path(sensa_dir)
    index_path.parent.mkdir(parents=True, exist_ok=True)
    payload = SessionIndex(entries=index)
    _ = index_path.write_text(payload.model_dump_json(indent=2))


def session_exists(name: str, sensa_dir: Path) -> bool:
    """Check if a session with the given name exists."""
    return name in load_index(sensa_dir)


def list_sessions(sensa_dir: Path) -> list[SessionRecord]:
    """Load every indexed session, sorted by name."""
    index = load_index(sensa_dir)
    records: list[SessionRecord] = []
    for name in sorted(index):
        path = get_session_path(index[name], sensa_dir)
        if not path.exists():
            logger.warning("Session '%s' is indexed but %s is missing", name, path)
            continue
        records.append(SessionRecord.load(path))
    return records


def load_session_by_name(name: str, sensa_dir: Path) -> SessionRecord:
    """Load a session by name."""
    index = load_index(sensa_dir)
    if name not in index:
        msg = f"Session '{name}' not found"
        raise FileNotFoundError(msg)
    session_id = index[name]
    path = get_session_path(session_id, sensa_dir)
    return SessionRecord.load(path)


def _stored_model_path(model_path: Path, sensa_dir: Path) -> str:
    project_root = sensa_dir.parent.resolve()
    full_path = model_path if model_path.is_absolute() else Path.cwd() / model_path
    full_path = full_path.resolve()
    try:
        return str(full_path.relative_to(project_root))
    except ValueError:
        # Model lives outside the project
        return str(full_path)


def resolve_model_path(record: SessionRecord, sensa_dir: Path) -> Path:
    """Absolute path of a session's model file."""
    path = Path(record.model_path)
    if path.is_absolute():
        return path
    return sensa_dir.parent / path


def create_session(  # noqa: PLR0913
    name: str,
    model_path: Path,
    sensa_dir: Path,
    delta: float | str | None = None,
    selectors: str | Sequence[str] = (),
    config: SensaConfig | None = None,
) -> SessionRecord:
    """Create a new session for the model at ``model_path``.

    The model file is loaded once so that bad files and unknown base case
    selectors are rejected up front.
    """
    if session_exists(name, sensa_dir):
        msg = f"Session '{name}' already exists"
        raise ValueError(msg)
    if not model_path.exists():
        msg = f"Model file not found: {model_path}"
        raise FileNotFoundError(msg)

    config = config or load_config(sensa_dir)
    settings = PerturbationSettings(delta=config.default_delta)
    session = AnalysisSession(DictModel.from_yaml(model_path), settings)
    if delta is not None:
        _ = session.perturbations.set_delta(delta)
    if selectors:
        _ = session.perturbations.set_base_case_selectors(selectors)

    record = SessionRecord(
        session_id=generate_session_id(),
        name=name,
        model_path=_stored_model_path(model_path, sensa_dir),
        settings=session.perturbations.settings,
    )
    record.set_path(get_session_path(record.session_id, sensa_dir))
    record.save()

    index = load_index(sensa_dir)
    index[name] = record.session_id
    save_index(sensa_dir, index)
    logger.info("Created session %s (%s)", name, record.session_id)

    return record


def open_session(
    record: SessionRecord,
    sensa_dir: Path,
    command: Sequence[str] | None = None,
    config: SensaConfig | None = None,
) -> AnalysisSession:
    """Rebuild the live analysis session of a stored record."""
    config = config or load_config(sensa_dir)
    model_path = resolve_model_path(record, sensa_dir)
    if not model_path.exists():
        msg = f"Model file not found: {model_path}"
        raise FileNotFoundError(msg)

    model = CommandModel(
        ModelDescription.from_yaml(model_path),
        runs_dir=get_session_runs_dir(record.session_id, sensa_dir),
        command=command,
        workdir=sensa_dir.parent,
        timeout=config.solve_timeout,
        kill_grace_period=config.kill_grace_period,
    )
    try:
        return AnalysisSession(
            model,
            settings=record.settings,
            runs=record.runs,
            plan=record.plan,
            stale=record.stale,
        )
    except SensaStateError as e:
        msg = f"Session '{record.name}' is inconsistent: {e}"
        raise SensaValidationError(msg) from e


def sync_record(record: SessionRecord, session: AnalysisSession) -> SessionRecord:
    """Copy the live session state into its record."""
    record.settings = session.perturbations.settings
    record.plan = session.controller.plan()
    record.runs = list(session.runs)
    record.stale = session.perturbations.stale
    return record


def save_session(record: SessionRecord, session: AnalysisSession) -> None:
    """Persist the live session state."""
    sync_record(record, session).save()


def clear_session_runs(record: SessionRecord, sensa_dir: Path) -> None:
    """Delete the solver run directories of a session."""
    runs_dir = get_session_runs_dir(record.session_id, sensa_dir)
    if runs_dir.exists():
        shutil.rmtree(runs_dir)

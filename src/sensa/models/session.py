# Copyright (c) Syntropy Systems
"""Pydantic models for controller plans, snapshots and stored sessions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, cast

from pydantic import (
    Field,
    PrivateAttr,
    TypeAdapter,
    field_validator,
    model_serializer,
    model_validator,
)
from typing_extensions import override

from .base import SensaBaseModel
from .run import RunRecord
from .variables import Outcome, Parameter

if TYPE_CHECKING:
    from pathlib import Path

_ENTRIES_ADAPTER = TypeAdapter(dict[str, str])


class ControllerState(str, Enum):
    """Run controller states."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"


class ScheduledRun(SensaBaseModel):
    """One slot in the run schedule."""

    index: int
    parameter: str | None = None

    @property
    def label(self) -> str:
        """Column label of this slot."""
        return "baseline" if self.parameter is None else self.parameter


class ControllerPlan(SensaBaseModel):
    """Frozen inputs and progress of a run sequence."""

    state: ControllerState = ControllerState.IDLE
    schedule: list[ScheduledRun] = Field(default_factory=list)
    outcomes: list[str] = Field(default_factory=list)
    delta: float = 0.0
    selectors: list[str] = Field(default_factory=list)
    last_completed: int | None = None
    elapsed_seconds: float = 0.0


class PerturbationSettings(SensaBaseModel):
    """Serializable content of a perturbation set."""

    parameters: list[Parameter] = Field(default_factory=list)
    outcomes: list[Outcome] = Field(default_factory=list)
    delta: float = 10.0
    base_case_selectors: list[str] = Field(default_factory=list)
    excluded_parameters: list[str] = Field(default_factory=list)
    excluded_outcomes: list[str] = Field(default_factory=list)


class ScheduleEntry(SensaBaseModel):
    """Schedule slot as shown in a snapshot."""

    index: int
    label: str
    recorded: bool = False
    failed: bool = False


class AnalysisSnapshot(SensaBaseModel):
    """Read-only view of one analysis session, suitable for polling."""

    state: ControllerState
    progress: str = ""
    schedule: list[ScheduleEntry] = Field(default_factory=list)
    last_completed: int | None = None
    runs: list[RunRecord] = Field(default_factory=list)
    failure_count: int = 0
    settings: PerturbationSettings = Field(default_factory=PerturbationSettings)
    selected_run: int | None = None
    stale: bool = False
    notices: list[str] = Field(default_factory=list)


class SessionRecord(SensaBaseModel):
    """Analysis session as stored in .sensa/sessions/<id>.json."""

    session_id: str
    name: str
    model_path: str
    settings: PerturbationSettings = Field(default_factory=PerturbationSettings)
    plan: ControllerPlan = Field(default_factory=ControllerPlan)
    runs: list[RunRecord] = Field(default_factory=list)
    stale: bool = False
    created_at: str = ""

    _path: Path | None = PrivateAttr(default=None)

    @override
    def model_post_init(self, __context: object, /) -> None:
        if not self.created_at:
            self.created_at = datetime.now(timezone.utc).isoformat()

    @classmethod
    def load(cls, path: Path) -> SessionRecord:
        """Load a session from JSON file."""
        record = cls.model_validate_json(path.read_text())
        record.set_path(path)
        return record

    def save(self) -> None:
        """Save session to JSON file."""
        if self._path is None:
            msg = "Session path not set"
            raise ValueError(msg)

        self._path.parent.mkdir(parents=True, exist_ok=True)
        _ = self._path.write_text(self.model_dump_json(indent=2))

    def set_path(self, path: Path) -> None:
        """Set the session file path for persistence."""
        self._path = path

    @property
    def path(self) -> Path | None:
        """Return the session file path, if set."""
        return self._path


class SessionIndex(SensaBaseModel):
    """Index mapping session name to session_id."""

    entries: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _coerce_root(cls, value: object) -> object:
        if value is None:
            return {"entries": {}}
        if isinstance(value, dict):
            value_dict = cast("dict[str, object]", value)
            if "entries" not in value_dict:
                return {"entries": cast("dict[str, str]", value_dict)}
            return {"entries": cast("dict[str, str]", value_dict["entries"])}
        return value

    @field_validator("entries", mode="before")
    @classmethod
    def _wrap_entries(cls, value: object) -> dict[str, str]:
        if value is None:
            return {}
        if isinstance(value, str):
            return _ENTRIES_ADAPTER.validate_json(value)
        return cast("dict[str, str]", value)

    @model_serializer(mode="plain")
    def _serialize(self) -> dict[str, str]:
        return self.entries

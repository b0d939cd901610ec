# Copyright (c) Syntropy Systems
"""Ordered parameter and outcome lists, delta, and base case selectors."""
from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Callable, TypeVar

from sensa.errors import SensaValidationError
from sensa.models.session import PerturbationSettings
from sensa.models.variables import OA_SEPARATOR, Outcome, Parameter, Variable, VariableRole
from sensa.references import parse_delta, sanitize_selectors

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from sensa.ledger import RunLedger
    from sensa.model import ModelAdapter

logger = logging.getLogger(__name__)

STALE_NOTICE = "Change may have invalidated the analysis results"

NoticeListener = Callable[[str], None]
RenameHook = Callable[[Mapping[str, str]], None]
V = TypeVar("V", bound=Variable)


class Direction(str, Enum):
    """Direction for moving a list entry."""

    UP = "up"
    DOWN = "down"


def _check_index(items: Sequence[Variable], index: int, kind: str) -> None:
    if not 0 <= index < len(items):
        msg = f"No {kind} at position {index} (have {len(items)})"
        raise SensaValidationError(msg)


def _direction(value: Direction | str) -> Direction:
    try:
        return Direction(value)
    except ValueError as e:
        msg = f"Direction must be 'up' or 'down', got {value!r}"
        raise SensaValidationError(msg) from e


def _renamed(name: str, old: str, new: str) -> str:
    """Rename ``old`` in a reference, also when it is the entity part."""
    if name == old:
        return new
    prefix = f"{old}{OA_SEPARATOR}"
    if name.startswith(prefix):
        return f"{new}{OA_SEPARATOR}{name[len(prefix):]}"
    return name


class PerturbationSet:
    """What to perturb, what to observe, and by how much.

    Edits made after runs have been recorded never clear the ledger; they
    raise a stale notice instead.
    """

    def __init__(
        self,
        model: ModelAdapter,
        settings: PerturbationSettings | None = None,
        ledger: RunLedger | None = None,
    ) -> None:
        self.model = model
        self.ledger = ledger
        self._lock = threading.RLock()
        settings = settings or PerturbationSettings()
        self._parameters: list[Parameter] = list(settings.parameters)
        self._outcomes: list[Outcome] = list(settings.outcomes)
        self._delta = settings.delta
        self._selectors: list[str] = list(settings.base_case_selectors)
        self._excluded_parameters: set[str] = set(settings.excluded_parameters)
        self._excluded_outcomes: set[str] = set(settings.excluded_outcomes)
        self.selected_parameter: int | None = None
        self.selected_outcome: int | None = None
        self.stale = False
        self.notices: list[str] = []
        self._listeners: list[NoticeListener] = []
        self._rename_hooks: list[RenameHook] = []

    # Read access

    @property
    def parameters(self) -> tuple[Parameter, ...]:
        with self._lock:
            return tuple(self._parameters)

    @property
    def outcomes(self) -> tuple[Outcome, ...]:
        with self._lock:
            return tuple(self._outcomes)

    @property
    def delta(self) -> float:
        return self._delta

    @property
    def base_case_selectors(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._selectors)

    @property
    def excluded_parameters(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._excluded_parameters)

    @property
    def excluded_outcomes(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._excluded_outcomes)

    def enabled_parameters(self) -> list[Parameter]:
        """Parameters not excluded by the checklist, in list order."""
        with self._lock:
            return [p for p in self._parameters if p.name not in self._excluded_parameters]

    def enabled_outcomes(self) -> list[Outcome]:
        """Outcomes not excluded by the checklist, in list order."""
        with self._lock:
            return [o for o in self._outcomes if o.name not in self._excluded_outcomes]

    @property
    def settings(self) -> PerturbationSettings:
        """Serializable copy of the current settings."""
        with self._lock:
            return PerturbationSettings(
                parameters=list(self._parameters),
                outcomes=list(self._outcomes),
                delta=self._delta,
                base_case_selectors=list(self._selectors),
                excluded_parameters=sorted(self._excluded_parameters),
                excluded_outcomes=sorted(self._excluded_outcomes),
            )

    # Notices

    def subscribe(self, listener: NoticeListener) -> None:
        """Call ``listener`` with the text of every stale notice."""
        self._listeners.append(listener)

    def clear_notices(self) -> None:
        """Reset the stale flag and drop collected notices."""
        with self._lock:
            self.stale = False
            self.notices.clear()

    def _changed(self) -> None:
        if self.ledger is None or len(self.ledger) == 0:
            return
        self.stale = True
        self.notices.append(STALE_NOTICE)
        logger.warning(STALE_NOTICE)
        for listener in list(self._listeners):
            try:
                listener(STALE_NOTICE)
            except Exception:
                logger.exception("Notice listener failed")

    # Membership

    def _add(self, items: list[V], ref: str, role: VariableRole, var_cls: type[V]) -> V:
        variable = self.model.resolve(ref, role)
        with self._lock:
            if any(item.name == variable.name for item in items):
                msg = f"{role.value.capitalize()} '{variable.name}' is already in the list"
                raise SensaValidationError(msg)
            item = var_cls.model_validate(variable.model_dump())
            items.append(item)
        logger.info("Added %s %s", role.value, item.name)
        self._changed()
        return item

    def add_parameter(self, ref: str) -> Parameter:
        """Append a parameter; reject duplicates and unresolvable references."""
        return self._add(self._parameters, ref, VariableRole.PARAMETER, Parameter)

    def add_outcome(self, ref: str) -> Outcome:
        """Append an outcome; reject duplicates and unresolvable references."""
        return self._add(self._outcomes, ref, VariableRole.OUTCOME, Outcome)

    def remove_parameter(self, index: int) -> Parameter:
        with self._lock:
            _check_index(self._parameters, index, "parameter")
            removed = self._parameters.pop(index)
            self._excluded_parameters.discard(removed.name)
            self.selected_parameter = _after_removal(self.selected_parameter, index)
        logger.info("Removed parameter %s", removed.name)
        self._changed()
        return removed

    def remove_outcome(self, index: int) -> Outcome:
        with self._lock:
            _check_index(self._outcomes, index, "outcome")
            removed = self._outcomes.pop(index)
            self._excluded_outcomes.discard(removed.name)
            self.selected_outcome = _after_removal(self.selected_outcome, index)
        logger.info("Removed outcome %s", removed.name)
        self._changed()
        return removed

    # Ordering

    def move_parameter(self, index: int, direction: Direction | str) -> int:
        """Move a parameter one place; return its new index."""
        with self._lock:
            _check_index(self._parameters, index, "parameter")
            new_index = _move(self._parameters, index, _direction(direction))
            self.selected_parameter = _after_move(self.selected_parameter, index, new_index)
        if new_index != index:
            self._changed()
        return new_index

    def move_outcome(self, index: int, direction: Direction | str) -> int:
        """Move an outcome one place; return its new index."""
        with self._lock:
            _check_index(self._outcomes, index, "outcome")
            new_index = _move(self._outcomes, index, _direction(direction))
            self.selected_outcome = _after_move(self.selected_outcome, index, new_index)
        if new_index != index:
            self._changed()
        return new_index

    def select_parameter(self, index: int | None) -> None:
        if index is not None:
            _check_index(self._parameters, index, "parameter")
        self.selected_parameter = index

    def select_outcome(self, index: int | None) -> None:
        if index is not None:
            _check_index(self._outcomes, index, "outcome")
        self.selected_outcome = index

    # Checklist

    def exclude_parameter(self, name: str, excluded: bool = True) -> None:  # noqa: FBT001, FBT002
        """Leave a parameter out of runs and matrices, or bring it back."""
        self._set_excluded(self._parameters, self._excluded_parameters, name, excluded, "parameter")

    def exclude_outcome(self, name: str, excluded: bool = True) -> None:  # noqa: FBT001, FBT002
        """Leave an outcome out of matrices, or bring it back."""
        self._set_excluded(self._outcomes, self._excluded_outcomes, name, excluded, "outcome")

    def toggle_parameter(self, index: int) -> bool:
        """Flip the checklist mark of a parameter; return True if now excluded."""
        with self._lock:
            _check_index(self._parameters, index, "parameter")
            name = self._parameters[index].name
            excluded = name not in self._excluded_parameters
        self.exclude_parameter(name, excluded)
        return excluded

    def toggle_outcome(self, index: int) -> bool:
        """Flip the checklist mark of an outcome; return True if now excluded."""
        with self._lock:
            _check_index(self._outcomes, index, "outcome")
            name = self._outcomes[index].name
            excluded = name not in self._excluded_outcomes
        self.exclude_outcome(name, excluded)
        return excluded

    def _set_excluded(  # noqa: PLR0913
        self,
        items: Sequence[Variable],
        excluded_names: set[str],
        name: str,
        excluded: bool,  # noqa: FBT001
        kind: str,
    ) -> None:
        with self._lock:
            if not any(item.name == name for item in items):
                msg = f"Unknown {kind} '{name}'"
                raise SensaValidationError(msg)
            if (name in excluded_names) == excluded:
                return
            if excluded:
                excluded_names.add(name)
            else:
                excluded_names.discard(name)
        self._changed()

    # Delta and base case

    def set_delta(self, value: object) -> float:
        """Validate and set the perturbation percentage."""
        delta = parse_delta(value)
        with self._lock:
            if delta == self._delta:
                return delta
            self._delta = delta
        logger.info("Delta set to %s%%", delta)
        self._changed()
        return delta

    def set_base_case_selectors(self, tokens: str | Iterable[str]) -> list[str]:
        """Validate and set the selectors that define the base case."""
        selectors = sanitize_selectors(tokens)
        known = self.model.list_selectors()
        unknown = [s for s in selectors if s not in known]
        if unknown:
            msg = f"Unknown scenario selector(s): {', '.join(unknown)}"
            raise SensaValidationError(msg)
        with self._lock:
            if selectors == self._selectors:
                return selectors
            self._selectors = selectors
        logger.info("Base case selectors set to %s", " ".join(selectors) or "(none)")
        self._changed()
        return selectors

    def on_rename(self, hook: RenameHook) -> None:
        """Call ``hook`` with the old-to-new name map before a rename applies.

        A hook may raise to refuse the rename; nothing is changed then.
        """
        self._rename_hooks.append(hook)

    def rename(self, old: str, new: str) -> int:
        """Follow a renamed model variable; return the number of entries changed.

        Recorded runs are relabelled so their cells and exclusions keep
        matching the renamed entries.
        """
        with self._lock:
            renames: dict[str, str] = {}
            for items in (self._parameters, self._outcomes):
                names = [_renamed(item.name, old, new) for item in items]
                if len(set(names)) < len(names):
                    msg = f"Renaming '{old}' to '{new}' would duplicate an entry"
                    raise SensaValidationError(msg)
                renames.update(
                    (item.name, name) for item, name in zip(items, names) if name != item.name
                )
        if not renames:
            return 0

        for hook in list(self._rename_hooks):
            hook(renames)

        with self._lock:
            changed = 0
            for items, excluded in (
                (self._parameters, self._excluded_parameters),
                (self._outcomes, self._excluded_outcomes),
            ):
                for i, item in enumerate(items):
                    name = renames.get(item.name)
                    if name is None:
                        continue
                    entity = _renamed(item.entity, old, new)
                    items[i] = item.model_copy(update={"name": name, "entity": entity})
                    if item.name in excluded:
                        excluded.discard(item.name)
                        excluded.add(name)
                    changed += 1
            if self.ledger is not None:
                _ = self.ledger.relabel(renames)
        logger.info("Renamed %s to %s in %d entries", old, new, changed)
        return changed


def _move(items: list[V], index: int, direction: Direction) -> int:
    target = index - 1 if direction == Direction.UP else index + 1
    if not 0 <= target < len(items):
        return index
    items[index], items[target] = items[target], items[index]
    return target


def _after_removal(selected: int | None, removed: int) -> int | None:
    if selected is None or selected == removed:
        return None
    return selected - 1 if selected > removed else selected


def _after_move(selected: int | None, old: int, new: int) -> int | None:
    if selected == old:
        return new
    if selected == new:
        return old
    return selected

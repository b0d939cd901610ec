# Copyright (c) Syntropy Systems
"""Model adapters: resolve references, build variants, solve them.

The engine never looks inside a model. It talks to a ``ModelAdapter``,
which knows how to resolve variable references, list scenario selectors,
apply one perturbation, and solve the resulting variant.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Callable, Protocol, Union, cast, runtime_checkable

import yaml
from pydantic import Field, ValidationError, field_validator
from typing_extensions import TypeAlias

from sensa.errors import SensaValidationError, SolveFailure
from sensa.models.base import SensaBaseModel
from sensa.models.variables import (
    Outcome,
    Parameter,
    Variable,
    VariableKind,
    VariableRole,
)
from sensa.references import format_reference, parse_reference

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

NumericValue: TypeAlias = Union[float, list[float]]
SolveFunction: TypeAlias = Callable[["ModelVariant"], Mapping[str, object]]


class DatasetSpec(SensaBaseModel):
    """A dataset: default value plus per-selector modifiers."""

    default: NumericValue = 0.0
    modifiers: dict[str, NumericValue] = Field(default_factory=dict)


class ModelDescription(SensaBaseModel):
    """Declarative description of a model's exogenous data.

    Entity attributes with a None value are endogenous: they can be
    observed as outcomes but not perturbed.
    """

    name: str = "model"
    entities: dict[str, dict[str, NumericValue | None]] = Field(default_factory=dict)
    datasets: dict[str, DatasetSpec] = Field(default_factory=dict)
    equations: list[str] = Field(default_factory=list)
    command: list[str] = Field(default_factory=list)
    solve_timeout: float | None = None

    @field_validator("datasets", mode="before")
    @classmethod
    def _coerce_datasets(cls, value: object) -> object:
        if not isinstance(value, dict):
            return value
        value_dict = cast("dict[str, object]", value)
        converted: dict[str, object] = {}
        for name, spec in value_dict.items():
            if isinstance(spec, (int, float, list)):
                converted[name] = {"default": spec}
            else:
                converted[name] = spec
        return converted

    @classmethod
    def from_yaml(cls, path: Path) -> ModelDescription:
        """Load a model description from a YAML file."""
        try:
            with path.open() as f:
                data = cast("dict[str, object]", yaml.safe_load(f) or {})
        except yaml.YAMLError as e:
            msg = f"Invalid model file {path}: {e}"
            raise SensaValidationError(msg) from e
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            msg = f"Invalid model file {path}: {e}"
            raise SensaValidationError(msg) from e


class ModelVariant(SensaBaseModel):
    """Run-ready model data: base case applied, at most one parameter perturbed."""

    model_name: str = "model"
    perturbed: str | None = None
    delta: float = 0.0
    factor: float = 1.0
    selectors: list[str] = Field(default_factory=list)
    values: dict[str, NumericValue] = Field(default_factory=dict)

    def value(self, name: str) -> NumericValue:
        """Return the value of one exogenous variable."""
        return self.values[name]


class SolveResult(SensaBaseModel):
    """Outcome series plus any messages the solver reported."""

    series: dict[str, list[float]] = Field(default_factory=dict)
    messages: list[str] = Field(default_factory=list)


@runtime_checkable
class ModelAdapter(Protocol):
    """What the engine needs from a model."""

    def resolve(self, ref: str, role: VariableRole) -> Variable:
        """Resolve a reference or raise SensaValidationError."""
        ...

    def list_selectors(self) -> dict[str, list[str]]:
        """Map every known selector to the datasets it modifies."""
        ...

    def make_variant(
        self, parameter: str | None, delta: float, selectors: Sequence[str]
    ) -> ModelVariant:
        """Build a variant with the base case applied and one parameter perturbed."""
        ...

    def solve(
        self, variant: ModelVariant, outcomes: Sequence[str]
    ) -> dict[str, list[float]] | SolveResult:
        """Solve a variant; raise SolveFailure when no outcomes can be produced."""
        ...


def _scale(value: NumericValue, factor: float) -> NumericValue:
    if isinstance(value, list):
        return [v * factor for v in value]
    return value * factor


def normalize_series(raw: Mapping[str, object], outcomes: Sequence[str]) -> dict[str, list[float]]:
    """Coerce solver output to one float list per requested outcome.

    Scalars become one-element series. Outcomes the solver did not report
    are left out.
    """
    series: dict[str, list[float]] = {}
    for name in outcomes:
        if name not in raw:
            continue
        value = raw[name]
        items = value if isinstance(value, Sequence) and not isinstance(value, str) else [value]
        try:
            series[name] = [float(cast("float", v)) for v in items]
        except (TypeError, ValueError) as e:
            msg = f"Outcome '{name}' is not numeric: {value!r}"
            raise SolveFailure(msg) from e
    return series


class DictModel:
    """Model adapter over a ModelDescription, solved by a Python callable."""

    description: ModelDescription
    solve_fn: SolveFunction | None

    def __init__(
        self,
        description: ModelDescription | Mapping[str, object],
        solve_fn: SolveFunction | None = None,
    ) -> None:
        if isinstance(description, ModelDescription):
            self.description = description
        else:
            self.description = ModelDescription.model_validate(description)
        self.solve_fn = solve_fn

    @classmethod
    def from_yaml(cls, path: Path, solve_fn: SolveFunction | None = None) -> DictModel:
        """Load the description from a YAML file."""
        return cls(ModelDescription.from_yaml(path), solve_fn=solve_fn)

    def resolve(self, ref: str, role: VariableRole) -> Variable:
        """Resolve a reference against entities, datasets and equations."""
        entity, attribute = parse_reference(ref)
        name = format_reference(entity, attribute)
        desc = self.description
        var_cls = Parameter if role == VariableRole.PARAMETER else Outcome

        if entity in desc.datasets:
            if attribute is not None and attribute not in desc.datasets[entity].modifiers:
                msg = f"Dataset '{entity}' has no modifier for selector '{attribute}'"
                raise SensaValidationError(msg)
            return var_cls(
                name=name, entity=entity, attribute=attribute, kind=VariableKind.DATASET
            )

        if attribute is None:
            if entity in desc.equations:
                if role == VariableRole.PARAMETER:
                    msg = f"Equation '{entity}' is endogenous and can only be an outcome"
                    raise SensaValidationError(msg)
                return var_cls(name=name, entity=entity, kind=VariableKind.EQUATION)
            if entity in desc.entities:
                msg = f"Reference '{ref}' needs an attribute (Entity|Attribute)"
                raise SensaValidationError(msg)
            msg = f"Unknown entity, dataset or equation '{entity}'"
            raise SensaValidationError(msg)

        attributes = desc.entities.get(entity)
        if attributes is None:
            msg = f"Unknown entity '{entity}'"
            raise SensaValidationError(msg)
        if attribute not in attributes:
            msg = f"Entity '{entity}' has no attribute '{attribute}'"
            raise SensaValidationError(msg)
        if role == VariableRole.PARAMETER and attributes[attribute] is None:
            msg = f"Attribute '{name}' has no exogenous value to perturb"
            raise SensaValidationError(msg)
        return var_cls(name=name, entity=entity, attribute=attribute)

    def list_selectors(self) -> dict[str, list[str]]:
        """Map every selector to the datasets that have a modifier for it."""
        selectors: dict[str, list[str]] = {}
        for ds_name, spec in self.description.datasets.items():
            for selector in spec.modifiers:
                selectors.setdefault(selector, []).append(ds_name)
        return {s: sorted(names) for s, names in sorted(selectors.items())}

    def make_variant(
        self, parameter: str | None, delta: float, selectors: Sequence[str]
    ) -> ModelVariant:
        """Apply the base case selectors, then perturb ``parameter`` by delta percent."""
        desc = self.description
        factor = 1.0 + delta / 100.0 if parameter is not None else 1.0
        target: Variable | None = None
        if parameter is not None:
            target = self.resolve(parameter, VariableRole.PARAMETER)

        datasets = copy.deepcopy(desc.datasets)
        if target is not None and target.kind == VariableKind.DATASET and target.attribute:
            spec = datasets[target.entity]
            spec.modifiers[target.attribute] = _scale(spec.modifiers[target.attribute], factor)

        values: dict[str, NumericValue] = {}
        for entity, attributes in desc.entities.items():
            for attribute, value in attributes.items():
                if value is not None:
                    values[format_reference(entity, attribute)] = copy.deepcopy(value)

        for ds_name, spec in datasets.items():
            resolved = spec.default
            # Later selectors override earlier ones
            for selector in selectors:
                if selector in spec.modifiers:
                    resolved = spec.modifiers[selector]
            values[ds_name] = copy.deepcopy(resolved)
            for selector, modifier in spec.modifiers.items():
                values[format_reference(ds_name, selector)] = copy.deepcopy(modifier)

        if target is not None and not (
            target.kind == VariableKind.DATASET and target.attribute
        ):
            values[target.name] = _scale(values[target.name], factor)

        return ModelVariant(
            model_name=desc.name,
            perturbed=target.name if target is not None else None,
            delta=delta if target is not None else 0.0,
            factor=factor,
            selectors=list(selectors),
            values=values,
        )

    def solve(
        self, variant: ModelVariant, outcomes: Sequence[str]
    ) -> dict[str, list[float]]:
        """Solve by calling the configured Python function."""
        if self.solve_fn is None:
            msg = f"No solver configured for model '{self.description.name}'"
            raise SolveFailure(msg)
        try:
            raw = self.solve_fn(variant)
        except SolveFailure:
            raise
        except Exception as e:
            msg = f"Solver raised {type(e).__name__}: {e}"
            raise SolveFailure(msg) from e
        logger.debug("Solved variant (perturbed=%s)", variant.perturbed)
        return normalize_series(raw, outcomes)

# Copyright (c) Syntropy Systems
"""Pydantic models for analysis parameters and outcomes."""

from __future__ import annotations

from enum import Enum

from .base import SensaBaseModel

# Separates entity name from attribute in a variable reference
OA_SEPARATOR = "|"


class VariableKind(str, Enum):
    """What a variable reference resolves to in the model."""

    ATTRIBUTE = "attribute"
    DATASET = "dataset"
    EQUATION = "equation"


class VariableRole(str, Enum):
    """Whether a variable is perturbed or observed."""

    PARAMETER = "parameter"
    OUTCOME = "outcome"


class Variable(SensaBaseModel):
    """A resolved reference to a model quantity."""

    name: str
    entity: str
    attribute: str | None = None
    kind: VariableKind = VariableKind.ATTRIBUTE

    def __str__(self) -> str:
        return self.name


class Parameter(Variable):
    """A perturbable model quantity."""


class Outcome(Variable):
    """An observed model quantity, recorded after each run."""

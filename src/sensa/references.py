# Copyright (c) Syntropy Systems
"""Parsing of variable references, selector lists and delta input."""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

from sensa.errors import SensaValidationError
from sensa.models.variables import OA_SEPARATOR

if TYPE_CHECKING:
    from collections.abc import Iterable

_SELECTOR_SEPARATORS = re.compile(r"[;,]")
_SELECTOR_INVALID = re.compile(r"[^a-zA-Z0-9+\-%_\s]")


def parse_reference(ref: str) -> tuple[str, str | None]:
    """Split 'Entity|Attribute' into its parts.

    A reference without separator has no attribute (datasets, equations).
    """
    text = ref.strip()
    if not text:
        msg = "Empty variable reference"
        raise SensaValidationError(msg)

    if OA_SEPARATOR not in text:
        return text, None

    entity, attribute = text.split(OA_SEPARATOR, 1)
    entity = entity.strip()
    attribute = attribute.strip()
    if not entity:
        msg = f"Missing entity name in reference '{ref}'"
        raise SensaValidationError(msg)
    if not attribute:
        msg = f"Missing attribute in reference '{ref}'"
        raise SensaValidationError(msg)
    return entity, attribute


def format_reference(entity: str, attribute: str | None) -> str:
    """Join entity and attribute into canonical reference text."""
    if attribute is None:
        return entity
    return f"{entity}{OA_SEPARATOR}{attribute}"


def sanitize_selectors(tokens: str | Iterable[str]) -> list[str]:
    """Turn selector input into a clean, duplicate-free token list.

    Semicolons and commas count as separators; characters that cannot
    occur in a selector are dropped.
    """
    text = tokens if isinstance(tokens, str) else " ".join(tokens)
    text = _SELECTOR_SEPARATORS.sub(" ", text).strip()
    text = _SELECTOR_INVALID.sub("", text)

    result: list[str] = []
    for token in text.split():
        if token not in result:
            result.append(token)
    return result


def parse_delta(value: object) -> float:
    """Validate a perturbation percentage.

    Accepts numbers and numeric strings, optionally ending in '%'.
    """
    if isinstance(value, bool):
        msg = f"Delta must be numeric, got {value!r}"
        raise SensaValidationError(msg)

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("%"):
            text = text[:-1].strip()
        try:
            number = float(text)
        except ValueError as e:
            msg = f"Delta must be numeric, got '{value}'"
            raise SensaValidationError(msg) from e
    else:
        msg = f"Delta must be numeric, got {value!r}"
        raise SensaValidationError(msg)

    if not math.isfinite(number):
        msg = f"Delta must be finite, got {value!r}"
        raise SensaValidationError(msg)
    return number

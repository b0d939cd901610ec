# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for sensa."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, JsonValue
from typing_extensions import TypeAlias

JSONValue: TypeAlias = JsonValue


class SensaBaseModel(BaseModel):
    """Base model with shared config for sensa schemas."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        # Outcome series may hold NaN or infinities
        ser_json_inf_nan="constants",
    )

# Copyright (c) Syntropy Systems
"""Exceptions raised by the sensitivity analysis engine."""

from __future__ import annotations


class SensaError(Exception):
    """Base class for all sensa errors."""


class SensaValidationError(SensaError, ValueError):
    """Rejected input: bad variable reference, unknown selector, bad delta.

    Raised before any state is changed.
    """


class SensaStateError(SensaError, RuntimeError):
    """Operation not allowed in the current controller state."""


class SolveFailure(SensaError):
    """The solver could not produce outcomes for one run.

    The controller absorbs this into the ledger as a failed run.
    """

    def __init__(self, message: str, messages: list[str] | None = None) -> None:
        super().__init__(message)
        self.messages = list(messages or [])

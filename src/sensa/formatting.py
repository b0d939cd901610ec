# Copyright (c) Syntropy Systems
"""Text formatting for matrix cells and elapsed times."""
from __future__ import annotations

import math
from typing import TYPE_CHECKING

from sensa.models.matrix import Cell, Sentinel

if TYPE_CHECKING:
    from collections.abc import Sequence

SENTINEL_SYMBOLS: dict[Sentinel, str] = {
    Sentinel.NOT_RUN: "-",
    Sentinel.FAILED: "✗",
    Sentinel.UNDEFINED: "⚠",
}

PLUS_INFINITY = "∞"
MINUS_INFINITY = "-∞"


def _exponential(value: float) -> str:
    mantissa, exponent = f"{value:.2e}".split("e")
    sign, digits = exponent[0], exponent[1:].lstrip("0") or "0"
    return f"{mantissa}e{sign}{digits}"


def sig4dig(value: float) -> str:
    """Format a number with (about) four significant digits.

    Large integers are kept whole; very large or very small magnitudes use
    exponential notation with two decimals.
    """
    if math.isnan(value):
        return SENTINEL_SYMBOLS[Sentinel.UNDEFINED]
    if math.isinf(value):
        return PLUS_INFINITY if value > 0 else MINUS_INFINITY
    if value == 0:
        return "0"

    magnitude = abs(value)
    if magnitude >= 1e15 or magnitude < 1e-4:
        return _exponential(value)
    if magnitude >= 1e4:
        return str(round(value))
    return f"{value:.4g}"


def uniform_decimals(texts: Sequence[str]) -> list[str]:
    """Give a column of sig4dig strings the same number of decimals.

    Non-numeric entries are kept when they are infinities or sentinel
    symbols and shown as a warning sign otherwise.
    """
    max_int = max_frac = max_exp = 0
    for text in texts:
        parts = text.split("e")
        if len(parts) > 1:
            max_exp = max(max_exp, len(parts[1]))
        whole, _, frac = parts[0].partition(".")
        max_frac = max(max_frac, len(frac))
        max_int = max(max_int, len(whole))

    special = {PLUS_INFINITY, MINUS_INFINITY, *SENTINEL_SYMBOLS.values()}
    result: list[str] = []
    for text in texts:
        try:
            number = float(text)
        except ValueError:
            result.append(text if text in special else SENTINEL_SYMBOLS[Sentinel.UNDEFINED])
            continue
        if max_exp > 0:
            result.append(_exponential(number))
        elif max_int > 3:
            result.append(str(round(number)))
        else:
            result.append(f"{number:.{min(4 - max_int, max_frac)}f}")
    return result


def format_cell(cell: Cell, *, relative: bool = False) -> str:
    """Render one matrix cell; relative values get a percent sign."""
    if isinstance(cell, Sentinel):
        return SENTINEL_SYMBOLS[cell]
    text = sig4dig(cell)
    if relative and math.isfinite(cell):
        return f"{text}%"
    return text


def format_row(cells: Sequence[Cell], *, relative: bool = False) -> list[str]:
    """Render a matrix row with uniform decimals across its numbers."""
    texts = uniform_decimals([format_cell(cell) for cell in cells])
    if not relative:
        return texts
    return [
        f"{text}%" if isinstance(cell, float) and math.isfinite(cell) else text
        for cell, text in zip(cells, texts)
    ]


def format_elapsed(seconds: float) -> str:
    """Format elapsed time compactly: '850 msec', '3.2 sec', '1:05', '1:02:03'."""
    msec = max(0, int(seconds * 1000))
    if msec < 1000:
        return f"{msec} msec"
    total = msec // 1000
    if total < 60:
        return f"{total}.{(msec % 1000) // 100} sec"
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"

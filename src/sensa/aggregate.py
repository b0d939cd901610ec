# Copyright (c) Syntropy Systems
"""Reduce recorded runs to a value matrix, and map deviations to colors.

Everything here is a pure function of its inputs.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import TYPE_CHECKING

from sensa.models.matrix import Cell, Sentinel, Statistic, ValueMatrix
from sensa.models.run import OutcomeStatistics

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Sequence

    from sensa.models.run import RunRecord

# Default shade when no deviation can be placed on the scale
NEUTRAL_SHADE = 0.5

# Deviations below this magnitude count as zero when scaling
NEAR_ZERO = 1e-10


class ColorScale(str, Enum):
    """Color scales for relative deviations."""

    RED_BLUE = "rb"
    NONE = "no"


def summarize_series(values: Iterable[float]) -> OutcomeStatistics:
    """Compute every statistic of one outcome's time series.

    Non-finite values are counted as exceptions and skipped by the other
    reducers; ``last`` is the final value only when it is finite.
    """
    finite: list[float] = []
    exceptions = 0
    last: float | None = None
    for value in values:
        if math.isfinite(value):
            finite.append(value)
            last = value
        else:
            exceptions += 1
            last = None

    if not finite:
        return OutcomeStatistics(exceptions=exceptions)

    n = len(finite)
    total = math.fsum(finite)
    mean = total / n
    variance = math.fsum((v - mean) ** 2 for v in finite) / n
    return OutcomeStatistics(
        n=n,
        sum=total,
        mean=mean,
        sd=math.sqrt(variance),
        minimum=min(finite),
        maximum=max(finite),
        non_zero=sum(1 for v in finite if v != 0),
        exceptions=exceptions,
        last=last,
    )


def pick_statistic(stats: OutcomeStatistics, statistic: Statistic) -> Cell:
    """Select one statistic; missing values become Sentinel.UNDEFINED."""
    value: float | int | None
    if statistic == Statistic.N:
        value = stats.n
    elif statistic == Statistic.SUM:
        value = stats.sum
    elif statistic == Statistic.MEAN:
        value = stats.mean
    elif statistic == Statistic.SD:
        value = stats.sd
    elif statistic == Statistic.MIN:
        value = stats.minimum
    elif statistic == Statistic.MAX:
        value = stats.maximum
    elif statistic == Statistic.NON_ZERO:
        value = stats.non_zero
    elif statistic == Statistic.EXCEPTIONS:
        value = stats.exceptions
    else:
        value = stats.last
    if value is None:
        return Sentinel.UNDEFINED
    return float(value)


def reduce_series(values: Sequence[float], statistic: Statistic | str) -> Cell:
    """Reduce a time series to one scalar with the chosen statistic."""
    return pick_statistic(summarize_series(values), Statistic(statistic))


def _cell(run: RunRecord, outcome: str, statistic: Statistic) -> Cell:
    if run.failed:
        return Sentinel.FAILED
    stats = run.statistics.get(outcome)
    if stats is None:
        if outcome not in run.series:
            return Sentinel.UNDEFINED
        stats = summarize_series(run.series[outcome])
    return pick_statistic(stats, statistic)


def compute_matrix(  # noqa: PLR0913
    runs: Sequence[RunRecord],
    outcomes: Sequence[str],
    statistic: Statistic | str,
    *,
    excluded_outcomes: Collection[str] = (),
    excluded_parameters: Collection[str] = (),
    pending: Sequence[str] = (),
) -> ValueMatrix:
    """Build the outcome-by-run matrix for one statistic.

    Columns follow ledger order, baseline first. Excluded outcomes and runs
    of excluded parameters are left out entirely. ``pending`` names
    parameters that are scheduled but not yet run; their columns hold
    Sentinel.NOT_RUN.
    """
    stat = Statistic(statistic)
    rows = [o for o in outcomes if o not in excluded_outcomes]
    columns: list[RunRecord] = [
        run
        for run in runs
        if run.parameter is None or run.parameter not in excluded_parameters
    ]
    pending_labels = [p for p in pending if p not in excluded_parameters]

    labels = [run.label for run in columns]
    run_indices: list[int | None] = [run.index for run in columns]
    missing_baseline = not any(run.is_baseline for run in columns)
    if missing_baseline:
        # Keep the baseline column in place even before the baseline is run
        labels.insert(0, "baseline")
        run_indices.insert(0, None)
    labels.extend(pending_labels)
    run_indices.extend([None] * len(pending_labels))

    values: list[list[Cell]] = []
    for outcome in rows:
        row: list[Cell] = [_cell(run, outcome, stat) for run in columns]
        if missing_baseline:
            row.insert(0, Sentinel.NOT_RUN)
        row.extend([Sentinel.NOT_RUN] * len(pending_labels))
        values.append(row)

    return ValueMatrix(
        statistic=stat,
        outcomes=rows,
        columns=labels,
        run_indices=run_indices,
        values=values,
        failed_runs=sum(1 for run in columns if run.failed),
        pending_runs=len(pending_labels),
    )


def deviation(cell: Cell, base: Cell) -> Cell:
    """Percentage change of ``cell`` relative to ``base``.

    Sentinels of either side propagate (the cell's own first); a numeric
    zero base gives Sentinel.UNDEFINED.
    """
    if isinstance(cell, Sentinel) and cell != Sentinel.UNDEFINED:
        return cell
    if isinstance(base, Sentinel):
        return base
    if base == 0:
        return Sentinel.UNDEFINED
    if isinstance(cell, Sentinel):
        return cell
    return 100.0 * (cell - base) / base


def percent_deviation(matrix: ValueMatrix) -> ValueMatrix:
    """Return a copy of ``matrix`` with the relative rows filled in."""
    relative: list[list[Cell]] = []
    for row in matrix.values:
        if not row:
            relative.append([])
            continue
        base = row[0]
        relative.append([deviation(cell, base) for cell in row])
    return matrix.model_copy(update={"relative": relative})


def max_abs_deviation(matrix: ValueMatrix) -> float:
    """Largest finite absolute relative deviation in the matrix (0 if none)."""
    rows = matrix.relative if matrix.relative is not None else percent_deviation(matrix).relative
    largest = 0.0
    for row in rows or []:
        for cell in row:
            if isinstance(cell, float) and math.isfinite(cell):
                largest = max(largest, abs(cell))
    return largest


def shade_of(value: Cell, saturation: float) -> float:
    """Place a relative deviation on [0, 1], with zero deviation at 0.5.

    Values beyond +/- saturation are clipped.
    """
    if isinstance(value, Sentinel) or not math.isfinite(value):
        return NEUTRAL_SHADE
    if saturation < NEAR_ZERO:
        return NEUTRAL_SHADE
    shade = (value / saturation + 1.0) / 2.0
    return min(1.0, max(0.0, shade))


def _mix(a: int, b: int, t: float) -> int:
    return round(a + (b - a) * t)


def color_of(
    value: Cell,
    scale: ColorScale | str,
    saturation: float = 100.0,
) -> str | None:
    """Map a relative deviation to a hex color.

    The red-blue scale runs from red (-saturation) through white (0) to
    blue (+saturation). Scale ``none`` and sentinels give None.
    """
    if ColorScale(scale) == ColorScale.NONE or isinstance(value, Sentinel):
        return None
    shade = shade_of(value, saturation)
    if shade < NEUTRAL_SHADE:
        t = shade / NEUTRAL_SHADE
        rgb = (255, _mix(0, 255, t), _mix(0, 255, t))
    else:
        t = (shade - NEUTRAL_SHADE) / NEUTRAL_SHADE
        rgb = (_mix(255, 0, t), _mix(255, 0, t), 255)
    return "#{:02x}{:02x}{:02x}".format(*rgb)

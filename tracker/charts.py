"""Chart geometry for the rendering collaborator.

Nothing here draws.  Pie slices come out as angles; line series come out
as points in the unit square, and :func:`to_area` maps them onto whatever
drawing surface the caller owns.
"""

import math
from typing import List, Mapping, NamedTuple, Sequence, Tuple, Union

import numpy as np

from tracker.transforms import Bucket

FULL_TURN = 2 * math.pi
# 12 o'clock when angles grow clockwise from 3 o'clock (screen coordinates)
START_ANGLE = -math.pi / 2

Point = Tuple[float, float]


class PieSlice(NamedTuple):
    category: str
    value: float
    share: float
    start_angle: float
    end_angle: float
    fill_index: int
    show_label: bool


class PiePlaceholder(NamedTuple):
    label: str = "Aucune dépense"
    start_angle: float = START_ANGLE
    end_angle: float = START_ANGLE + FULL_TURN


class LineSeries(NamedTuple):
    labels: List[str]
    revenue: List[Point]
    expense: List[Point]
    max_value: float


class DrawingArea(NamedTuple):
    left: float
    top: float
    width: float
    height: float


def pie_slices(
    totals: Mapping[str, float], label_threshold: float = 0.05
) -> Union[List[PieSlice], List[PiePlaceholder]]:
    categories = [c for c, v in totals.items() if v > 0]
    values = np.array([totals[c] for c in categories], dtype=float)
    total = values.sum() if values.size else 0.0
    if total <= 0 or not np.isfinite(total):
        return [PiePlaceholder()]

    shares = values / total
    ends = START_ANGLE + np.cumsum(shares) * FULL_TURN
    ends[-1] = START_ANGLE + FULL_TURN
    starts = np.concatenate(([START_ANGLE], ends[:-1]))

    return [
        PieSlice(
            category=category,
            value=float(values[i]),
            share=float(shares[i]),
            start_angle=float(starts[i]),
            end_angle=float(ends[i]),
            fill_index=i,
            show_label=bool(shares[i] >= label_threshold),
        )
        for i, category in enumerate(categories)
    ]


def line_series(buckets: Sequence[Bucket]) -> LineSeries:
    n = len(buckets)
    if n == 0:
        return LineSeries(labels=[], revenue=[], expense=[], max_value=0.0)

    xs = np.linspace(0.0, 1.0, n) if n > 1 else np.array([0.5])
    revenue = np.array([b.revenue for b in buckets], dtype=float)
    expense = np.array([b.expense for b in buckets], dtype=float)
    peak = float(max(revenue.max(), expense.max()))
    scale = peak if peak > 0 else 1.0

    def points(values: np.ndarray) -> List[Point]:
        return [(float(x), float(y)) for x, y in zip(xs, values / scale)]

    return LineSeries(
        labels=[b.label for b in buckets],
        revenue=points(revenue),
        expense=points(expense),
        max_value=peak,
    )


def to_area(points: Sequence[Point], area: DrawingArea, invert_y: bool = True) -> List[Point]:
    """Map unit-square points into ``area``; ``invert_y`` puts 0 at the bottom edge."""
    if not points:
        return []
    coords = np.asarray(points, dtype=float)
    xs = area.left + coords[:, 0] * area.width
    ys = coords[:, 1]
    if invert_y:
        ys = 1.0 - ys
    ys = area.top + ys * area.height
    return [(float(x), float(y)) for x, y in zip(xs, ys)]

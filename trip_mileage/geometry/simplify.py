"""Trace simplification ahead of map matching."""

from __future__ import annotations

from typing import List, Sequence, TypeVar

from ..config import MATCH_MAX_POINTS

T = TypeVar("T")


def simplify_trace(points: Sequence[T], max_points: int = MATCH_MAX_POINTS) -> List[T]:
    """Down-sample ``points`` to at most ``max_points`` keeping both endpoints.

    Interior samples are picked at evenly spaced (rounded) indices, so the
    output is deterministic and preserves input order.
    """

    if max_points < 2:
        raise ValueError("max_points must be >= 2")
    count = len(points)
    if count <= max_points:
        return list(points)
    step = (count - 2) / (max_points - 2)
    interior = [points[_round_half_up(i * step)] for i in range(1, max_points - 1)]
    return [points[0], *interior, points[-1]]


def _round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; index selection rounds .5 upwards.
    return int(value + 0.5)


__all__ = ["simplify_trace"]

"""Point-array operations behind the metric functions and downsampling.

Every function here is pure: it takes lists of ``(value, timestamp_ms)``
points and returns new lists. ``None`` values are skipped by
aggregations.
"""

import operator
from collections.abc import Callable, Sequence
from typing import Any

import numpy as np

from zabbix_datasource.models import Datapoint

Points = list[Datapoint]
Aggregator = Callable[[Sequence[float]], float]


def _median(values: Sequence[float]) -> float:
    return float(np.median(values))


AGGREGATORS: dict[str, Aggregator] = {
    "avg": lambda values: float(np.mean(values)),
    "min": lambda values: float(np.min(values)),
    "max": lambda values: float(np.max(values)),
    "sum": lambda values: float(np.sum(values)),
    "median": _median,
    "count": lambda values: float(len(values)),
}

COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
}


def numeric_values(points: Points) -> list[float]:
    """Values of the points that are not None."""
    return [float(value) for value, _ in points if value is not None]


def aggregate_values(values: Sequence[float], func: str) -> float | None:
    """Aggregate values with a named aggregator; None for no values."""
    if not values:
        return None
    return AGGREGATORS[func](values)


def bucket_start(timestamp: int, interval_ms: int) -> int:
    """Start of the fixed-width bucket containing ``timestamp``."""
    return (timestamp // interval_ms) * interval_ms


def group_by(points: Points, interval_ms: int, func: str = "avg") -> Points:
    """Reduce points to one per fixed-width time bucket.

    Each bucket is stamped with its start time.
    """
    if interval_ms <= 0:
        raise ValueError("interval must be positive")
    buckets: dict[int, list[float]] = {}
    for value, timestamp in points:
        values = buckets.setdefault(bucket_start(int(timestamp), interval_ms), [])
        if value is not None:
            values.append(float(value))
    return [(aggregate_values(values, func), ts) for ts, values in sorted(buckets.items())]


def scale(points: Points, factor: float) -> Points:
    return [(None if v is None else float(v) * factor, ts) for v, ts in points]


def offset(points: Points, delta: float) -> Points:
    return [(None if v is None else float(v) + delta, ts) for v, ts in points]


def delta(points: Points) -> Points:
    """Difference between consecutive values; the first point is dropped."""
    result: Points = []
    for (prev, _), (value, ts) in zip(points, points[1:]):
        if prev is None or value is None:
            result.append((None, ts))
        else:
            result.append((float(value) - float(prev), ts))
    return result


def rate(points: Points) -> Points:
    """Per-second rate of a counter.

    Counter resets (a decrease) produce None rather than a negative rate.
    """
    result: Points = []
    for (prev, prev_ts), (value, ts) in zip(points, points[1:]):
        elapsed = (ts - prev_ts) / 1000
        if prev is None or value is None or elapsed <= 0:
            result.append((None, ts))
            continue
        change = float(value) - float(prev)
        result.append((change / elapsed if change >= 0 else None, ts))
    return result


def moving_average(points: Points, window: int) -> Points:
    """Average of the last ``window`` values at every point."""
    result: Points = []
    recent: list[float] = []
    for value, ts in points:
        if value is not None:
            recent.append(float(value))
            if len(recent) > window:
                recent.pop(0)
        result.append((float(np.mean(recent)) if recent else None, ts))
    return result


def shift_points(points: Points, shift_ms: int) -> Points:
    return [(value, ts + shift_ms) for value, ts in points]


def series_aggregate(series_points: Sequence[Points], func: str) -> Points:
    """Combine several series point by point.

    Points are aligned on identical timestamps; each output point
    aggregates the values the series have at that timestamp.
    """
    by_time: dict[int, list[float]] = {}
    for points in series_points:
        for value, ts in points:
            values = by_time.setdefault(int(ts), [])
            if value is not None:
                values.append(float(value))
    return [(aggregate_values(values, func), ts) for ts, values in sorted(by_time.items())]


def aggregate_by(series_points: Sequence[Points], interval_ms: int, func: str) -> Points:
    """Merge all series and reduce them to one point per time bucket."""
    merged = [point for points in series_points for point in points]
    merged.sort(key=lambda point: point[1])
    return group_by(merged, interval_ms, func)


def limit_points(points: Points, max_points: int, interval_ms: int) -> Points:
    """Downsample to bucket means when there are more than ``max_points``."""
    if len(points) <= max_points:
        return points
    return group_by(points, interval_ms, "avg")

"""Function pipeline engine.

Applies a target's functions in a fixed category order regardless of
the order they were declared in:

1. Time: adjusts the fetch range; the shift is undone on the fetched points
2. Transform: per series
3. Filter: selects series
4. Aggregate: collapses all series into one
5. Alias: relabels

Within a category, functions chain left to right in declared order.
"""

from collections.abc import Iterable

from zabbix_datasource.models import FunctionCall, TimeSeries
from zabbix_datasource.processing import dataprocessor as dp
from zabbix_datasource.processing.functions import (
    BoundFunction,
    FunctionCategory,
    FunctionName,
    bind,
)

DEFAULT_TREND_VALUE = "avg"


class FunctionPipeline:
    """Validated, categorized functions of one target.

    Example:
        pipeline = FunctionPipeline.from_calls(target.functions)
        time_from, time_to = pipeline.shift_time_range(from_ms, to_ms)
        series = pipeline.apply(fetched_series)
    """

    def __init__(self, functions: Iterable[BoundFunction]) -> None:
        self.functions = list(functions)
        self._by_category: dict[FunctionCategory, list[BoundFunction]] = {c: [] for c in FunctionCategory}
        for function in self.functions:
            self._by_category[function.category].append(function)

    @classmethod
    def from_calls(cls, calls: Iterable[FunctionCall]) -> "FunctionPipeline":
        """Bind every call against the registry.

        Raises:
            ConfigurationError: For the first unknown or malformed call.
        """
        return cls(bind(call) for call in calls)

    def of_category(self, category: FunctionCategory) -> list[BoundFunction]:
        return list(self._by_category[category])

    def __len__(self) -> int:
        return len(self.functions)

    # ------------------------------------------------------------------
    # Fetch-time parameters
    # ------------------------------------------------------------------

    def shift_time_range(self, time_from: int, time_to: int) -> tuple[int, int]:
        """Range to fetch once the Time functions are applied."""
        time_range = (time_from, time_to)
        for function in self._by_category[FunctionCategory.TIME]:
            time_range = function(time_range)
        return time_range

    @property
    def time_shift_ms(self) -> int:
        """Total shift applied by the timeShift functions."""
        return sum(
            f.args[0] for f in self._by_category[FunctionCategory.TIME] if f.name == FunctionName.TIME_SHIFT
        )

    @property
    def trend_value(self) -> str:
        """Trend aggregate to read; the last trendValue wins."""
        trends = self._by_category[FunctionCategory.TRENDS]
        return trends[-1].args[0] if trends else DEFAULT_TREND_VALUE

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def apply(self, series_list: list[TimeSeries]) -> list[TimeSeries]:
        """Run the fetched series through the post-fetch categories."""
        series_list = self.unshift(series_list)

        transforms = self._by_category[FunctionCategory.TRANSFORM]
        if transforms:
            series_list = [self._transform(series, transforms) for series in series_list]

        for function in self._by_category[FunctionCategory.FILTER]:
            series_list = function(series_list)

        aggregates = self._by_category[FunctionCategory.AGGREGATE]
        if aggregates and series_list:
            series_list = [self._aggregate(series_list, aggregates)]

        return self.apply_alias(series_list)

    def apply_alias(self, series_list: list[TimeSeries]) -> list[TimeSeries]:
        """Apply only the Alias functions."""
        for function in self._by_category[FunctionCategory.ALIAS]:
            series_list = [function(series) for series in series_list]
        return series_list

    def unshift(self, series_list: list[TimeSeries]) -> list[TimeSeries]:
        """Move points fetched from a shifted range back into the requested one."""
        shift = self.time_shift_ms
        if not shift:
            return series_list
        return [
            TimeSeries(label=series.label, datapoints=dp.shift_points(series.datapoints, -shift))
            for series in series_list
        ]

    @staticmethod
    def _transform(series: TimeSeries, transforms: list[BoundFunction]) -> TimeSeries:
        points = series.datapoints
        for function in transforms:
            points = function(points)
        return TimeSeries(label=series.label, datapoints=points)

    @staticmethod
    def _aggregate(series_list: list[TimeSeries], aggregates: list[BoundFunction]) -> TimeSeries:
        points = aggregates[0]([series.datapoints for series in series_list])
        for function in aggregates[1:]:
            points = function([points])
        # Labelled by the last aggregate in declaration order.
        return TimeSeries(label=aggregates[-1].text, datapoints=points)

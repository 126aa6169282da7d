"""Registry of metric functions.

The registry is closed: every function is a member of ``FunctionName``
and maps to one category, a parameter list and a pure implementation.
Binding a FunctionCall validates the name and coerces its parameters,
so a bad target fails before anything is fetched.

Categories and their input/output shapes:
    Time       (from_ms, to_ms) -> (from_ms, to_ms)
    Trends     read at fetch time, no implementation
    Transform  points -> points (per series)
    Filter     [TimeSeries] -> [TimeSeries]
    Aggregate  [points] -> points
    Alias      TimeSeries -> TimeSeries (label changed in place)
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from zabbix_datasource.config import parse_interval
from zabbix_datasource.errors import ConfigurationError
from zabbix_datasource.models import FunctionCall, TimeSeries
from zabbix_datasource.processing import dataprocessor as dp
from zabbix_datasource.query.filters import compile_js_regex, is_regex


class FunctionCategory(str, Enum):
    """Function categories, in application order."""

    TIME = "Time"
    TRENDS = "Trends"
    TRANSFORM = "Transform"
    FILTER = "Filter"
    AGGREGATE = "Aggregate"
    ALIAS = "Alias"


class FunctionName(str, Enum):
    """Every function a target may use."""

    TIME_SHIFT = "timeShift"
    TREND_VALUE = "trendValue"
    GROUP_BY = "groupBy"
    SCALE = "scale"
    OFFSET = "offset"
    DELTA = "delta"
    RATE = "rate"
    MOVING_AVERAGE = "movingAverage"
    TOP = "top"
    BOTTOM = "bottom"
    FILTER_SERIES = "filterSeries"
    AGGREGATE = "aggregate"
    SUM_SERIES = "sumSeries"
    AVERAGE_SERIES = "averageSeries"
    AGGREGATE_BY = "aggregateBy"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"
    MEDIAN = "median"
    SET_ALIAS = "setAlias"
    ALIAS = "alias"
    REPLACE_ALIAS = "replaceAlias"


TREND_FIELDS = ("avg", "min", "max", "count")

_TIME_SHIFT_PATTERN = re.compile(r"^([+-]?)(\d+[a-zA-Z]+)$")


def parse_time_shift(value: str) -> int:
    """Signed shift in milliseconds; unsigned values shift into the past.

    ``"24h"`` and ``"-24h"`` -> -86400000, ``"+1h"`` -> 3600000.
    """
    match = _TIME_SHIFT_PATTERN.match(str(value).strip())
    if not match:
        raise ConfigurationError(f"Invalid time shift: {value!r}")
    sign, interval = match.groups()
    shift = parse_interval(interval)
    return shift if sign == "+" else -shift


# ----------------------------------------------------------------------
# Parameter coercion
# ----------------------------------------------------------------------


def _choice(options: tuple[str, ...]) -> Callable[[Any], str]:
    def coerce(value: Any) -> str:
        value = str(value)
        if value not in options:
            raise ValueError(f"expected one of {', '.join(options)}")
        return value

    return coerce


def _positive_int(value: Any) -> int:
    number = int(value)
    if number <= 0:
        raise ValueError("expected a positive integer")
    return number


def _positive_interval(value: Any) -> int:
    interval = parse_interval(value)
    if interval <= 0:
        raise ValueError("expected a positive interval")
    return interval


def _regex(value: Any) -> re.Pattern[str]:
    value = str(value)
    if is_regex(value):
        body, _, flags = value[1:].rpartition("/")
        return compile_js_regex(body, flags)
    return compile_js_regex(re.escape(value))


@dataclass(frozen=True)
class ParamDef:
    """A positional function parameter."""

    name: str
    coerce: Callable[[Any], Any]
    default: Any = None


AGGREGATOR_PARAM = ParamDef("function", _choice(tuple(dp.AGGREGATORS)), "avg")
INTERVAL_PARAM = ParamDef("interval", _positive_interval, "1m")


@dataclass(frozen=True)
class FunctionDef:
    """Static definition of a registered function."""

    name: FunctionName
    category: FunctionCategory
    impl: Callable[..., Any] | None
    params: tuple[ParamDef, ...] = field(default_factory=tuple)


# ----------------------------------------------------------------------
# Implementations
# ----------------------------------------------------------------------


def _time_shift(time_range: tuple[int, int], shift_ms: int) -> tuple[int, int]:
    time_from, time_to = time_range
    return time_from + shift_ms, time_to + shift_ms


def _rank(series_list: list[TimeSeries], count: int, func: str, reverse: bool) -> list[TimeSeries]:
    def score(series: TimeSeries) -> float:
        value = dp.aggregate_values(dp.numeric_values(series.datapoints), func)
        return float("-inf") if value is None else value

    return sorted(series_list, key=score, reverse=reverse)[:count]


def _top(series_list: list[TimeSeries], count: int, func: str) -> list[TimeSeries]:
    return _rank(series_list, count, func, reverse=True)


def _bottom(series_list: list[TimeSeries], count: int, func: str) -> list[TimeSeries]:
    return _rank(series_list, count, func, reverse=False)


def _filter_series(
    series_list: list[TimeSeries], func: str, op: str, threshold: float
) -> list[TimeSeries]:
    compare = dp.COMPARATORS[op]
    kept = []
    for series in series_list:
        value = dp.aggregate_values(dp.numeric_values(series.datapoints), func)
        if value is not None and compare(value, threshold):
            kept.append(series)
    return kept


def _set_alias(series: TimeSeries, alias: str) -> TimeSeries:
    series.label = alias
    return series


def _replace_alias(series: TimeSeries, pattern: re.Pattern[str], replacement: str) -> TimeSeries:
    # JavaScript-style $1 group references.
    series.label = pattern.sub(re.sub(r"\$(\d+)", r"\\\1", replacement), series.label)
    return series


def _interval_aggregate(func: str) -> Callable[[list[dp.Points], int], dp.Points]:
    def aggregate(series_points: list[dp.Points], interval_ms: int) -> dp.Points:
        return dp.aggregate_by(series_points, interval_ms, func)

    return aggregate


def _define(
    name: FunctionName,
    category: FunctionCategory,
    impl: Callable[..., Any] | None,
    *params: ParamDef,
) -> FunctionDef:
    return FunctionDef(name=name, category=category, impl=impl, params=params)


_TIME, _TRENDS, _TRANSFORM, _FILTER, _AGGREGATE, _ALIAS = (
    FunctionCategory.TIME,
    FunctionCategory.TRENDS,
    FunctionCategory.TRANSFORM,
    FunctionCategory.FILTER,
    FunctionCategory.AGGREGATE,
    FunctionCategory.ALIAS,
)

FUNCTIONS: dict[FunctionName, FunctionDef] = {
    d.name: d
    for d in (
        _define(FunctionName.TIME_SHIFT, _TIME, _time_shift, ParamDef("interval", parse_time_shift, "24h")),
        _define(FunctionName.TREND_VALUE, _TRENDS, None, ParamDef("type", _choice(TREND_FIELDS), "avg")),
        _define(FunctionName.GROUP_BY, _TRANSFORM, dp.group_by, INTERVAL_PARAM, AGGREGATOR_PARAM),
        _define(FunctionName.SCALE, _TRANSFORM, dp.scale, ParamDef("factor", float, 100)),
        _define(FunctionName.OFFSET, _TRANSFORM, dp.offset, ParamDef("delta", float, 0)),
        _define(FunctionName.DELTA, _TRANSFORM, dp.delta),
        _define(FunctionName.RATE, _TRANSFORM, dp.rate),
        _define(FunctionName.MOVING_AVERAGE, _TRANSFORM, dp.moving_average, ParamDef("points", _positive_int, 10)),
        _define(FunctionName.TOP, _FILTER, _top, ParamDef("number", _positive_int, 5), AGGREGATOR_PARAM),
        _define(FunctionName.BOTTOM, _FILTER, _bottom, ParamDef("number", _positive_int, 5), AGGREGATOR_PARAM),
        _define(
            FunctionName.FILTER_SERIES,
            _FILTER,
            _filter_series,
            AGGREGATOR_PARAM,
            ParamDef("operator", _choice(tuple(dp.COMPARATORS)), ">"),
            ParamDef("threshold", float, 0),
        ),
        _define(FunctionName.AGGREGATE, _AGGREGATE, dp.series_aggregate, AGGREGATOR_PARAM),
        _define(FunctionName.SUM_SERIES, _AGGREGATE, lambda series_points: dp.series_aggregate(series_points, "sum")),
        _define(FunctionName.AVERAGE_SERIES, _AGGREGATE, lambda series_points: dp.series_aggregate(series_points, "avg")),
        _define(FunctionName.AGGREGATE_BY, _AGGREGATE, dp.aggregate_by, INTERVAL_PARAM, AGGREGATOR_PARAM),
        _define(FunctionName.AVERAGE, _AGGREGATE, _interval_aggregate("avg"), INTERVAL_PARAM),
        _define(FunctionName.MIN, _AGGREGATE, _interval_aggregate("min"), INTERVAL_PARAM),
        _define(FunctionName.MAX, _AGGREGATE, _interval_aggregate("max"), INTERVAL_PARAM),
        _define(FunctionName.MEDIAN, _AGGREGATE, _interval_aggregate("median"), INTERVAL_PARAM),
        _define(FunctionName.SET_ALIAS, _ALIAS, _set_alias, ParamDef("alias", str)),
        _define(FunctionName.ALIAS, _ALIAS, _set_alias, ParamDef("alias", str)),
        _define(FunctionName.REPLACE_ALIAS, _ALIAS, _replace_alias, ParamDef("regex", _regex), ParamDef("replacement", str, "")),
    )
}


def get_categories() -> dict[FunctionCategory, list[FunctionName]]:
    """Function names grouped by category."""
    categories: dict[FunctionCategory, list[FunctionName]] = {c: [] for c in FunctionCategory}
    for definition in FUNCTIONS.values():
        categories[definition.category].append(definition.name)
    return categories


@dataclass(frozen=True)
class BoundFunction:
    """A validated function call with coerced parameters.

    Attributes:
        definition: Registry entry.
        args: Coerced positional parameters.
        text: Display text as declared on the target.
    """

    definition: FunctionDef
    args: tuple[Any, ...]
    text: str

    @property
    def name(self) -> FunctionName:
        return self.definition.name

    @property
    def category(self) -> FunctionCategory:
        return self.definition.category

    def __call__(self, data: Any) -> Any:
        if self.definition.impl is None:
            return data
        return self.definition.impl(data, *self.args)


def bind(call: FunctionCall) -> BoundFunction:
    """Validate a function call against the registry.

    Raises:
        ConfigurationError: Unknown function, too many parameters or a
            parameter that does not coerce.
    """
    try:
        name = FunctionName(call.name)
    except ValueError:
        raise ConfigurationError(
            f"Unknown function: {call.name}",
            details={"function": call.name},
        ) from None

    definition = FUNCTIONS[name]
    if len(call.params) > len(definition.params):
        raise ConfigurationError(
            f"{call.name}() takes {len(definition.params)} parameter(s), got {len(call.params)}",
            details={"function": call.name},
        )

    args = []
    for index, param in enumerate(definition.params):
        raw = call.params[index] if index < len(call.params) else param.default
        if raw is None:
            raise ConfigurationError(
                f"{call.name}() is missing parameter '{param.name}'",
                details={"function": call.name},
            )
        try:
            args.append(param.coerce(raw))
        except ConfigurationError:
            raise
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid value {raw!r} for parameter '{param.name}' of {call.name}(): {e}",
                details={"function": call.name, "param": param.name},
            ) from e

    return BoundFunction(definition=definition, args=tuple(args), text=call.text)

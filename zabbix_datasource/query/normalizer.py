"""Conversion of raw Zabbix replies into TimeSeries.

Zabbix returns history and trends as flat lists of points tagged with
an ``itemid`` and a ``clock`` in seconds; these helpers group them per
item, sort them by time and convert clocks to milliseconds.
"""

import re
from collections.abc import Callable, Iterable
from typing import Any

from zabbix_datasource.models import Datapoint, ServiceRef, SLAProperty, TimeSeries
from zabbix_datasource.query.filters import compile_js_regex, is_regex
from zabbix_datasource.zabbix.models import Item

TREND_FIELD_MAP = {
    "avg": "value_avg",
    "min": "value_min",
    "max": "value_max",
    "count": "num",
}

PointConverter = Callable[[dict[str, Any], Item], Datapoint]


def series_label(item: Item, add_host_name: bool) -> str:
    """Display label of an item's series."""
    if add_host_name and item.host_name:
        return f"{item.host_name}: {item.name}"
    return item.name


def to_number(value: Any) -> float | None:
    """Numeric history value, or None when Zabbix sent something unparseable."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _history_point(point: dict[str, Any], item: Item) -> Datapoint:
    value = to_number(point["value"]) if item.is_numeric else point["value"]
    return value, int(point["clock"]) * 1000


def _group_points(
    raw: Iterable[dict[str, Any]],
    items: list[Item],
    convert: PointConverter,
    add_host_name: bool,
) -> list[TimeSeries]:
    by_item: dict[str, list[dict[str, Any]]] = {}
    for point in raw:
        by_item.setdefault(str(point["itemid"]), []).append(point)

    series = []
    for item in items:
        points = by_item.get(item.itemid)
        if not points:
            continue
        points.sort(key=lambda p: int(p["clock"]))
        series.append(
            TimeSeries(
                label=series_label(item, add_host_name),
                datapoints=[convert(point, item) for point in points],
            )
        )
    return series


def normalize_history(
    raw: Iterable[dict[str, Any]],
    items: list[Item],
    add_host_name: bool = False,
) -> list[TimeSeries]:
    """One series per item that has history points.

    Numeric items get float values; text items keep their strings.
    Points of items that are not in ``items`` are dropped.
    """
    return _group_points(raw, items, _history_point, add_host_name)


def normalize_trends(
    raw: Iterable[dict[str, Any]],
    items: list[Item],
    value_type: str = "avg",
    add_host_name: bool = False,
) -> list[TimeSeries]:
    """One series per item, valued by the selected trend aggregate.

    Args:
        raw: ``trend.get`` result.
        items: Items the trends were requested for.
        value_type: ``avg``, ``min``, ``max`` or ``count``.
        add_host_name: Prefix labels with the host name.
    """
    field = TREND_FIELD_MAP.get(value_type, value_type)

    def convert(point: dict[str, Any], item: Item) -> Datapoint:
        return to_number(point.get(field)), int(point["clock"]) * 1000

    return _group_points(raw, items, convert, add_host_name)


def compile_text_filter(text_filter: str) -> re.Pattern[str]:
    """Compile a text-extraction regex (bare or ``/re/flags``)."""
    if is_regex(text_filter):
        body, _, flags = text_filter[1:].rpartition("/")
        return compile_js_regex(body, flags)
    return compile_js_regex(text_filter)


def extract_text(value: str, pattern: re.Pattern[str], use_capture_groups: bool = False) -> str | None:
    """First match of ``pattern`` in ``value`` (or its first group); None when nothing matches."""
    match = pattern.search(value)
    if match is None:
        return None
    if use_capture_groups and pattern.groups:
        return match.group(1)
    return match.group(0)


def normalize_text(
    raw: Iterable[dict[str, Any]],
    items: list[Item],
    text_filter: str = "",
    use_capture_groups: bool = False,
    add_host_name: bool = False,
) -> list[TimeSeries]:
    """Text history series, optionally reduced to a regex extraction.

    Raises:
        ConfigurationError: If ``text_filter`` does not compile.
    """
    pattern = compile_text_filter(text_filter) if text_filter else None

    def convert(point: dict[str, Any], item: Item) -> Datapoint:
        value = str(point["value"])
        if pattern is not None:
            return extract_text(value, pattern, use_capture_groups), int(point["clock"]) * 1000
        return value, int(point["clock"]) * 1000

    return _group_points(raw, items, convert, add_host_name)


def normalize_sla(
    service: ServiceRef,
    sla_property: SLAProperty,
    sla_result: dict[str, Any],
    time_to_ms: int,
) -> list[TimeSeries]:
    """Single-point series for one SLA figure of one service.

    Args:
        service: Service the SLA was requested for.
        sla_property: Figure to report (``sla``, ``okTime``, ...).
        sla_result: ``service.getsla`` result keyed by service id.
        time_to_ms: End of the SLA interval; the point's timestamp.
    """
    entry = sla_result.get(service.serviceid) or {}
    intervals = entry.get("sla") or []
    if not intervals:
        return []
    value = intervals[0].get(sla_property.property)
    return [
        TimeSeries(
            label=f"{service.name} {sla_property.name}",
            datapoints=[(to_number(value), time_to_ms)],
        )
    ]

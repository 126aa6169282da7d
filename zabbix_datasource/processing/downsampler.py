"""Point-count limiting for final series."""

from zabbix_datasource.models import TimeSeries
from zabbix_datasource.processing.dataprocessor import limit_points


def _is_numeric(series: TimeSeries) -> bool:
    return all(value is None or isinstance(value, (int, float)) for value, _ in series.datapoints)


def limit(series_list: list[TimeSeries], max_points: int, interval_ms: int) -> list[TimeSeries]:
    """Downsample numeric series longer than ``max_points``.

    Series over the cap are reduced to the mean of each ``interval_ms``
    bucket; series at or under it, and text series, are returned as-is.
    """
    limited = []
    for series in series_list:
        if len(series.datapoints) <= max_points or not _is_numeric(series):
            limited.append(series)
            continue
        limited.append(
            TimeSeries(
                label=series.label,
                datapoints=limit_points(series.datapoints, max_points, interval_ms),
            )
        )
    return limited

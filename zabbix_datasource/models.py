"""Data models for the consumer-facing query contract.

This module defines the Pydantic models for targets, function calls,
time series, query requests/responses and annotations.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

# (value, timestamp in milliseconds)
Datapoint = tuple[Any, int]


class QueryMode(str, Enum):
    """What a target retrieves."""

    NUMERIC = "numeric"
    SERVICE = "service"
    TEXT = "text"

    @classmethod
    def _missing_(cls, value: object) -> "QueryMode | None":
        # Dashboards saved by older versions store the mode as 0/1/2.
        legacy = {0: cls.NUMERIC, 1: cls.SERVICE, 2: cls.TEXT}
        try:
            return legacy.get(int(value))  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return None


class FunctionCall(BaseModel):
    """One function applied by a target.

    Accepts ``{"name": "scale", "params": [100]}``, the editor format
    ``{"def": {"name": "scale"}, "params": [100]}`` and the shorthand
    ``{"scale": 100}``.
    """

    name: str
    params: list[Any] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        if not isinstance(data, dict):
            return data
        if "def" in data and isinstance(data["def"], dict):
            return {"name": data["def"].get("name"), "params": data.get("params", [])}
        if "name" not in data and len(data) == 1:
            name, params = next(iter(data.items()))
            if not isinstance(params, list):
                params = [params]
            return {"name": name, "params": params}
        return data

    @property
    def text(self) -> str:
        """Display text, e.g. ``groupBy(1m, avg)``."""
        return f"{self.name}({', '.join(str(p) for p in self.params)})"


class ServiceRef(BaseModel):
    """IT service selected by a service-mode target."""

    serviceid: str
    name: str = ""


class SLAProperty(BaseModel):
    """SLA figure selected by a service-mode target."""

    name: str
    property: str


def _filter_value(value: Any) -> str:
    # Older targets store filters as {"filter": "..."} objects.
    if isinstance(value, dict):
        return str(value.get("filter") or value.get("name") or "")
    return "" if value is None else str(value)


class Target(BaseModel):
    """A user-authored query: four filters, a mode and functions.

    Attributes:
        ref_id: Identifier of the target within the panel.
        group: Host group filter.
        host: Host filter.
        application: Application filter.
        item: Item filter.
        mode: numeric, text or service.
        functions: Functions in the order they were declared.
        hide: Hidden targets are not queried.
        text_filter: Regex extracting part of text values.
        use_capture_groups: Return the first capture group of text_filter.
        itservice: Service for service mode.
        sla_property: SLA figure for service mode.
    """

    ref_id: str = Field(default="A", alias="refId")
    group: str = ""
    host: str = ""
    application: str = ""
    item: str = ""
    mode: QueryMode = QueryMode.NUMERIC
    functions: list[FunctionCall] = Field(default_factory=list)
    hide: bool = False
    text_filter: str = Field(default="", alias="textFilter")
    use_capture_groups: bool = Field(default=False, alias="useCaptureGroups")
    itservice: ServiceRef | None = None
    sla_property: SLAProperty | None = Field(default=None, alias="slaProperty")

    model_config = {"populate_by_name": True}

    @field_validator("group", "host", "application", "item", mode="before")
    @classmethod
    def _migrate_filter(cls, value: Any) -> str:
        return _filter_value(value)

    @property
    def is_complete(self) -> bool:
        """Whether the target carries enough to be queried."""
        if self.mode == QueryMode.SERVICE:
            return self.itservice is not None and self.sla_property is not None
        return bool(self.group and self.host and self.item)


class TimeSeries(BaseModel):
    """A labelled, time-ascending sequence of (value, timestamp_ms) points.

    Duplicate timestamps are kept as-is.
    """

    label: str
    datapoints: list[Datapoint] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Panel-ready representation."""
        return {"label": self.label, "datapoints": [list(p) for p in self.datapoints]}


def datetime_to_ms(value: datetime) -> int:
    """Datetime to epoch milliseconds (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


class QueryRequest(BaseModel):
    """A panel query.

    Attributes:
        targets: Targets to resolve and fetch.
        time_from: Range start.
        time_to: Range end.
        max_data_points: Point cap per series.
        interval_ms: Bucket width used when downsampling.
    """

    targets: list[Target]
    time_from: datetime = Field(alias="from")
    time_to: datetime = Field(alias="to")
    max_data_points: int = Field(default=1000, alias="maxDataPoints", gt=0)
    interval_ms: int = Field(default=60_000, alias="intervalMs", gt=0)

    model_config = {"populate_by_name": True}

    @property
    def from_ms(self) -> int:
        return datetime_to_ms(self.time_from)

    @property
    def to_ms(self) -> int:
        return datetime_to_ms(self.time_to)


class TargetResult(BaseModel):
    """Outcome of one target: series, or the error that stopped it."""

    ref_id: str
    series: list[TimeSeries] = Field(default_factory=list)
    error: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class QueryResponse(BaseModel):
    """Results of a panel query, one entry per target."""

    results: list[TargetResult] = Field(default_factory=list)

    @property
    def data(self) -> list[TimeSeries]:
        """All series of all successful targets."""
        return [series for result in self.results for series in result.series]

    @property
    def errors(self) -> dict[str, dict[str, Any]]:
        """Errors keyed by target ref id."""
        return {r.ref_id: r.error for r in self.results if r.error is not None}


class AnnotationQuery(BaseModel):
    """Trigger-event annotation query.

    Attributes:
        group: Host group filter.
        host: Host filter.
        application: Application filter.
        trigger: Trigger description filter (exact or /regex/).
        min_severity: Lowest trigger priority shown (0-5).
        show_ok_events: Include OK (recovery) events.
        hide_acknowledged: Drop acknowledged events.
        show_hostname: Tag annotations with host names.
    """

    group: str = ""
    host: str = ""
    application: str = ""
    trigger: str = ""
    min_severity: int = Field(default=0, alias="minseverity", ge=0, le=5)
    show_ok_events: bool = Field(default=False, alias="showOkEvents")
    hide_acknowledged: bool = Field(default=False, alias="hideAcknowledged")
    show_hostname: bool = Field(default=False, alias="showHostname")
    time_from: datetime = Field(alias="from")
    time_to: datetime = Field(alias="to")

    model_config = {"populate_by_name": True}


class Annotation(BaseModel):
    """A single event annotation."""

    timestamp: int
    title: str
    text: str
    tags: list[str] | None = None


class MetricFindValue(BaseModel):
    """A templating/autocomplete entry."""

    text: str
    expandable: bool = False

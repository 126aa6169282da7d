"""Models for Zabbix API entities.

These are read-only reflections of remote state, built from API
replies and discarded when the metadata cache expires.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ItemKind(str, Enum):
    """Value kind requested from ``item.get``."""

    NUMERIC = "num"
    TEXT = "text"
    ALL = "all"

    @property
    def value_types(self) -> list[int] | None:
        """Zabbix ``value_type`` codes for this kind (None means no filter)."""
        if self == ItemKind.NUMERIC:
            return [0, 3]
        if self == ItemKind.TEXT:
            return [1, 2, 4]
        return None


# value_type codes: 0 float, 1 character, 2 log, 3 unsigned, 4 text
NUMERIC_VALUE_TYPES = frozenset({0, 3})


def expand_item_name(name: str, key: str) -> str:
    """Substitute ``$1..$N`` in an item name with the key parameters.

    ``expand_item_name("CPU $2 time", "system.cpu.util[,system,avg1]")``
    returns ``"CPU system time"``. Higher indexes are replaced first so
    ``$1`` does not clobber ``$10``.
    """
    if "[" not in key or "]" not in key:
        return name
    params = key[key.index("[") + 1 : key.rindex("]")].split(",")
    for index in range(len(params), 0, -1):
        name = name.replace(f"${index}", params[index - 1])
    return name


class ZabbixEntity(BaseModel):
    """Common configuration for API entities."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class Group(ZabbixEntity):
    """Host group."""

    groupid: str
    name: str


class HostRef(ZabbixEntity):
    """Host reference embedded in items, triggers and events."""

    hostid: str
    name: str = ""


class Host(ZabbixEntity):
    """Monitored host."""

    hostid: str
    name: str
    host: str = ""


class Application(ZabbixEntity):
    """Item application (removed from the API in Zabbix 5.4)."""

    applicationid: str
    name: str
    hostid: str | None = None


class Item(ZabbixEntity):
    """Metric item, the leaf of the group/host/application/item hierarchy.

    ``name`` holds the display name, with key parameters substituted.
    """

    itemid: str
    name: str
    key: str = Field(default="", alias="key_")
    value_type: int = 0
    hostid: str | None = None
    hosts: list[HostRef] = Field(default_factory=list)
    status: str | None = None
    state: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _expand_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and "$" in str(data.get("name", "")):
            key = data.get("key_", data.get("key", ""))
            data = {**data, "name": expand_item_name(data["name"], str(key))}
        return data

    @field_validator("value_type", mode="before")
    @classmethod
    def _coerce_value_type(cls, value: Any) -> int:
        return int(value)

    @property
    def is_numeric(self) -> bool:
        """Whether values of this item are numbers."""
        return self.value_type in NUMERIC_VALUE_TYPES

    @property
    def host_name(self) -> str:
        """Name of the owning host, if returned by the API."""
        return self.hosts[0].name if self.hosts else ""


class Service(ZabbixEntity):
    """IT service used for SLA queries."""

    serviceid: str
    name: str


class Acknowledge(ZabbixEntity):
    """Event acknowledgement."""

    clock: int
    message: str = ""
    alias: str = ""
    name: str = ""
    surname: str = ""

    @field_validator("clock", mode="before")
    @classmethod
    def _coerce_clock(cls, value: Any) -> int:
        return int(value)


class Trigger(ZabbixEntity):
    """Trigger, used for annotations."""

    triggerid: str
    description: str
    priority: int = 0
    hosts: list[HostRef] = Field(default_factory=list)

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> int:
        return int(value)


class Event(ZabbixEntity):
    """Trigger event."""

    eventid: str
    objectid: str
    clock: int
    value: int = 1
    acknowledges: list[Acknowledge] = Field(default_factory=list)
    hosts: list[HostRef] = Field(default_factory=list)

    @field_validator("clock", "value", mode="before")
    @classmethod
    def _coerce_int(cls, value: Any) -> int:
        return int(value)

    @property
    def is_problem(self) -> bool:
        """Problem event (value 1) as opposed to OK (value 0)."""
        return bool(self.value)


def parse_list(model: type[ZabbixEntity], result: Any) -> list[Any]:
    """Convert an API ``result`` into a list of models.

    Zabbix returns a dict keyed by id when ``preservekeys`` is set.
    """
    if isinstance(result, dict):
        result = list(result.values())
    return [model.model_validate(entry) for entry in result or []]

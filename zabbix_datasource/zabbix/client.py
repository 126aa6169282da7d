"""Typed wrappers for the Zabbix API methods the datasource consumes.

Metadata methods (hostgroup/host/application/item.get) go through the
cached MetadataCache; this client covers the uncached data methods:
history, trends, SLA, services, triggers and events.
"""

from collections.abc import Iterable
from typing import Any

import structlog

from zabbix_datasource.zabbix.models import Event, Item, Service, Trigger, parse_list
from zabbix_datasource.zabbix.session import ZabbixSession

logger = structlog.get_logger(__name__)


def _group_by_value_type(items: Iterable[Item]) -> dict[int, list[str]]:
    grouped: dict[int, list[str]] = {}
    for item in items:
        grouped.setdefault(item.value_type, []).append(item.itemid)
    return grouped


class ZabbixAPI:
    """Data-retrieval methods on top of an authenticated session.

    Example:
        api = ZabbixAPI(session)
        points = await api.get_history(items, time_from=1700000000, time_till=1700003600)
    """

    def __init__(self, session: ZabbixSession) -> None:
        """Initialize the client.

        Args:
            session: Authenticated session used for every call.
        """
        self.session = session
        self._logger = logger.bind(component="zabbix_api")

    async def get_history(self, items: list[Item], time_from: int, time_till: int) -> list[dict[str, Any]]:
        """History points of the items between two epoch-second bounds.

        ``history.get`` only accepts one value type per call, so one
        request is made per distinct type and the results concatenated.
        """
        points: list[dict[str, Any]] = []
        for value_type, itemids in _group_by_value_type(items).items():
            params = {
                "output": "extend",
                "history": value_type,
                "itemids": itemids,
                "sortfield": "clock",
                "sortorder": "ASC",
                "time_from": time_from,
                "time_till": time_till,
            }
            result = await self.session.call("history.get", params)
            points.extend(result or [])
        self._logger.debug("history_fetched", items=len(items), points=len(points))
        return points

    async def get_trends(self, items: list[Item], time_from: int, time_till: int) -> list[dict[str, Any]]:
        """Hourly trend aggregates of the items."""
        params = {
            "output": ["itemid", "clock", "value_min", "value_avg", "value_max", "num"],
            "itemids": [item.itemid for item in items],
            "time_from": time_from,
            "time_till": time_till,
        }
        points = await self.session.call("trend.get", params) or []
        self._logger.debug("trends_fetched", items=len(items), points=len(points))
        return list(points)

    async def get_services(self) -> list[Service]:
        """All IT services."""
        result = await self.session.call("service.get", {"output": ["serviceid", "name"]})
        return parse_list(Service, result)

    async def get_sla(self, serviceid: str, time_from: int, time_to: int) -> dict[str, Any]:
        """SLA of one service over a single interval, keyed by service id."""
        params = {
            "serviceids": [serviceid],
            "intervals": [{"from": time_from, "to": time_to}],
        }
        return dict(await self.session.call("service.getsla", params) or {})

    async def get_triggers(
        self,
        groupids: list[str] | None = None,
        hostids: list[str] | None = None,
        applicationids: list[str] | None = None,
    ) -> list[Trigger]:
        """Triggers of monitored hosts with macros expanded in descriptions."""
        params: dict[str, Any] = {
            "output": ["triggerid", "description", "priority"],
            "expandDescription": True,
            "monitored": True,
            "selectHosts": ["hostid", "name"],
        }
        if groupids:
            params["groupids"] = groupids
        if hostids:
            params["hostids"] = hostids
        if applicationids:
            params["applicationids"] = applicationids
        return parse_list(Trigger, await self.session.call("trigger.get", params))

    async def get_events(
        self,
        objectids: list[str],
        time_from: int,
        time_till: int,
        show_ok_events: bool = False,
    ) -> list[Event]:
        """Events raised by the given triggers in a time range.

        Only problem events unless ``show_ok_events`` is set.
        """
        if not objectids:
            return []
        params = {
            "output": "extend",
            "objectids": objectids,
            "time_from": time_from,
            "time_till": time_till,
            "select_acknowledges": "extend",
            "selectHosts": ["hostid", "name"],
            "value": [0, 1] if show_ok_events else 1,
        }
        return parse_list(Event, await self.session.call("event.get", params))

"""Cached access to Zabbix metadata.

Wraps the four "get-all" fetchers (``hostgroup.get``, ``host.get``,
``application.get``, ``item.get``) behind a CacheManager and offers
the filtered lookups the query resolver builds on.
"""

from typing import Any

import structlog

from zabbix_datasource.cache.manager import CacheKeyBuilder, CacheManager
from zabbix_datasource.errors import ApiError, is_application_method_missing
from zabbix_datasource.query.filters import NameFilter, Pattern, as_filter, filter_by_name
from zabbix_datasource.zabbix.models import (
    Application,
    Group,
    Host,
    Item,
    ItemKind,
    parse_list,
)
from zabbix_datasource.zabbix.session import ZabbixSession

logger = structlog.get_logger(__name__)

FilterArg = str | NameFilter | None


class MetadataCache:
    """TTL-cached metadata lookups for one datasource instance.

    Example:
        metadata = MetadataCache(session, CacheManager(ttl="1h"))
        hosts = await metadata.get_hosts("Linux servers", "/web-.*/")
    """

    def __init__(self, session: ZabbixSession, cache: CacheManager) -> None:
        """Initialize the metadata cache.

        Args:
            session: Authenticated session used on cache misses.
            cache: Cache storing raw API results.
        """
        self.session = session
        self.cache = cache
        self._logger = logger.bind(component="metadata_cache")

    async def _cached_call(self, method: str, params: dict[str, Any]) -> Any:
        key = CacheKeyBuilder.api_call(method, params)
        return await self.cache.get_or_fetch(key, lambda: self.session.call(method, params))

    # ------------------------------------------------------------------
    # Get-all fetchers
    # ------------------------------------------------------------------

    async def get_all_groups(self) -> list[Group]:
        """All host groups that contain hosts."""
        params = {
            "output": ["groupid", "name"],
            "sortfield": "name",
            "real_hosts": True,
        }
        return parse_list(Group, await self._cached_call("hostgroup.get", params))

    async def get_all_hosts(self, groupids: list[str]) -> list[Host]:
        """Hosts belonging to any of the given groups."""
        params = {
            "output": ["hostid", "name", "host"],
            "sortfield": "name",
            "groupids": sorted(groupids),
        }
        return parse_list(Host, await self._cached_call("host.get", params))

    async def get_all_apps(self, hostids: list[str]) -> list[Application]:
        """Applications of the given hosts.

        Raises:
            ApiError: Including "method not found" on Zabbix 5.4+; callers
                decide whether to degrade.
        """
        params = {
            "output": ["applicationid", "name", "hostid"],
            "hostids": sorted(hostids),
        }
        return parse_list(Application, await self._cached_call("application.get", params))

    async def get_all_items(
        self,
        hostids: list[str] | None = None,
        appids: list[str] | None = None,
        item_kind: ItemKind = ItemKind.NUMERIC,
    ) -> list[Item]:
        """Items of the given hosts and/or applications.

        The value kind is restricted in the API query itself.
        """
        params: dict[str, Any] = {
            "output": ["itemid", "name", "key_", "value_type", "hostid", "status", "state"],
            "sortfield": "name",
            "webitems": True,
            "filter": {},
            "selectHosts": ["hostid", "name"],
        }
        if hostids:
            params["hostids"] = sorted(hostids)
        if appids:
            params["applicationids"] = sorted(appids)
        value_types = item_kind.value_types
        if value_types is not None:
            params["filter"]["value_type"] = value_types
        return parse_list(Item, await self._cached_call("item.get", params))

    # ------------------------------------------------------------------
    # Filtered lookups
    # ------------------------------------------------------------------

    async def get_groups(self, group_filter: FilterArg = None) -> list[Group]:
        """Groups matching the filter."""
        return filter_by_name(await self.get_all_groups(), as_filter(group_filter))

    async def get_hosts(self, group_filter: FilterArg = None, host_filter: FilterArg = None) -> list[Host]:
        """Hosts matching the filter, within groups matching the group filter."""
        groups = await self.get_groups(group_filter)
        if not groups:
            return []
        hosts = await self.get_all_hosts([g.groupid for g in groups])
        return filter_by_name(hosts, as_filter(host_filter))

    async def get_applications(
        self,
        group_filter: FilterArg = None,
        host_filter: FilterArg = None,
        app_filter: FilterArg = None,
    ) -> list[Application]:
        """Applications matching the filter on the resolved hosts.

        Raises:
            ApiError: Also when the application API is missing; see
                ``apps_or_none`` for the degrading variant.
        """
        hosts = await self.get_hosts(group_filter, host_filter)
        return await self._apps_for_hosts(hosts, app_filter)

    async def _apps_for_hosts(self, hosts: list[Host], app_filter: FilterArg) -> list[Application]:
        if not hosts:
            return []
        apps = await self.get_all_apps([h.hostid for h in hosts])
        return filter_by_name(apps, as_filter(app_filter))

    async def apps_or_none(self, hosts: list[Host], app_filter: FilterArg) -> list[Application] | None:
        """Applications for the hosts, or None when the server has no application API."""
        try:
            return await self._apps_for_hosts(hosts, app_filter)
        except ApiError as e:
            if is_application_method_missing(e):
                self._logger.info("applications_unsupported", error=str(e))
                return None
            raise

    async def get_items(
        self,
        group_filter: FilterArg = None,
        host_filter: FilterArg = None,
        app_filter: FilterArg = None,
        item_filter: FilterArg = None,
        item_kind: ItemKind = ItemKind.NUMERIC,
    ) -> list[Item]:
        """Items matching all four filters.

        Hosts scope the item query; a non-trivial application filter
        further narrows it to the matching applications. Servers without
        the application API ignore the application filter.
        """
        app = as_filter(app_filter)
        hosts = await self.get_hosts(group_filter, host_filter)
        if not hosts:
            return []

        appids: list[str] | None = None
        if not (isinstance(app, Pattern) and app.matches_all):
            apps = await self.apps_or_none(hosts, app)
            if apps is not None:
                if not apps:
                    return []
                appids = [a.applicationid for a in apps]

        items = await self.get_all_items([h.hostid for h in hosts], appids, item_kind)
        return filter_by_name(items, as_filter(item_filter))

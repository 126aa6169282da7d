"""Hierarchical query resolution.

Turns a target's four filters (group, host, application, item) into the
concrete items to fetch, cascading top-down through the metadata cache.
Also backs templating: a dotted ``group.host.app.item`` query of one to
four segments returns the entities of the deepest supplied level.
"""

from dataclasses import dataclass, field

import structlog

from zabbix_datasource.cache.metadata import MetadataCache
from zabbix_datasource.models import MetricFindValue, Target
from zabbix_datasource.query.filters import WILDCARD, NameFilter, Pattern, parse_filter
from zabbix_datasource.zabbix.models import Item, ItemKind

logger = structlog.get_logger(__name__)

LEVELS = ("group", "host", "application", "item")


@dataclass(frozen=True)
class ParsedFilters:
    """The four filters of a target, classified once."""

    group: NameFilter
    host: NameFilter
    application: NameFilter
    item: NameFilter

    @classmethod
    def parse(cls, group: str, host: str, application: str, item: str) -> "ParsedFilters":
        """Classify the four filter strings.

        Raises:
            ConfigurationError: If any regex filter is malformed.
        """
        return cls(
            group=parse_filter(group),
            host=parse_filter(host),
            application=parse_filter(application),
            item=parse_filter(item),
        )


@dataclass
class Resolution:
    """Items a target resolved to.

    Attributes:
        items: Matching items, in API order.
        add_host_name: Whether series labels need the host name to be
            told apart (host filter is a pattern and items span hosts).
    """

    items: list[Item] = field(default_factory=list)
    add_host_name: bool = False


def needs_host_name(host_filter: NameFilter, items: list[Item]) -> bool:
    """Whether item labels must carry the host name."""
    if not isinstance(host_filter, Pattern):
        return False
    return len({item.hostid or item.host_name for item in items}) > 1


class QueryResolver:
    """Resolves filters to entities through a MetadataCache.

    Example:
        resolver = QueryResolver(metadata)
        items = await resolver.resolve("Linux servers", "/web-.*/", "", "CPU load")
    """

    def __init__(self, metadata: MetadataCache) -> None:
        """Initialize the resolver.

        Args:
            metadata: Cached metadata access.
        """
        self.metadata = metadata
        self._logger = logger.bind(component="query_resolver")

    async def resolve(
        self,
        group_filter: str,
        host_filter: str,
        app_filter: str,
        item_filter: str,
        item_kind: ItemKind = ItemKind.NUMERIC,
    ) -> list[Item]:
        """Items matching all four filters.

        Raises:
            ConfigurationError: If a filter is a malformed regex.
            ApiError: Remote failure other than the missing application API.
        """
        filters = ParsedFilters.parse(group_filter, host_filter, app_filter, item_filter)
        return await self._resolve_parsed(filters, item_kind)

    async def _resolve_parsed(self, filters: ParsedFilters, item_kind: ItemKind) -> list[Item]:
        items = await self.metadata.get_items(
            filters.group,
            filters.host,
            filters.application,
            filters.item,
            item_kind,
        )
        self._logger.debug("target_resolved", items=len(items), item_kind=item_kind.value)
        return items

    async def resolve_target(self, target: Target, item_kind: ItemKind = ItemKind.NUMERIC) -> Resolution:
        """Resolve a target and decide how its series are labelled."""
        filters = ParsedFilters.parse(target.group, target.host, target.application, target.item)
        items = await self._resolve_parsed(filters, item_kind)
        return Resolution(items=items, add_host_name=needs_host_name(filters.host, items))

    async def find_metrics(self, query: str) -> list[MetricFindValue]:
        """Entity names for a dotted templating query.

        ``"Linux servers.*"`` lists every host of the group,
        ``"*.web-01.*.*"`` every item of ``web-01`` regardless of
        application. More than four segments yields nothing.

        Raises:
            ConfigurationError: If a segment is a malformed regex.
        """
        parts = query.split(".") if query else [WILDCARD]
        if len(parts) > len(LEVELS):
            return []

        filters = [parse_filter(part) for part in parts]
        group = filters[0]
        host = filters[1] if len(filters) > 1 else None

        if len(filters) == 1:
            entities = await self.metadata.get_groups(group)
        elif len(filters) == 2:
            entities = await self.metadata.get_hosts(group, host)
        elif len(filters) == 3:
            hosts = await self.metadata.get_hosts(group, host)
            entities = await self.metadata.apps_or_none(hosts, filters[2]) or []
        else:
            # A wildcard application still finds items outside any application.
            entities = await self.metadata.get_items(group, host, filters[2], filters[3], ItemKind.ALL)

        names = dict.fromkeys(entity.name for entity in entities)
        return [MetricFindValue(text=name) for name in names]

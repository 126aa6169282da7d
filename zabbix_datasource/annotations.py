"""Trigger events as panel annotations."""

import math
from datetime import UTC, datetime

import structlog

from zabbix_datasource.cache.metadata import MetadataCache
from zabbix_datasource.models import Annotation, AnnotationQuery, datetime_to_ms
from zabbix_datasource.query.filters import Pattern, parse_filter
from zabbix_datasource.zabbix.client import ZabbixAPI
from zabbix_datasource.zabbix.models import Acknowledge, Event, Trigger

logger = structlog.get_logger(__name__)

ACK_TIME_FORMAT = "%d %b %Y %H:%M:%S"


def format_acknowledges(acknowledges: list[Acknowledge]) -> str:
    """Render acknowledgements as the HTML table appended to annotation text.

    Returns an empty string when there are none.
    """
    if not acknowledges:
        return ""
    rows = [
        "<br><br>Acknowledges:<br><table><tr><td><b>Time</b></td>"
        "<td><b>User</b></td><td><b>Comments</b></td></tr>"
    ]
    for ack in acknowledges:
        timestamp = datetime.fromtimestamp(ack.clock, tz=UTC).strftime(ACK_TIME_FORMAT)
        rows.append(
            f"<tr><td><i>{timestamp}</i></td>"
            f"<td>{ack.alias} ({ack.name} {ack.surname})</td>"
            f"<td>{ack.message}</td></tr>"
        )
    rows.append("</table>")
    return "".join(rows)


def _to_seconds(value: datetime) -> int:
    return math.ceil(datetime_to_ms(value) / 1000)


class AnnotationService:
    """Builds annotations from the events of matching triggers.

    Example:
        service = AnnotationService(metadata, api)
        annotations = await service.query(AnnotationQuery(...))
    """

    def __init__(self, metadata: MetadataCache, api: ZabbixAPI) -> None:
        self.metadata = metadata
        self.api = api
        self._logger = logger.bind(component="annotations")

    async def get_triggers(self, query: AnnotationQuery) -> list[Trigger]:
        """Triggers in scope of the query's group/host/application filters,
        narrowed by description and minimum severity.

        Raises:
            ConfigurationError: If a filter is a malformed regex.
        """
        app_filter = parse_filter(query.application)
        hosts = await self.metadata.get_hosts(query.group, query.host)
        if not hosts:
            return []

        appids = None
        if not (isinstance(app_filter, Pattern) and app_filter.matches_all):
            apps = await self.metadata.apps_or_none(hosts, app_filter)
            if apps is not None:
                if not apps:
                    return []
                appids = [a.applicationid for a in apps]

        triggers = await self.api.get_triggers(hostids=[h.hostid for h in hosts], applicationids=appids)

        description = parse_filter(query.trigger)
        if not (isinstance(description, Pattern) and description.matches_all):
            triggers = [t for t in triggers if description.matches(t.description)]
        return [t for t in triggers if t.priority >= query.min_severity]

    async def query(self, query: AnnotationQuery) -> list[Annotation]:
        """Annotations for the events raised in the query's time range."""
        triggers = await self.get_triggers(query)
        if not triggers:
            return []

        by_id = {t.triggerid: t for t in triggers}
        events = await self.api.get_events(
            list(by_id),
            _to_seconds(query.time_from),
            _to_seconds(query.time_to),
            show_ok_events=query.show_ok_events,
        )
        if query.hide_acknowledged:
            events = [e for e in events if not e.acknowledges]

        annotations = [
            self._to_annotation(event, by_id[event.objectid], query)
            for event in events
            if event.objectid in by_id
        ]
        self._logger.debug("annotations_built", triggers=len(triggers), events=len(annotations))
        return annotations

    @staticmethod
    def _to_annotation(event: Event, trigger: Trigger, query: AnnotationQuery) -> Annotation:
        return Annotation(
            timestamp=event.clock * 1000,
            title="Problem" if event.is_problem else "OK",
            text=trigger.description + format_acknowledges(event.acknowledges),
            tags=[h.name for h in event.hosts or trigger.hosts] if query.show_hostname else None,
        )

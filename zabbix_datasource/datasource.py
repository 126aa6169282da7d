"""Zabbix datasource: query orchestration.

Wires transport, session, metadata cache, resolver and function
pipeline together and exposes the consumer-facing operations:

- query: numeric, text and IT-service (SLA) targets
- test_connection
- metric_find_query: templating / autocomplete
- annotation_query: trigger events
"""

import asyncio
import math
import time
from collections.abc import Callable
from typing import Any

import structlog

from zabbix_datasource.annotations import AnnotationService
from zabbix_datasource.cache.manager import CacheManager
from zabbix_datasource.cache.metadata import MetadataCache
from zabbix_datasource.config import DatasourceSettings, Settings
from zabbix_datasource.errors import ConfigurationError, ZabbixDatasourceError
from zabbix_datasource.models import (
    Annotation,
    AnnotationQuery,
    MetricFindValue,
    QueryMode,
    QueryRequest,
    QueryResponse,
    Target,
    TargetResult,
    TimeSeries,
)
from zabbix_datasource.processing import downsampler
from zabbix_datasource.processing.pipeline import FunctionPipeline
from zabbix_datasource.query.normalizer import (
    normalize_history,
    normalize_sla,
    normalize_text,
    normalize_trends,
)
from zabbix_datasource.query.resolver import QueryResolver
from zabbix_datasource.zabbix.client import ZabbixAPI
from zabbix_datasource.zabbix.models import ItemKind, Service
from zabbix_datasource.zabbix.session import ConnectionTestResult, ZabbixSession
from zabbix_datasource.zabbix.transport import ZabbixTransport

logger = structlog.get_logger(__name__)


def now_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


def to_seconds(timestamp_ms: int) -> int:
    """Epoch milliseconds to the epoch seconds Zabbix expects (rounded up)."""
    return math.ceil(timestamp_ms / 1000)


def error_to_dict(error: BaseException) -> dict[str, Any]:
    """Serializable description of a target failure."""
    if isinstance(error, ZabbixDatasourceError):
        return error.to_dict()
    return {"error_type": type(error).__name__, "message": str(error), "details": {}}


class ZabbixDatasource:
    """One configured Zabbix datasource.

    Example:
        datasource = ZabbixDatasource(DatasourceSettings(url=..., username=..., password=...))
        response = await datasource.query(QueryRequest.model_validate(payload))
        await datasource.close()
    """

    def __init__(
        self,
        settings: DatasourceSettings,
        *,
        session: ZabbixSession | None = None,
        cache: CacheManager | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the datasource.

        Args:
            settings: Instance configuration.
            session: Pre-built session (a transport is created otherwise).
            cache: Pre-built metadata cache (TTL from settings otherwise).
            clock: Wall clock in epoch ms, used by the trends switch.
        """
        self.settings = settings
        if session is None:
            transport = ZabbixTransport(
                settings.url,
                basic_auth=settings.basic_auth,
                with_credentials=settings.with_credentials,
                verify_tls=settings.verify_tls,
                timeout=settings.timeout,
            )
            session = ZabbixSession(transport, settings.username, settings.password)
        self.session = session
        self.cache = cache if cache is not None else CacheManager(ttl=settings.cache_ttl_ms)
        self.metadata = MetadataCache(self.session, self.cache)
        self.resolver = QueryResolver(self.metadata)
        self.api = ZabbixAPI(self.session)
        self.annotations = AnnotationService(self.metadata, self.api)
        self._clock = clock
        self._trends_from_ms = settings.trends_from_ms
        self._logger = logger.bind(component="zabbix_datasource", url=settings.url)

    @classmethod
    def from_env(cls) -> "ZabbixDatasource":
        """Datasource configured from ``ZABBIX_*`` environment variables."""
        return cls(Settings.from_env().to_datasource_settings())

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    async def query(self, request: QueryRequest) -> QueryResponse:
        """Run every target of a panel query concurrently.

        A failing target yields a result carrying its error; the other
        targets are unaffected.
        """
        outcomes = await asyncio.gather(
            *(self.query_target(target, request) for target in request.targets),
            return_exceptions=True,
        )

        results = []
        for target, outcome in zip(request.targets, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self._logger.warning(
                    "target_failed",
                    ref_id=target.ref_id,
                    error_type=type(outcome).__name__,
                    error=str(outcome),
                )
                results.append(TargetResult(ref_id=target.ref_id, error=error_to_dict(outcome)))
            else:
                results.append(TargetResult(ref_id=target.ref_id, series=outcome))

        self._logger.info(
            "query_completed",
            targets=len(request.targets),
            failed=sum(1 for r in results if not r.ok),
        )
        return QueryResponse(results=results)

    async def query_target(self, target: Target, request: QueryRequest) -> list[TimeSeries]:
        """Resolve, fetch, process and downsample one target.

        Raises:
            ConfigurationError: Unknown function, bad parameter or
                malformed regex on this target.
            ApiError: Remote error.
            NetworkError: Connection failure.
        """
        if target.hide or not target.is_complete:
            return []

        # Validated before anything is fetched.
        pipeline = FunctionPipeline.from_calls(target.functions)

        if target.mode == QueryMode.SERVICE:
            series = await self._query_sla(target, request.from_ms, request.to_ms)
            return pipeline.apply_alias(series)

        if target.mode == QueryMode.TEXT:
            series = await self._query_text(target, request.from_ms, request.to_ms)
            return pipeline.apply_alias(series)

        # Trends are chosen on the requested range, before any time shift.
        trends = self.use_trends(request.from_ms)
        time_from, time_to = pipeline.shift_time_range(request.from_ms, request.to_ms)
        series = await self._query_numeric(target, time_from, time_to, pipeline.trend_value, trends)
        series = pipeline.apply(series)
        return downsampler.limit(series, request.max_data_points, request.interval_ms)

    def use_trends(self, time_from_ms: int) -> bool:
        """Whether a range starting at ``time_from_ms`` reads trends."""
        return self.settings.trends and time_from_ms <= self._clock() - self._trends_from_ms

    async def _query_numeric(
        self,
        target: Target,
        time_from: int,
        time_to: int,
        trend_value: str,
        trends: bool,
    ) -> list[TimeSeries]:
        resolution = await self.resolver.resolve_target(target, ItemKind.NUMERIC)
        if not resolution.items:
            return []

        if trends:
            raw = await self.api.get_trends(resolution.items, to_seconds(time_from), to_seconds(time_to))
            return normalize_trends(raw, resolution.items, trend_value, resolution.add_host_name)

        raw = await self.api.get_history(resolution.items, to_seconds(time_from), to_seconds(time_to))
        return normalize_history(raw, resolution.items, resolution.add_host_name)

    async def _query_text(self, target: Target, time_from: int, time_to: int) -> list[TimeSeries]:
        resolution = await self.resolver.resolve_target(target, ItemKind.TEXT)
        if not resolution.items:
            return []
        raw = await self.api.get_history(resolution.items, to_seconds(time_from), to_seconds(time_to))
        return normalize_text(
            raw,
            resolution.items,
            target.text_filter,
            target.use_capture_groups,
            resolution.add_host_name,
        )

    async def _query_sla(self, target: Target, time_from: int, time_to: int) -> list[TimeSeries]:
        if target.itservice is None or target.sla_property is None:
            raise ConfigurationError(
                "Service queries need an IT service and an SLA property",
                details={"ref_id": target.ref_id},
            )
        sla = await self.api.get_sla(target.itservice.serviceid, to_seconds(time_from), to_seconds(time_to))
        return normalize_sla(target.itservice, target.sla_property, sla, time_to)

    # ------------------------------------------------------------------
    # Other operations
    # ------------------------------------------------------------------

    async def test_connection(self) -> ConnectionTestResult:
        """Check that the API is reachable and the credentials work."""
        result = await self.session.test_connection()
        self._logger.info("connection_tested", state=result.status.value)
        return result

    async def metric_find_query(self, query: str) -> list[MetricFindValue]:
        """Entity names for a dotted ``group.host.app.item`` query."""
        return await self.resolver.find_metrics(query)

    async def annotation_query(self, query: AnnotationQuery) -> list[Annotation]:
        """Trigger events in a time range as annotations."""
        return await self.annotations.query(query)

    async def get_services(self) -> list[Service]:
        """IT services available for SLA targets."""
        return await self.api.get_services()

    def get_cache_metrics(self) -> dict[str, Any]:
        """Metadata cache counters."""
        return {**self.cache.get_metrics(), "entries": len(self.cache)}

    def invalidate_cache(self) -> int:
        """Drop all cached metadata."""
        return self.cache.invalidate()

    async def close(self) -> None:
        """Release the HTTP connection pool."""
        await self.session.close()

    async def __aenter__(self) -> "ZabbixDatasource":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

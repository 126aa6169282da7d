"""Zabbix datasource: query Zabbix metrics, trends, SLAs and events.

This package contains:
- ZabbixDatasource: query orchestration for one configured Zabbix server
- Target / QueryRequest / QueryResponse models
- DatasourceSettings and environment-based Settings
"""

from zabbix_datasource.config import DatasourceSettings, Settings, parse_interval
from zabbix_datasource.datasource import ZabbixDatasource
from zabbix_datasource.errors import (
    ApiError,
    ConfigurationError,
    NetworkError,
    ZabbixDatasourceError,
)
from zabbix_datasource.models import (
    Annotation,
    AnnotationQuery,
    FunctionCall,
    MetricFindValue,
    QueryMode,
    QueryRequest,
    QueryResponse,
    Target,
    TargetResult,
    TimeSeries,
)

__all__ = [
    # Datasource
    "ZabbixDatasource",
    # Configuration
    "DatasourceSettings",
    "Settings",
    "parse_interval",
    # Errors
    "ApiError",
    "ConfigurationError",
    "NetworkError",
    "ZabbixDatasourceError",
    # Models
    "Annotation",
    "AnnotationQuery",
    "FunctionCall",
    "MetricFindValue",
    "QueryMode",
    "QueryRequest",
    "QueryResponse",
    "Target",
    "TargetResult",
    "TimeSeries",
]

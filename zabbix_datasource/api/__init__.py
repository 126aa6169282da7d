"""HTTP facade for the Zabbix datasource.

This module contains:
- create_app: FastAPI application factory
- Request/response models
"""

from zabbix_datasource.api.routes import (
    ConnectionTestResponse,
    ErrorResponse,
    QueryResponseBody,
    SearchRequest,
    SeriesResponse,
    create_app,
)

__all__ = [
    "ConnectionTestResponse",
    "ErrorResponse",
    "QueryResponseBody",
    "SearchRequest",
    "SeriesResponse",
    "create_app",
]

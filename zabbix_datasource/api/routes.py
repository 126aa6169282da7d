"""FastAPI routes for the Zabbix datasource.

This module provides:
- /health for liveness checks
- /test for the datasource connection test
- /query for panel queries (numeric, text and SLA targets)
- /search for templating / metric autocomplete
- /annotations for trigger events
- Error handling mapping datasource errors to HTTP responses
"""

from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

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
    MetricFindValue,
    QueryRequest,
)

logger = structlog.get_logger(__name__)


# ============================================================================
# Request / Response Models
# ============================================================================


class SearchRequest(BaseModel):
    """Templating query, dotted ``group.host.app.item``."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"query": "Linux servers.*"},
                {"query": "Linux servers./web-.*/.*.CPU load"},
            ]
        }
    }

    query: str = Field(default="", description="Dotted filter with 1-4 segments")


class SeriesResponse(BaseModel):
    """A series as returned to the panel."""

    target: str = Field(..., description="Series label")
    datapoints: list[list[Any]] = Field(default_factory=list, description="[value, timestamp_ms] pairs")


class QueryResponseBody(BaseModel):
    """Panel query result."""

    data: list[SeriesResponse] = Field(default_factory=list)
    errors: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Errors of failed targets, keyed by refId",
    )


class ConnectionTestResponse(BaseModel):
    """Datasource connection test outcome."""

    status: str
    state: str
    title: str
    message: str
    version: str | None = None


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
    error_type: str | None = Field(default=None, description="Datasource error class")
    detail: dict[str, Any] | None = Field(default=None, description="Detailed error information")


# ============================================================================
# Application Setup
# ============================================================================


def get_datasource(request: Request) -> ZabbixDatasource:
    """Datasource bound to the application."""
    return request.app.state.datasource  # type: ignore[no-any-return]


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ANN201
    """Application lifespan handler."""
    logger.info("application_starting", url=app.state.datasource.settings.url)
    yield
    logger.info("application_shutting_down")
    await app.state.datasource.close()


def _status_for(error: ZabbixDatasourceError) -> int:
    if isinstance(error, ConfigurationError):
        return 400
    if isinstance(error, (ApiError, NetworkError)):
        return 502
    return 500


def create_app(
    datasource: ZabbixDatasource,
    title: str = "Zabbix Datasource API",
    version: str = "0.1.0",
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        datasource: Datasource serving every request.
        title: API title.
        version: API version.
        cors_origins: Allowed CORS origins.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(title=title, version=version, lifespan=lifespan)
    app.state.datasource = datasource

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ZabbixDatasourceError)
    async def datasource_exception_handler(
        request: Request, exc: ZabbixDatasourceError  # noqa: ARG001
    ) -> JSONResponse:
        logger.warning("request_failed", error_type=type(exc).__name__, error=exc.message)
        return JSONResponse(
            status_code=_status_for(exc),
            content=ErrorResponse(
                error=exc.message,
                error_type=type(exc).__name__,
                detail=exc.details or None,
            ).model_dump(),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException  # noqa: ARG001
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
            ).model_dump(),
        )

    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all routes on the application.

    Args:
        app: FastAPI application.
    """

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, Any]:
        """Basic liveness check, including metadata cache counters."""
        datasource = app.state.datasource
        return {"status": "ok", "cache": datasource.get_cache_metrics()}

    @app.post("/test", response_model=ConnectionTestResponse, tags=["Datasource"])
    async def test_connection(request: Request) -> ConnectionTestResponse:
        """Check that Zabbix is reachable and the credentials are valid."""
        result = await get_datasource(request).test_connection()
        return ConnectionTestResponse(**result.to_dict())

    @app.post(
        "/query",
        response_model=QueryResponseBody,
        tags=["Datasource"],
        responses={422: {"description": "Malformed query"}},
    )
    async def query(body: QueryRequest, request: Request) -> QueryResponseBody:
        """Run a panel query.

        Failed targets are reported under ``errors``; the other targets'
        series are still returned.
        """
        response = await get_datasource(request).query(body)
        return QueryResponseBody(
            data=[
                SeriesResponse(target=series.label, datapoints=[list(p) for p in series.datapoints])
                for series in response.data
            ],
            errors=response.errors,
        )

    @app.post(
        "/search",
        response_model=list[MetricFindValue],
        tags=["Datasource"],
        responses={400: {"description": "Malformed filter", "model": ErrorResponse}},
    )
    async def search(body: SearchRequest, request: Request) -> list[MetricFindValue]:
        """Entity names for a templating query."""
        return await get_datasource(request).metric_find_query(body.query)

    @app.post(
        "/annotations",
        response_model=list[Annotation],
        tags=["Datasource"],
        responses={400: {"description": "Malformed filter", "model": ErrorResponse}},
    )
    async def annotations(body: AnnotationQuery, request: Request) -> list[Annotation]:
        """Trigger events of the matching triggers."""
        return await get_datasource(request).annotation_query(body)

"""Tests for FastAPI routes."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from zabbix_datasource.api.routes import ErrorResponse, create_app
from zabbix_datasource.config import DatasourceSettings
from zabbix_datasource.datasource import ZabbixDatasource
from zabbix_datasource.errors import ApiError, ConfigurationError, NetworkError
from zabbix_datasource.models import (
    Annotation,
    MetricFindValue,
    QueryRequest,
    QueryResponse,
    TargetResult,
    TimeSeries,
)
from zabbix_datasource.zabbix.session import ConnectionStatus, ConnectionTestResult

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def datasource():
    """Mocked datasource."""
    mock = MagicMock(spec=ZabbixDatasource)
    mock.settings = DatasourceSettings(url="http://zabbix.test/api_jsonrpc.php")
    mock.get_cache_metrics.return_value = {"hits": 3, "misses": 1, "entries": 2}
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def app(datasource):
    """Create test FastAPI app."""
    return create_app(datasource, title="Test API", version="0.1.0")


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def query_payload():
    """Panel query with two targets."""
    return {
        "targets": [
            {
                "refId": "A",
                "group": "Linux servers",
                "host": "/web-.*/",
                "item": "CPU load",
                "functions": [{"aggregate": "avg"}, {"alias": "CPU avg"}],
            },
            {"refId": "B", "group": "Linux servers", "host": "db-01", "item": "CPU load"},
        ],
        "from": "2024-01-15T10:00:00Z",
        "to": "2024-01-15T11:00:00Z",
        "maxDataPoints": 500,
    }


# ============================================================================
# Health / connection
# ============================================================================


class TestHealth:
    """Tests for /health."""

    def test_health(self, client) -> None:
        """Should report ok with cache counters."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "cache": {"hits": 3, "misses": 1, "entries": 2}}


class TestConnection:
    """Tests for /test."""

    def test_success(self, client, datasource) -> None:
        """Should return the connection test result."""
        datasource.test_connection = AsyncMock(
            return_value=ConnectionTestResult(
                status=ConnectionStatus.SUCCESS,
                title="Success",
                message="Zabbix API version: 6.0.4",
                version="6.0.4",
            )
        )

        response = client.post("/test")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert data["state"] == "success"
        assert data["version"] == "6.0.4"

    def test_auth_failure(self, client, datasource) -> None:
        """Should report authentication failures in the body."""
        datasource.test_connection = AsyncMock(
            return_value=ConnectionTestResult(
                status=ConnectionStatus.AUTH_FAILED,
                title="Authentication failed",
                message="Login name or password is incorrect.",
            )
        )

        data = client.post("/test").json()

        assert data["status"] == "error"
        assert data["state"] == "auth_failed"


# ============================================================================
# Query
# ============================================================================


class TestQuery:
    """Tests for /query."""

    def test_series_and_errors(self, client, datasource, query_payload) -> None:
        """Should return series of good targets and errors of failed ones."""
        datasource.query = AsyncMock(
            return_value=QueryResponse(
                results=[
                    TargetResult(
                        ref_id="A",
                        series=[TimeSeries(label="CPU avg", datapoints=[(2.0, 1705312800000)])],
                    ),
                    TargetResult(
                        ref_id="B",
                        error={"error_type": "ApiError", "message": "No permissions.", "details": {}},
                    ),
                ]
            )
        )

        response = client.post("/query", json=query_payload)

        assert response.status_code == 200
        body = response.json()
        assert body["data"] == [{"target": "CPU avg", "datapoints": [[2.0, 1705312800000]]}]
        assert body["errors"]["B"]["error_type"] == "ApiError"

    def test_request_is_parsed(self, client, datasource, query_payload) -> None:
        """Should pass a validated QueryRequest to the datasource."""
        datasource.query = AsyncMock(return_value=QueryResponse())

        client.post("/query", json=query_payload)

        request = datasource.query.call_args.args[0]
        assert isinstance(request, QueryRequest)
        assert [t.ref_id for t in request.targets] == ["A", "B"]
        assert request.targets[0].functions[1].name == "alias"
        assert request.max_data_points == 500
        assert request.to_ms - request.from_ms == 3_600_000

    def test_malformed_body(self, client) -> None:
        """Should reject a query without a time range."""
        response = client.post("/query", json={"targets": []})
        assert response.status_code == 422

    def test_network_error(self, client, datasource, query_payload) -> None:
        """Should map connection failures to 502."""
        datasource.query = AsyncMock(side_effect=NetworkError("Could not connect to Zabbix API"))

        response = client.post("/query", json=query_payload)

        assert response.status_code == 502
        assert response.json()["error_type"] == "NetworkError"


# ============================================================================
# Search / annotations
# ============================================================================


class TestSearch:
    """Tests for /search."""

    def test_search(self, client, datasource) -> None:
        """Should return entity names."""
        datasource.metric_find_query = AsyncMock(
            return_value=[MetricFindValue(text="web-01"), MetricFindValue(text="web-02")]
        )

        response = client.post("/search", json={"query": "Linux servers.*"})

        assert response.status_code == 200
        assert [v["text"] for v in response.json()] == ["web-01", "web-02"]
        datasource.metric_find_query.assert_awaited_once_with("Linux servers.*")

    def test_malformed_filter(self, client, datasource) -> None:
        """Should map configuration errors to 400."""
        datasource.metric_find_query = AsyncMock(
            side_effect=ConfigurationError("Invalid regular expression /web-(/", details={"pattern": "web-("})
        )

        response = client.post("/search", json={"query": "Linux servers./web-(/"})

        assert response.status_code == 400
        error = ErrorResponse.model_validate(response.json())
        assert error.error_type == "ConfigurationError"
        assert error.detail == {"pattern": "web-("}


class TestAnnotations:
    """Tests for /annotations."""

    def test_annotations(self, client, datasource) -> None:
        """Should return annotations."""
        datasource.annotation_query = AsyncMock(
            return_value=[Annotation(timestamp=1705312800000, title="Problem", text="High CPU on web-01")]
        )

        response = client.post(
            "/annotations",
            json={
                "group": "Linux servers",
                "host": "*",
                "minseverity": 3,
                "from": "2024-01-15T10:00:00Z",
                "to": "2024-01-15T11:00:00Z",
            },
        )

        assert response.status_code == 200
        assert response.json()[0]["title"] == "Problem"
        query = datasource.annotation_query.call_args.args[0]
        assert query.min_severity == 3

    def test_api_error(self, client, datasource) -> None:
        """Should map Zabbix errors to 502."""
        datasource.annotation_query = AsyncMock(side_effect=ApiError(-32500, "Application error.", "No permissions."))

        response = client.post(
            "/annotations",
            json={"from": "2024-01-15T10:00:00Z", "to": "2024-01-15T11:00:00Z"},
        )

        assert response.status_code == 502
        assert response.json()["error"] == "Application error."


class TestLifespan:
    """Tests for application lifespan."""

    def test_closes_datasource(self, app, datasource) -> None:
        """Should close the datasource on shutdown."""
        with TestClient(app) as client:
            client.get("/health")
        datasource.close.assert_awaited_once()

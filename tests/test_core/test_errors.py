"""Tests for datasource error types."""

from zabbix_datasource.errors import (
    ApiError,
    ConfigurationError,
    NetworkError,
    ZabbixDatasourceError,
    is_application_method_missing,
    is_not_authorized,
)


class TestZabbixDatasourceError:
    """Tests for the base error."""

    def test_to_dict(self) -> None:
        """Test serialisation includes type and details."""
        error = ConfigurationError("Unknown function: sqrt", details={"function": "sqrt"})
        assert error.to_dict() == {
            "error_type": "ConfigurationError",
            "message": "Unknown function: sqrt",
            "details": {"function": "sqrt"},
        }

    def test_hierarchy(self) -> None:
        """Test every error derives from the base."""
        for cls in (NetworkError, ApiError, ConfigurationError):
            assert issubclass(cls, ZabbixDatasourceError)


class TestNetworkError:
    """Tests for NetworkError."""

    def test_status_code(self) -> None:
        """Test the HTTP status is kept."""
        error = NetworkError("Bad gateway", status_code=502)
        assert error.status_code == 502
        assert error.to_dict()["status_code"] == 502


class TestApiError:
    """Tests for ApiError."""

    def test_from_response(self) -> None:
        """Test construction from a JSON-RPC error object."""
        error = ApiError.from_response(
            {"code": -32602, "message": "Invalid params.", "data": "No permissions to referred object."}
        )
        assert error.code == -32602
        assert str(error) == "Invalid params. No permissions to referred object."
        assert error.to_dict()["data"] == "No permissions to referred object."

    def test_not_authorized_by_message(self) -> None:
        """Test authorization errors reported in the message."""
        assert ApiError(None, "Not authorised.").is_not_authorized

    def test_not_authorized_by_data(self) -> None:
        """Test authorization errors reported in data."""
        assert ApiError(-32602, "Invalid params.", "Session terminated, re-login, please.").is_not_authorized

    def test_other_errors(self) -> None:
        """Test ordinary errors are not authorization errors."""
        assert not ApiError(-32500, "Application error.", "No permissions.").is_not_authorized


class TestPredicates:
    """Tests for error predicates."""

    def test_is_not_authorized(self) -> None:
        """Test only ApiError can be an authorization error."""
        assert is_not_authorized(ApiError(None, "Not authorized."))
        assert not is_not_authorized(NetworkError("Not authorized."))

    def test_application_method_missing(self) -> None:
        """Test the Zabbix 5.4 missing application API is recognised."""
        error = ApiError(-32601, "Method not found.", 'Incorrect API "application".')
        assert is_application_method_missing(error)

    def test_other_method_missing(self) -> None:
        """Test other missing methods are not treated as applications."""
        error = ApiError(-32601, "Method not found.", 'Incorrect API "service".')
        assert not is_application_method_missing(error)

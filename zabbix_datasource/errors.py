"""Error types for the Zabbix datasource.

Exception Hierarchy:
    ZabbixDatasourceError (base)
    ├── NetworkError - endpoint unreachable, non-2xx status, timeouts
    ├── ApiError - well-formed JSON-RPC error object returned by Zabbix
    └── ConfigurationError - unknown function, bad parameter, malformed filter

Missing application support on Zabbix 5.4+ is not an error: the resolver
turns it into an empty application set.
"""

from typing import Any

# Messages Zabbix returns when the auth token is no longer valid.
NOT_AUTHORIZED_MESSAGES = frozenset(
    {
        "Session terminated, re-login, please.",
        "Not authorised.",
        "Not authorized.",
    }
)


class ZabbixDatasourceError(Exception):
    """Base exception for all datasource errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error details.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class NetworkError(ZabbixDatasourceError):
    """The Zabbix endpoint could not be reached or answered with a bad status.

    Never retried automatically.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base["status_code"] = self.status_code
        return base


class ApiError(ZabbixDatasourceError):
    """Zabbix API returned an ``error`` object.

    Attributes:
        code: JSON-RPC error code.
        data: Zabbix error details (the most useful part of the error).
    """

    def __init__(self, code: int | None, message: str, data: str | None = None) -> None:
        super().__init__(message, details={"data": data} if data else None)
        self.code = code
        self.data = data

    @classmethod
    def from_response(cls, error: dict[str, Any]) -> "ApiError":
        """Build from the ``error`` member of a JSON-RPC reply."""
        return cls(
            code=error.get("code"),
            message=str(error.get("message", "")),
            data=error.get("data"),
        )

    @property
    def is_not_authorized(self) -> bool:
        """Whether the error means the auth token must be renewed."""
        return self.message in NOT_AUTHORIZED_MESSAGES or (
            self.data in NOT_AUTHORIZED_MESSAGES
        )

    @property
    def is_method_not_found(self) -> bool:
        """Whether the called method does not exist on this server."""
        return self.message.startswith("Method not found")

    def __str__(self) -> str:
        if self.data:
            return f"{self.message} {self.data}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base.update({"code": self.code, "data": self.data})
        return base


class ConfigurationError(ZabbixDatasourceError):
    """A target or datasource setting is invalid.

    Fails only the target that carries the bad configuration.
    """

    pass


def is_not_authorized(error: BaseException) -> bool:
    """Retry predicate: True only for authorization API errors."""
    return isinstance(error, ApiError) and error.is_not_authorized


def is_application_method_missing(error: BaseException) -> bool:
    """True when the server does not support the ``application`` API (Zabbix 5.4+)."""
    if not isinstance(error, ApiError) or not error.is_method_not_found:
        return False
    text = f"{error.message} {error.data or ''}".lower()
    return "application" in text

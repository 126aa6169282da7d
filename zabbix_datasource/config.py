"""Datasource configuration settings.

This module provides:
- Settings: process-wide defaults loaded from environment variables
- DatasourceSettings: configuration of one Zabbix datasource instance
- parse_interval: duration strings such as ``1h`` or ``7d`` to milliseconds
"""

import os
import re
from dataclasses import dataclass

from pydantic import BaseModel, Field

from zabbix_datasource.errors import ConfigurationError

# Same unit lengths as moment.js durations (year = 365d, month = 30d).
INTERVAL_UNITS_MS: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
    "M": 30 * 24 * 60 * 60 * 1000,
    "y": 365 * 24 * 60 * 60 * 1000,
}

_INTERVAL_PATTERN = re.compile(r"^(\d+)(ms|y|M|w|d|h|m|s)$")


def parse_interval(interval: str) -> int:
    """Parse a duration string into milliseconds.

    Args:
        interval: Duration such as ``"1h"``, ``"7d"`` or ``"30s"``.

    Returns:
        Duration in milliseconds.

    Raises:
        ConfigurationError: If the string is not ``<number><unit>``.
    """
    match = _INTERVAL_PATTERN.match(str(interval).strip())
    if not match:
        raise ConfigurationError(
            f"Invalid interval: {interval!r}",
            details={"interval": interval},
        )
    value, unit = match.groups()
    return int(value) * INTERVAL_UNITS_MS[unit]


def _get_bool_env(name: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set.

    Returns:
        Boolean value from environment.
    """
    value = os.getenv(name, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


class DatasourceSettings(BaseModel):
    """Configuration of a single Zabbix datasource instance.

    Attributes:
        url: Zabbix API endpoint (``.../api_jsonrpc.php``).
        username: Zabbix user for ``user.login``.
        password: Zabbix password.
        basic_auth: Ready-made ``Authorization`` header value, if the
            frontend sits behind HTTP basic auth.
        with_credentials: Forward cookies/credentials with each request.
        verify_tls: Verify the server TLS certificate.
        trends: Use trends instead of history for old time ranges.
        trends_from: Lookback after which trends are used.
        cache_ttl: Metadata cache time-to-live.
        timeout: HTTP timeout in seconds.
    """

    url: str
    username: str = ""
    password: str = Field(default="", repr=False)
    basic_auth: str | None = Field(default=None, repr=False)
    with_credentials: bool = False
    verify_tls: bool = True
    trends: bool = False
    trends_from: str = "7d"
    cache_ttl: str = "1h"
    timeout: float = 30.0

    @property
    def cache_ttl_ms(self) -> int:
        """Cache TTL in milliseconds."""
        return parse_interval(self.cache_ttl)

    @property
    def trends_from_ms(self) -> int:
        """Trends lookback in milliseconds."""
        return parse_interval(self.trends_from)


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        ZABBIX_URL: Zabbix API endpoint.
        ZABBIX_USER: Zabbix user name.
        ZABBIX_PASSWORD: Zabbix password.
        ZABBIX_BASIC_AUTH: Optional basic auth header value.
        ZABBIX_WITH_CREDENTIALS: Forward credentials with requests.
        ZABBIX_VERIFY_TLS: Verify TLS certificates.
        ZABBIX_TRENDS: Enable trends fallback.
        ZABBIX_TRENDS_FROM: Trends lookback window.
        ZABBIX_CACHE_TTL: Metadata cache TTL.
        ZABBIX_TIMEOUT: HTTP timeout in seconds.
        LOG_LEVEL: Logging level.
    """

    ZABBIX_URL: str = "http://localhost/zabbix/api_jsonrpc.php"
    ZABBIX_USER: str = "Admin"
    ZABBIX_PASSWORD: str = ""
    ZABBIX_BASIC_AUTH: str | None = None
    ZABBIX_WITH_CREDENTIALS: bool = False
    ZABBIX_VERIFY_TLS: bool = True
    ZABBIX_TRENDS: bool = False
    ZABBIX_TRENDS_FROM: str = "7d"
    ZABBIX_CACHE_TTL: str = "1h"
    ZABBIX_TIMEOUT: float = 30.0

    # Logging
    LOG_LEVEL: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Returns:
            Settings instance populated from environment.
        """
        return cls(
            ZABBIX_URL=os.getenv("ZABBIX_URL", "http://localhost/zabbix/api_jsonrpc.php"),
            ZABBIX_USER=os.getenv("ZABBIX_USER", "Admin"),
            ZABBIX_PASSWORD=os.getenv("ZABBIX_PASSWORD", ""),
            ZABBIX_BASIC_AUTH=os.getenv("ZABBIX_BASIC_AUTH"),
            ZABBIX_WITH_CREDENTIALS=_get_bool_env("ZABBIX_WITH_CREDENTIALS", default=False),
            ZABBIX_VERIFY_TLS=_get_bool_env("ZABBIX_VERIFY_TLS", default=True),
            ZABBIX_TRENDS=_get_bool_env("ZABBIX_TRENDS", default=False),
            ZABBIX_TRENDS_FROM=os.getenv("ZABBIX_TRENDS_FROM", "7d"),
            ZABBIX_CACHE_TTL=os.getenv("ZABBIX_CACHE_TTL", "1h"),
            ZABBIX_TIMEOUT=float(os.getenv("ZABBIX_TIMEOUT", "30")),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )

    def to_datasource_settings(self) -> DatasourceSettings:
        """Build the per-instance settings from these defaults."""
        return DatasourceSettings(
            url=self.ZABBIX_URL,
            username=self.ZABBIX_USER,
            password=self.ZABBIX_PASSWORD,
            basic_auth=self.ZABBIX_BASIC_AUTH,
            with_credentials=self.ZABBIX_WITH_CREDENTIALS,
            verify_tls=self.ZABBIX_VERIFY_TLS,
            trends=self.ZABBIX_TRENDS,
            trends_from=self.ZABBIX_TRENDS_FROM,
            cache_ttl=self.ZABBIX_CACHE_TTL,
            timeout=self.ZABBIX_TIMEOUT,
        )

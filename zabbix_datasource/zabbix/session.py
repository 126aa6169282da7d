"""Authenticated access to the Zabbix API.

This module provides:
- ZabbixSession: owns the auth token, logs in lazily and re-logs in
  (bounded) when Zabbix reports the session as terminated
- ConnectionTestResult: outcome of a datasource connection test

Concurrent callers share one in-flight login, so a burst of
"not authorized" replies collapses into a single ``user.login``.
"""

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt

from zabbix_datasource.errors import ApiError, NetworkError, is_not_authorized
from zabbix_datasource.zabbix.transport import ZabbixTransport

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

_LEADING_DIGITS = re.compile(r"\d+")


def version_tuple(version: str) -> tuple[int, ...]:
    """``"5.4.2"`` -> ``(5, 4, 2)``; parsing stops at the first non-numeric suffix."""
    parts = []
    for part in version.split("."):
        match = _LEADING_DIGITS.match(part)
        if match is None:
            break
        parts.append(int(match.group()))
        if match.end() < len(part):
            break
    return tuple(parts)


class ConnectionStatus(Enum):
    """Reportable states of a connection test."""

    SUCCESS = "success"
    AUTH_FAILED = "auth_failed"
    UNREACHABLE = "unreachable"


@dataclass
class ConnectionTestResult:
    """Result of testing a datasource connection.

    Attributes:
        status: Which of the three outcomes occurred.
        title: Short user-facing title.
        message: User-facing message.
        version: Zabbix API version, when it could be read.
    """

    status: ConnectionStatus
    title: str
    message: str
    version: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the test succeeded."""
        return self.status == ConnectionStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": "success" if self.ok else "error",
            "state": self.status.value,
            "title": self.title,
            "message": self.message,
            "version": self.version,
        }


class ZabbixSession:
    """Session manager wrapping the transport with authentication.

    Example:
        session = ZabbixSession(transport, "Admin", "zabbix")
        hosts = await session.call("host.get", {"output": ["name"]})
    """

    def __init__(
        self,
        transport: ZabbixTransport,
        username: str,
        password: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        """Initialize the session.

        Args:
            transport: Transport used for every call.
            username: Zabbix user name.
            password: Zabbix password.
            max_attempts: Upper bound on call attempts when the token is
                rejected (each retry performs one re-login).
        """
        self.transport = transport
        self.username = username
        self._password = password
        self.max_attempts = max_attempts
        self._token: str | None = None
        self._login_task: asyncio.Future[str] | None = None
        self._version: str | None = None
        self._logger = logger.bind(component="zabbix_session")

    @property
    def authenticated(self) -> bool:
        """Whether a token is currently held."""
        return self._token is not None

    async def get_version(self) -> str:
        """Get the Zabbix API version (unauthenticated call)."""
        if self._version is None:
            self._version = str(await self.transport.send("apiinfo.version", []))
        return self._version

    async def login(self) -> str:
        """Perform ``user.login`` and return the new token.

        Not protected by the retry loop: this is the recovery action itself.
        Zabbix 5.4 renamed the ``user`` parameter to ``username``.
        """
        try:
            version = await self.get_version()
        except ApiError:
            version = ""
        user_param = "username" if version and version_tuple(version) >= (5, 4) else "user"
        params = {user_param: self.username, "password": self._password}

        token = await self.transport.send("user.login", params, None)
        self._logger.info("zabbix_login", user=self.username)
        return str(token)

    async def _login_and_store(self) -> str:
        token = await self.login()
        self._token = token
        return token

    async def _get_token(self) -> str:
        """Return the held token, joining or starting a login if needed."""
        if self._token is not None:
            return self._token

        if self._login_task is None:
            self._login_task = asyncio.ensure_future(self._login_and_store())
        task = self._login_task
        try:
            return await asyncio.shield(task)
        finally:
            if self._login_task is task and task.done():
                self._login_task = None

    def _invalidate(self, token: str) -> None:
        # Another caller may already have replaced the stale token.
        if self._token == token:
            self._token = None

    def reset(self) -> None:
        """Drop the held token."""
        self._token = None

    async def call(self, method: str, params: Any) -> Any:
        """Call an authenticated API method.

        Re-logs in and retries when Zabbix rejects the token, at most
        ``max_attempts`` calls in total. Every other error is raised
        immediately.

        Args:
            method: API method name.
            params: Method parameters.

        Returns:
            The method result.

        Raises:
            ApiError: API error (authorization errors after retries ran out).
            NetworkError: Connection failure.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception(is_not_authorized),
            reraise=True,
        ):
            with attempt:
                token = await self._get_token()
                try:
                    return await self.transport.send(method, params, token)
                except ApiError as e:
                    if e.is_not_authorized:
                        self._invalidate(token)
                        self._logger.info(
                            "relogin",
                            method=method,
                            attempt=attempt.retry_state.attempt_number,
                            max_attempts=self.max_attempts,
                        )
                    raise

        # This should not be reached due to reraise=True
        raise RuntimeError("Retry loop exited unexpectedly")

    async def test_connection(self) -> ConnectionTestResult:
        """Check version and credentials.

        Returns:
            ConnectionTestResult distinguishing success, authentication
            failure and an unreachable endpoint.
        """
        try:
            version = await self.get_version()
        except (NetworkError, ApiError) as e:
            self._logger.warning("connection_test_failed", stage="version", error=str(e))
            return ConnectionTestResult(
                status=ConnectionStatus.UNREACHABLE,
                title="Connection failed",
                message="Could not connect to given url",
            )

        try:
            self._token = await self.login()
        except ApiError as e:
            self._logger.warning("connection_test_failed", stage="login", error=str(e))
            return ConnectionTestResult(
                status=ConnectionStatus.AUTH_FAILED,
                title="Authentication failed",
                message=str(e.data or e.message),
                version=version,
            )
        except NetworkError as e:
            self._logger.warning("connection_test_failed", stage="login", error=str(e))
            return ConnectionTestResult(
                status=ConnectionStatus.UNREACHABLE,
                title="Connection failed",
                message="Could not connect to given url",
                version=version,
            )

        return ConnectionTestResult(
            status=ConnectionStatus.SUCCESS,
            title="Success",
            message=f"Zabbix API version: {version}",
            version=version,
        )

    async def close(self) -> None:
        """Close the underlying transport."""
        await self.transport.close()

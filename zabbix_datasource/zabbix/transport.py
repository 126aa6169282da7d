"""Single JSON-RPC call over HTTP POST.

The transport is stateless with respect to authentication: the caller
passes the auth token (or None for ``user.login`` and ``apiinfo.version``).
"""

import itertools
from typing import Any

import httpx
import structlog

from zabbix_datasource.errors import ApiError, NetworkError

logger = structlog.get_logger(__name__)

JSONRPC_VERSION = "2.0"


def build_request_body(
    method: str,
    params: Any,
    request_id: int,
    auth: str | None = None,
) -> dict[str, Any]:
    """Build the JSON-RPC request object.

    ``auth`` is omitted entirely for unauthenticated calls.
    """
    body: dict[str, Any] = {
        "jsonrpc": JSONRPC_VERSION,
        "method": method,
        "params": params,
        "id": request_id,
    }
    if auth:
        body["auth"] = auth
    return body


def handle_api_result(payload: Any) -> Any:
    """Extract ``result`` from a JSON-RPC reply.

    An ``error`` object takes precedence over a successful HTTP status.

    Raises:
        ApiError: If the reply carries an ``error`` object.
        NetworkError: If the reply is not a JSON-RPC object.
    """
    if not isinstance(payload, dict):
        raise NetworkError("Unexpected response from Zabbix API", details={"body": str(payload)[:200]})
    if payload.get("error"):
        raise ApiError.from_response(payload["error"])
    return payload.get("result")


class ZabbixTransport:
    """Performs a single Zabbix API call over HTTP.

    Example:
        transport = ZabbixTransport("http://zabbix/api_jsonrpc.php")
        version = await transport.send("apiinfo.version", [])
    """

    def __init__(
        self,
        url: str,
        *,
        basic_auth: str | None = None,
        with_credentials: bool = False,
        verify_tls: bool = True,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            url: Zabbix API endpoint.
            basic_auth: Value for the ``Authorization`` header.
            with_credentials: Keep and forward cookies between calls.
            verify_tls: Verify the server certificate.
            timeout: Connect/read/write timeout in seconds.
            client: Pre-built httpx client (tests inject a MockTransport here).
        """
        self.url = url
        self.basic_auth = basic_auth
        self.with_credentials = with_credentials or bool(basic_auth)
        self.verify_tls = verify_tls
        self.timeout = timeout
        self._client = client
        self._ids = itertools.count(1)
        self._logger = logger.bind(component="zabbix_transport")

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                verify=self.verify_tls,
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.basic_auth:
            headers["Authorization"] = self.basic_auth
        return headers

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def send(self, method: str, params: Any, auth: str | None = None) -> Any:
        """Call a Zabbix API method.

        Args:
            method: API method, e.g. ``"host.get"``.
            params: Method parameters.
            auth: Auth token, None for unauthenticated calls.

        Returns:
            The ``result`` member of the reply.

        Raises:
            ApiError: The API answered with an error object.
            NetworkError: Connection failure, timeout, non-2xx status or
                an undecodable body.
        """
        client = self._get_client()
        body = build_request_body(method, params, next(self._ids), auth)

        if not self.with_credentials:
            client.cookies.clear()

        self._logger.debug("zabbix_request", method=method)

        try:
            response = await client.post(self.url, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            self._logger.error("zabbix_timeout", method=method, error=str(e))
            raise NetworkError(f"Request to Zabbix API timed out: {e}") from e
        except httpx.RequestError as e:
            self._logger.error("zabbix_connection_error", method=method, error=str(e))
            raise NetworkError(f"Could not connect to Zabbix API: {e}") from e

        if not response.is_success:
            raise NetworkError(
                f"Invalid status code: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise NetworkError(
                "Zabbix API returned a non-JSON body",
                status_code=response.status_code,
            ) from e

        result = handle_api_result(payload)
        self._logger.debug("zabbix_response", method=method, status=response.status_code)
        return result

    async def __aenter__(self) -> "ZabbixTransport":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

"""Client for the Commerce MCP Bridge.

Provides a clean interface for listing and calling bridge tools over the
MCP JSON-RPC endpoint. Handles request formatting, retries of idempotent
reads and protocol error reporting.
"""

import itertools
import json
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.logging import get_logger
from shared.models import InvocationResult

logger = get_logger(__name__)


class BridgeClientError(Exception):
    """Base exception for bridge client errors."""
    pass


class BridgeConnectionError(BridgeClientError):
    """Connection to the bridge failed."""
    pass


class BridgeProtocolError(BridgeClientError):
    """The bridge answered with a JSON-RPC error."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.data = data


_read_retry = retry(
    retry=retry_if_exception_type(BridgeConnectionError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    reraise=True
)


class BridgeClient:
    """
    Client for a Commerce MCP Bridge server.

    Provides methods for:
    - Server status and health
    - Listing tools
    - Calling tools

    Tool calls are never retried; a platform failure comes back as an
    ``InvocationResult`` with ``success=False``.
    """

    def __init__(
        self,
        server_url: str = "http://localhost:8001",
        route_prefix: str = "/api/mcp",
        timeout: float = 30.0,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            server_url: Bridge base URL
            route_prefix: Route prefix of the MCP endpoint
            timeout: Request timeout in seconds
            api_key: Platform API key passed through to the bridge
            http_client: Preconfigured client, used as is
        """
        self.server_url = server_url.rstrip("/")
        self.route_prefix = "/" + route_prefix.strip("/")
        self.timeout = timeout
        self.api_key = api_key
        self._client = http_client
        self._owns_client = http_client is None
        self._ids = itertools.count(1)

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["api_key"] = self.api_key
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.server_url,
                timeout=self.timeout,
                headers=self._get_headers()
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BridgeClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get(self, path: str) -> dict[str, Any]:
        try:
            client = await self._get_client()
            response = await client.get(path)
            response.raise_for_status()
            return response.json()
        except httpx.TransportError as e:
            raise BridgeConnectionError(f"Cannot connect to MCP bridge: {e}")
        except httpx.HTTPStatusError as e:
            raise BridgeClientError(f"Request to {path} failed: {e}")

    async def rpc(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        Send one JSON-RPC request and return its ``result``.

        Raises:
            BridgeProtocolError: If the bridge returns a JSON-RPC error
            BridgeConnectionError: If the bridge is unreachable
        """
        message: dict[str, Any] = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            message["params"] = params

        try:
            client = await self._get_client()
            response = await client.post(self.route_prefix, json=message)
            response.raise_for_status()
            data = response.json()
        except httpx.TransportError as e:
            raise BridgeConnectionError(f"Cannot connect to MCP bridge: {e}")
        except httpx.HTTPStatusError as e:
            raise BridgeClientError(f"JSON-RPC request failed: {e}")
        except ValueError as e:
            raise BridgeClientError(f"Invalid JSON-RPC response: {e}")

        error = data.get("error")
        if error is not None:
            raise BridgeProtocolError(
                code=error.get("code", 0),
                message=error.get("message", ""),
                data=error.get("data"),
            )
        return data.get("result")

    @_read_retry
    async def health_check(self) -> dict[str, Any]:
        """Check bridge health."""
        return await self._get("/health")

    @_read_retry
    async def status(self) -> dict[str, Any]:
        """
        Get server information and discovery statistics.

        Returns:
            Status document with ``serverInfo`` and ``statistics``
        """
        return await self._get(f"{self.route_prefix}/status")

    @_read_retry
    async def initialize(self) -> dict[str, Any]:
        """Perform the MCP ``initialize`` handshake."""
        return await self.rpc("initialize", {})

    @_read_retry
    async def list_tools(self) -> list[dict[str, Any]]:
        """
        List available tools.

        Returns:
            Tool definitions with ``name``, ``description`` and ``inputSchema``
        """
        result = await self.rpc("tools/list")
        return (result or {}).get("tools", [])

    async def call_tool(
        self,
        name: str,
        arguments: Optional[dict[str, Any]] = None
    ) -> InvocationResult:
        """
        Call a tool.

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            The decoded invocation result

        Raises:
            BridgeProtocolError: For unknown tools (-32601) or invalid arguments (-32602)
        """
        logger.debug("Calling tool", tool=name)

        result = await self.rpc("tools/call", {"name": name, "arguments": arguments or {}})
        content = (result or {}).get("content") or []
        text = next((c.get("text") for c in content if c.get("type") == "text"), None)
        if text is None:
            raise BridgeClientError(f"Tool '{name}' returned no text content")

        try:
            return InvocationResult.model_validate(json.loads(text))
        except ValueError as e:
            raise BridgeClientError(f"Tool '{name}' returned an invalid result: {e}")

    async def search_customer_orders(self, **criteria: Any) -> InvocationResult:
        """
        Search customer orders.

        Args:
            **criteria: Search criteria such as ``customerId``, ``statuses``,
                ``keyword``, ``take`` and ``skip``
        """
        arguments = {k: v for k, v in criteria.items() if v is not None}
        return await self.call_tool("search_customer_orders", arguments)
